from __future__ import annotations

from typing import Any

from sources.runtime.events import emit

from .constants import CONNECTOR_NAME


def _message(level: str, message: str, **fields: Any) -> None:
    emit("message", message, connector=CONNECTOR_NAME, level=level, **fields)


def debug(message: str, **fields: Any) -> None:
    _message("debug", message, **fields)


def info(message: str, **fields: Any) -> None:
    _message("info", message, **fields)


def error(message: str, **fields: Any) -> None:
    _message("error", message, **fields)
