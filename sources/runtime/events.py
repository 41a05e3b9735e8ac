"""
Runtime event bus for driver → orchestrator progress reporting.

Design rules:
- CLI-agnostic: no Rich / printing here.
- Every event is also written to the stdlib logger `sources.<connector>`,
  so nothing is lost when no emitter is installed.
- An emitter that raises never breaks a sync.

Typical usage inside a driver:
  from sources.runtime.events import emit

  emit("progress", "firestore.page.fetched", connector="firebase", count=100)
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

EventEmitter = Callable[["RuntimeEvent"], None]

_EMITTER: Optional[EventEmitter] = None

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}

logger = logging.getLogger("sources")


@dataclass(frozen=True)
class RuntimeEvent:
    type: str
    message: str
    connector: Optional[str] = None
    stream: Optional[str] = None
    count: Optional[int] = None
    level: str = "info"  # info|warn|error|debug
    ts: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    fields: Dict[str, Any] = field(default_factory=dict)


def set_emitter(fn: Optional[EventEmitter]) -> None:
    """
    Install a process-wide event emitter. The CLI sets this before running a driver.
    """
    global _EMITTER
    _EMITTER = fn


def _log(ev: RuntimeEvent) -> None:
    log = logger.getChild(ev.connector) if ev.connector else logger
    lvl = _LEVELS.get(ev.level, logging.INFO)
    if not log.isEnabledFor(lvl):
        return
    parts = [ev.message]
    if ev.stream:
        parts.append(f"stream={ev.stream}")
    if ev.count is not None:
        parts.append(f"count={ev.count}")
    parts.extend(f"{k}={v}" for k, v in ev.fields.items() if v is not None)
    log.log(lvl, " ".join(parts))


def emit(
    event_type: str,
    message: str,
    *,
    connector: Optional[str] = None,
    stream: Optional[str] = None,
    count: Optional[int] = None,
    level: str = "info",
    **fields: Any,
) -> None:
    ev = RuntimeEvent(
        type=str(event_type),
        message=str(message),
        connector=connector,
        stream=stream,
        count=count,
        level=str(level),
        fields=fields or {},
    )
    _log(ev)

    fn = _EMITTER
    if fn is None:
        return
    try:
        fn(ev)
    except Exception:
        # Progress reporting must not crash a sync.
        logger.debug("event emitter failed for %s", ev.message, exc_info=True)
