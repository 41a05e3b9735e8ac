from __future__ import annotations

import importlib
from types import ModuleType
from typing import Any

from .errors import ConfigurationError
from .protocol import Collection, Driver, SourceConfig


def _driver_module(source_type: str) -> ModuleType:
    if not source_type or not isinstance(source_type, str):
        raise ConfigurationError("source type must be a non-empty string")

    mod_name = f"sources.{source_type.strip().lower()}"
    try:
        return importlib.import_module(mod_name)
    except ModuleNotFoundError as e:
        if e.name != mod_name:
            raise
        raise ConfigurationError(f"Unknown source type: {source_type}") from e


def create_driver(source_config: SourceConfig, collection: Collection, **services: Any) -> Driver:
    """
    Build the driver for `source_config.type`.

    Resolution: sources.<type>.driver(source_config, collection, **services).
    `services` carries explicitly owned collaborators (e.g. bridge=TapBridge).
    """
    module = _driver_module(source_config.type)

    factory = getattr(module, "driver", None)
    if not callable(factory):
        raise ConfigurationError(f"sources.{source_config.type} does not expose a driver() factory")

    obj = factory(source_config, collection, **services)
    if not isinstance(obj, Driver):
        raise TypeError(f"sources.{source_config.type}.driver() did not return a Driver")
    return obj


def test_connection(source_config: SourceConfig, **services: Any) -> None:
    """
    Check connectivity without building a driver. Raises on failure.
    """
    module = _driver_module(source_config.type)

    fn = getattr(module, "test_connection", None)
    if not callable(fn):
        raise ConfigurationError(f"sources.{source_config.type} does not support connection tests")
    fn(source_config, **services)


test_connection.__test__ = False  # type: ignore[attr-defined]
