"""
Runtime package: driver contract + shared helpers.

Exports:
- Protocol types: Driver, SourceConfig, Collection, Granularity, TimeInterval, ObjectsLoader
- Loader: create_driver, test_connection
- Error taxonomy
"""
from __future__ import annotations

from .errors import (
    ConfigurationError,
    InstallError,
    ProcessFailedError,
    ProcessTimeoutError,
    ProtocolError,
    SourceConnectionError,
    SourceError,
    TapNotReadyError,
)
from .loader import create_driver, test_connection
from .protocol import Collection, Driver, Granularity, ObjectsLoader, SourceConfig, TimeInterval

__all__ = [
    "Collection",
    "ConfigurationError",
    "Driver",
    "Granularity",
    "InstallError",
    "ObjectsLoader",
    "ProcessFailedError",
    "ProcessTimeoutError",
    "ProtocolError",
    "SourceConfig",
    "SourceConnectionError",
    "SourceError",
    "TapNotReadyError",
    "TimeInterval",
    "create_driver",
    "test_connection",
]
