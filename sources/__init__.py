"""
Public convenience exports for the sources package.

Drivers live in `sources/<type>/` (firebase, singer).
The driver contract and shared helpers live in `sources/runtime/`.

This file keeps imports stable for callers:
  from sources import SourceConfig, Collection, create_driver
"""
from __future__ import annotations

from sources.runtime.loader import create_driver, test_connection  # noqa: F401
from sources.runtime.protocol import (  # noqa: F401
    Collection,
    Driver,
    Granularity,
    SourceConfig,
    TimeInterval,
)

__all__ = [
    "Collection",
    "Driver",
    "Granularity",
    "SourceConfig",
    "TimeInterval",
    "create_driver",
    "test_connection",
]
