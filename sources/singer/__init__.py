"""
Singer tap support: lifecycle manager, discovery, type inference, output parser
and the tap-backed driver.
"""
from __future__ import annotations

from .bridge import TapBridge, TapInstallState
from .catalog import RawCatalog, force_select_all, parse_catalog
from .config import BridgeSettings, TapSourceConfig
from .driver import TapDriver, driver, test_connection
from .parser import OutputRepresentation, StreamRepresentation, parse_output
from .schema import CanonicalField, CanonicalType, infer_fields, infer_schema_fields, parse_properties

__all__ = [
    "BridgeSettings",
    "CanonicalField",
    "CanonicalType",
    "OutputRepresentation",
    "RawCatalog",
    "StreamRepresentation",
    "TapBridge",
    "TapDriver",
    "TapInstallState",
    "TapSourceConfig",
    "driver",
    "force_select_all",
    "infer_fields",
    "infer_schema_fields",
    "parse_catalog",
    "parse_output",
    "parse_properties",
    "test_connection",
]
