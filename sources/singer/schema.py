"""
Type inference for Singer SCHEMA messages.

A tap declares JSON-Schema-ish property trees where `type` is either a single
name or a union list, and objects nest arbitrarily. The tree is first decoded
into explicit `Property` values, then collapsed into canonical column types:

  string (+ format date-time) -> TIMESTAMP
  string                      -> STRING
  number                      -> FLOAT64
  integer                     -> INT64
  boolean                     -> BOOL
  array                       -> STRING (serialised, not expanded)
  object                      -> no column; children flattened as <name>_<child>

"null" candidates are skipped; the first recognised candidate in declaration
order wins. Unknown types are logged and skipped, never fatal.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .events import warn


class CanonicalType(str, Enum):
    STRING = "STRING"
    INT64 = "INT64"
    FLOAT64 = "FLOAT64"
    BOOL = "BOOL"
    TIMESTAMP = "TIMESTAMP"


@dataclass(frozen=True)
class CanonicalField:
    name: str
    type: CanonicalType


_SCALAR_TYPES: Dict[str, CanonicalType] = {
    "number": CanonicalType.FLOAT64,
    "integer": CanonicalType.INT64,
    "boolean": CanonicalType.BOOL,
    "array": CanonicalType.STRING,
}


@dataclass(frozen=True)
class Property:
    """
    One decoded schema property.

    types: candidate type names in declaration order (a single `type` string
           becomes a 1-tuple)
    format: JSON-Schema `format`, e.g. "date-time"
    properties: children, only meaningful for "object"
    """
    types: Tuple[str, ...] = ()
    format: Optional[str] = None
    properties: Dict[str, "Property"] = field(default_factory=dict)

    @classmethod
    def from_json(cls, name: str, raw: Any) -> Optional["Property"]:
        if not isinstance(raw, dict):
            warn("schema.property.malformed", property=name, value_type=type(raw).__name__)
            return None

        declared = raw.get("type")
        types: List[str] = []
        if isinstance(declared, str):
            types.append(declared)
        elif isinstance(declared, list):
            for t in declared:
                if isinstance(t, str):
                    types.append(t)
                else:
                    warn("schema.property.type_item_unknown", property=name, value=repr(t))
        else:
            warn("schema.property.type_unknown", property=name, value_type=type(declared).__name__)

        fmt = raw.get("format")
        return cls(
            types=tuple(types),
            format=fmt if isinstance(fmt, str) else None,
            properties=parse_properties(raw.get("properties")),
        )


def parse_properties(raw: Any) -> Dict[str, Property]:
    if not isinstance(raw, dict):
        return {}
    out: Dict[str, Property] = {}
    for name, value in raw.items():
        prop = Property.from_json(str(name), value)
        if prop is not None:
            out[str(name)] = prop
    return out


def infer_fields(properties: Mapping[str, Property], prefix: str = "") -> Dict[str, CanonicalType]:
    """
    Walk a decoded property tree and return {column_name: canonical_type}
    in declaration order.
    """
    out: Dict[str, CanonicalType] = {}
    _walk(properties, prefix, out)
    return out


def _walk(properties: Mapping[str, Property], prefix: str, out: Dict[str, CanonicalType]) -> None:
    for name, prop in properties.items():
        for t in prop.types:
            if t == "null":
                continue
            if t == "object":
                _walk(prop.properties, f"{prefix}{name}_", out)
                break
            if t == "string":
                out[prefix + name] = CanonicalType.TIMESTAMP if prop.format == "date-time" else CanonicalType.STRING
                break
            canonical = _SCALAR_TYPES.get(t)
            if canonical is None:
                warn("schema.type.unknown", property=prefix + name, declared_type=t)
                continue
            out[prefix + name] = canonical
            break


def infer_schema_fields(schema: Any) -> Dict[str, CanonicalType]:
    """
    Convenience: infer from a raw `{"properties": {...}}` schema object.
    """
    if not isinstance(schema, dict):
        return {}
    return infer_fields(parse_properties(schema.get("properties")))


def as_canonical_fields(fields: Mapping[str, CanonicalType]) -> List[CanonicalField]:
    return [CanonicalField(name=k, type=v) for k, v in fields.items()]
