from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from google.cloud.firestore import GeoPoint

ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def _geo_fields(name: str, point: GeoPoint) -> Dict[str, float]:
    return {f"{name}.latitude": float(point.latitude), f"{name}.longitude": float(point.longitude)}


def _convert_items(items: List[Any]) -> List[Any]:
    out: List[Any] = []
    for item in items:
        if isinstance(item, dict):
            out.append(convert_specific_types(item))
        elif isinstance(item, list):
            out.append(_convert_items(item))
        elif isinstance(item, GeoPoint):
            # unnamed array element: becomes a map of the two coordinates
            out.append({"latitude": float(item.latitude), "longitude": float(item.longitude)})
        else:
            out.append(item)
    return out


def convert_specific_types(source: Dict[str, Any]) -> Dict[str, Any]:
    """
    Replace every GeoPoint, at any depth of nested maps and arrays, with
    sibling `<name>.latitude` / `<name>.longitude` floats. Mutates and
    returns `source`.
    """
    for name, value in list(source.items()):
        if isinstance(value, GeoPoint):
            del source[name]
            source.update(_geo_fields(name, value))
        elif isinstance(value, dict):
            source[name] = convert_specific_types(value)
        elif isinstance(value, list):
            source[name] = _convert_items(value)
    return source


def ms_to_iso(ms: Optional[int]) -> Optional[str]:
    """Epoch milliseconds → ISO-8601 UTC with second precision, None stays None."""
    if ms is None:
        return None
    t = datetime.fromtimestamp(int(ms) // 1000, tz=timezone.utc)
    return t.strftime(ISO_FORMAT)
