from __future__ import annotations

import calendar
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

ObjectsLoader = Callable[[List[Dict[str, Any]], int, int, int], None]
"""
Orchestrator-side progress callback: (objects, position, total, percent).

Whatever it raises aborts the sync and reaches the caller of
`Driver.get_objects_for` unchanged.
"""


@dataclass(frozen=True)
class SourceConfig:
    """
    Opaque driver configuration plus its type tag.

    type: driver type tag, e.g. "firebase" or "singer"
    config: driver-specific blob, validated by the driver itself
    """
    source_id: str
    type: str
    config: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Collection:
    """
    One syncable unit of a source. `type` selects the driver variant.
    """
    name: str
    type: str
    source_id: str = ""
    table_name: str = ""
    parameters: Dict[str, Any] = field(default_factory=dict)

    def get_table_name(self) -> str:
        if self.table_name:
            return self.table_name
        return f"{self.source_id}_{self.name}" if self.source_id else self.name


class Granularity(str, Enum):
    ALL = "ALL"
    DAY = "DAY"
    MONTH = "MONTH"
    YEAR = "YEAR"


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _truncate(granularity: Granularity, t: datetime) -> datetime:
    if t.tzinfo is None:
        t = t.replace(tzinfo=timezone.utc)
    t = t.astimezone(timezone.utc)
    if granularity == Granularity.DAY:
        return t.replace(hour=0, minute=0, second=0, microsecond=0)
    if granularity == Granularity.MONTH:
        return t.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if granularity == Granularity.YEAR:
        return t.replace(month=1, day=1, hour=0, minute=0, second=0, microsecond=0)
    return _EPOCH


@dataclass(frozen=True)
class TimeInterval:
    """
    Immutable sync window. ALL is the sentinel for "whole dataset".
    """
    granularity: Granularity
    start: datetime = _EPOCH

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", _truncate(self.granularity, self.start))

    @classmethod
    def all(cls) -> "TimeInterval":
        return cls(Granularity.ALL)

    def is_all(self) -> bool:
        return self.granularity == Granularity.ALL

    def lower_endpoint(self) -> datetime:
        return self.start

    def upper_endpoint(self) -> datetime:
        s = self.start
        if self.granularity == Granularity.DAY:
            nxt = s + timedelta(days=1)
        elif self.granularity == Granularity.MONTH:
            days = calendar.monthrange(s.year, s.month)[1]
            nxt = s + timedelta(days=days)
        elif self.granularity == Granularity.YEAR:
            nxt = s.replace(year=s.year + 1)
        else:
            return datetime.max.replace(tzinfo=timezone.utc)
        return nxt - timedelta(microseconds=1)

    def __str__(self) -> str:
        if self.is_all():
            return "ALL"
        return f"{self.granularity.value}:{self.start.strftime('%Y-%m-%d')}"


class Driver:
    """
    Capability set every source driver implements.

    - get_collection_table() -> destination table name
    - get_collection_meta_key() -> stable key for checkpoint storage
    - get_refresh_window() -> how far back intervals are re-synced
    - get_all_available_intervals() -> intervals the orchestrator may pick
    - get_objects_for(interval, loader) -> extract and hand objects to loader

    Concurrent get_objects_for calls on one instance are not supported;
    the orchestrator serialises syncs per source.
    """

    type: str = ""

    def __init__(self, source_config: SourceConfig, collection: Collection):
        self.source_config = source_config
        self.collection = collection

    def get_collection_table(self) -> str:
        return self.collection.get_table_name()

    def get_collection_meta_key(self) -> str:
        return f"{self.collection.name}_{self.get_collection_table()}"

    def get_refresh_window(self) -> timedelta:  # pragma: no cover
        raise NotImplementedError

    def get_all_available_intervals(self) -> List[TimeInterval]:  # pragma: no cover
        raise NotImplementedError

    def get_objects_for(self, interval: TimeInterval, objects_loader: ObjectsLoader) -> None:  # pragma: no cover
        raise NotImplementedError

    def close(self) -> None:
        return None

    def __enter__(self) -> "Driver":
        return self

    def __exit__(self, *exc: Any) -> Optional[bool]:
        self.close()
        return None
