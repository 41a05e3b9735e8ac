from __future__ import annotations

from dataclasses import dataclass
from typing import List, Mapping, Tuple


@dataclass(frozen=True)
class DriftDiff:
    added_fields: List[str]
    removed_fields: List[str]
    changed_types: List[Tuple[str, str, str]]

    @property
    def is_breaking(self) -> bool:
        return bool(self.removed_fields) or bool(self.changed_types)

    @property
    def is_empty(self) -> bool:
        return not (self.added_fields or self.removed_fields or self.changed_types)


def _type_name(t: object) -> str:
    return str(getattr(t, "value", t))


def diff_fields(old: Mapping[str, object], new: Mapping[str, object]) -> DriftDiff:
    """
    Compare two canonical field maps {name: type}.
    """
    o_keys = set(old.keys())
    n_keys = set(new.keys())

    changed: List[Tuple[str, str, str]] = []
    for k in sorted(o_keys & n_keys):
        ot, nt = _type_name(old[k]), _type_name(new[k])
        if ot != nt:
            changed.append((k, ot, nt))

    return DriftDiff(
        added_fields=sorted(n_keys - o_keys),
        removed_fields=sorted(o_keys - n_keys),
        changed_types=changed,
    )


def summarise(diff: DriftDiff, max_items: int = 10) -> str:
    """
    One-line human-readable summary for logs.
    """
    if diff.is_empty:
        return "No schema drift detected."

    parts: List[str] = []
    if diff.added_fields:
        fs = diff.added_fields
        parts.append(f"+{len(fs)} ({', '.join(fs[:max_items])}{'…' if len(fs) > max_items else ''})")
    if diff.removed_fields:
        fs = diff.removed_fields
        parts.append(f"-{len(fs)} ({', '.join(fs[:max_items])}{'…' if len(fs) > max_items else ''})")
    if diff.changed_types:
        preview = ", ".join(f"{k}:{ot}->{nt}" for (k, ot, nt) in diff.changed_types[:max_items])
        more = "…" if len(diff.changed_types) > max_items else ""
        parts.append(f"~{len(diff.changed_types)} ({preview}{more})")
    return "; ".join(parts)
