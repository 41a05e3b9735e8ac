from __future__ import annotations

from typing import Any, Iterable, List

from .constants import PAGE_SIZE, PAGE_TIMEOUT_S
from .events import debug


def fetch_page(collection: Any, *, offset: int, limit: int, timeout_s: float) -> List[Any]:
    """
    One offset/limit page of document snapshots, fully materialised so the
    caller can descend into sub-collections without holding a stream open.
    """
    query = collection.offset(offset).limit(limit) if offset else collection.limit(limit)
    return list(query.stream(timeout=timeout_s))


def iter_documents(
    collection: Any,
    *,
    page_size: int = PAGE_SIZE,
    timeout_s: float = PAGE_TIMEOUT_S,
    path: str = "",
) -> Iterable[Any]:
    """
    Offset pagination, strictly forward. A short page ends the level.
    """
    offset = 0
    page = 0

    while True:
        page += 1
        docs = fetch_page(collection, offset=offset, limit=page_size, timeout_s=timeout_s)
        debug("paging.page", path=path, page=page, offset=offset, returned=len(docs))

        for doc in docs:
            yield doc

        if len(docs) < page_size:
            break
        offset += len(docs)
