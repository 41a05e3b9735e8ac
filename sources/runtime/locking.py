from __future__ import annotations

import os
import threading
from contextlib import contextmanager
from typing import Iterator, Set

import portalocker


@contextmanager
def file_lock(file_path: str) -> Iterator[None]:
    """Cross-process exclusive lock held for the duration of the block."""
    abs_path = os.path.abspath(file_path)
    parent = os.path.dirname(abs_path)
    if parent:
        os.makedirs(parent, exist_ok=True)

    with open(abs_path, "a+", encoding="utf-8") as f:
        portalocker.lock(f, portalocker.LOCK_EX)
        try:
            yield
        finally:
            portalocker.unlock(f)


class ClaimSet:
    """
    Concurrent set with atomic claim-or-skip semantics.

    claim(key) returns True for exactly one caller until that caller
    releases the key.
    """

    def __init__(self) -> None:
        self._keys: Set[str] = set()
        self._lock = threading.Lock()

    def claim(self, key: str) -> bool:
        with self._lock:
            if key in self._keys:
                return False
            self._keys.add(key)
            return True

    def release(self, key: str) -> None:
        with self._lock:
            self._keys.discard(key)

    def add(self, key: str) -> None:
        with self._lock:
            self._keys.add(key)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._keys

    def snapshot(self) -> Set[str]:
        with self._lock:
            return set(self._keys)


class ReadWriteLock:
    """Many concurrent readers or one writer. Writers are not starved by new readers."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            while self._writer or self._readers:
                self._cond.wait()
            self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()
