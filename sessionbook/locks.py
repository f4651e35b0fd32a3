"""In-process keyed mutexes for the commit critical section."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date

log = logging.getLogger("sessionbook.locks")


def slot_lock_key(provider_id: str, day: date) -> str:
    return f"slot:{provider_id}:{day.isoformat()}:mutex"


def credit_lock_key(source: str) -> str:
    return f"credit:{source}:mutex"


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class KeyedLocks:
    """One ``threading.Lock`` per key, kept only while someone holds or waits on it."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: dict[str, _Entry] = {}

    def _checkout(self, key: str) -> threading.Lock:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.users += 1
            return entry.lock

    def _checkin(self, key: str) -> None:
        with self._guard:
            entry = self._entries[key]
            entry.users -= 1
            if entry.users == 0:
                del self._entries[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)

    @contextmanager
    def hold(self, *keys: str) -> Iterator[None]:
        """Hold every lock in ``keys``, acquired in sorted order."""
        ordered = sorted(set(keys))
        checked_out: list[str] = []
        acquired: list[threading.Lock] = []
        try:
            for key in ordered:
                lock = self._checkout(key)
                checked_out.append(key)
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
            for key in checked_out:
                self._checkin(key)
