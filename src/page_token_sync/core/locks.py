"""Per-key mutual exclusion for read-then-write sequences.

Writes that touch one resource's (or one principal's) credential run inside
``KeyedLocks.hold(key)``.  Distinct keys never contend, and a key's lock is
dropped from the registry once nobody holds or waits for it.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager


def resource_key(resource_id: str) -> str:
    return f"resource:{resource_id}"


def principal_key(external_id: str) -> str:
    return f"principal:{external_id}"


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class KeyedLocks:
    """Registry of lazily created, reference-counted locks."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: dict[str, _Entry] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _Entry()
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._entries[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)
