"""Per-reminder locks serializing delete-then-insert sequences."""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List


class KeyedLocks:
    """Registry of re-entrant locks keyed by reminder id.

    Holders of different keys never block each other. An entry is dropped once
    no thread holds or waits for it.
    """

    def __init__(self):
        self._guard = threading.Lock()
        # key -> [lock, holders + waiters]
        self._entries: Dict[str, List] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = [threading.RLock(), 0]
                self._entries[key] = entry
            entry[1] += 1
        lock = entry[0]
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._entries.pop(key, None)

    def active_keys(self) -> int:
        with self._guard:
            return len(self._entries)


# Process-wide registry shared by every session/request.
reminder_locks = KeyedLocks()
