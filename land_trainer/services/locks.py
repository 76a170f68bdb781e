"""
Keyed Locks

Process-wide locks keyed by record id. An entry exists only while some
thread holds or is waiting for its lock, so the registry stays bounded in a
long-running server.
"""

import threading
from contextlib import contextmanager
from typing import Dict, List


class KeyedLocks:
    def __init__(self):
        self._guard = threading.Lock()
        # key -> [lock, number of holders and waiters]
        self._entries: Dict[str, List] = {}

    @contextmanager
    def hold(self, key: str):
        with self._guard:
            entry = self._entries.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._entries[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)
