# =====================================================
# FILE: app/core/locks.py
# Per-key critical sections (one writer per document / identity)
# =====================================================

import threading
from contextlib import contextmanager
from typing import Dict, Hashable


class KeyedLock:
    """
    Hands out one re-entrant lock per key. Entries are dropped once no
    thread holds or waits on them, so the registry does not grow with
    the number of documents ever touched.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, threading.RLock] = {}
        self._users: Dict[Hashable, int] = {}

    @contextmanager
    def hold(self, key: Hashable):
        with self._guard:
            lock = self._locks.setdefault(key, threading.RLock())
            self._users[key] = self._users.get(key, 0) + 1
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                self._users[key] -= 1
                if self._users[key] == 0:
                    del self._users[key]
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


document_locks = KeyedLock()
identity_locks = KeyedLock()
