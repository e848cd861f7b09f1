"""
Per-key locks that serialize operations on one student code or payment.
"""
import threading
from contextlib import contextmanager


class KeyedLocks:
    """
    Hands out one lock per key, so work on different keys never waits.

    Locks are reference counted and dropped once nobody holds or waits on
    them. They only serialize callers inside this process; the database
    constraints cover writers in other processes.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks = {}  # key -> [lock, users]

    @contextmanager
    def hold(self, key):
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.Lock(), 0]
            entry[1] += 1
        entry[0].acquire()
        try:
            yield
        finally:
            entry[0].release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def __len__(self):
        with self._guard:
            return len(self._locks)
