import threading
from contextlib import contextmanager
from typing import Iterator


class UidLocks:
    """Registry of one exclusive lock per uid. Locks are kept for the process lifetime."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def _lock_for(self, uid: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(uid)
            if lock is None:
                lock = self._locks[uid] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, uid: str) -> Iterator[None]:
        lock = self._lock_for(uid)
        with lock:
            yield
