"""
Process-local keyed mutex used to serialise evaluation runs per submission.

Cross-process races are handled by the conditional status write in the
persist stage; this only stops two requests in the same process from
evaluating one submission at the same time.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class KeyedLock:
    """
    One threading.Lock per key, created on demand.

    Entries are reference counted and dropped once no holder or waiter
    remains, so the map does not grow with every submission ever seen.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._refs: Dict[str, int] = {}

    def _acquire_entry(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            self._refs[key] = self._refs.get(key, 0) + 1
            return lock

    def _release_entry(self, key: str) -> None:
        with self._guard:
            remaining = self._refs.get(key, 1) - 1
            if remaining <= 0:
                self._refs.pop(key, None)
                self._locks.pop(key, None)
            else:
                self._refs[key] = remaining

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        if not key:
            raise ValueError("Lock key must be non-empty")
        lock = self._acquire_entry(str(key))
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            self._release_entry(str(key))

    def is_locked(self, key: str) -> bool:
        with self._guard:
            lock = self._locks.get(str(key))
        return bool(lock and lock.locked())

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


# Global singleton, shared by the HTTP app and the CLI.
SUBMISSION_LOCKS = KeyedLock()

__all__ = ["KeyedLock", "SUBMISSION_LOCKS"]
