# File: src/smartpark/application/locks.py
"""Keyed mutual exclusion for slot, reservation and session state changes."""

from contextlib import contextmanager
from typing import Dict, Iterator, Optional
import logging
import threading


class KeyedLockManager:
    """
    One re-entrant lock per key (slot id, reservation id, session id).

    hold() takes several keys at once, always in sorted order, so two
    callers asking for the same keys cannot deadlock each other.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.RLock] = {}
        self.logger = logging.getLogger(self.__class__.__name__)

    def _lock_for(self, key: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, *keys: Optional[str]) -> Iterator[None]:
        ordered = sorted({key for key in keys if key})
        acquired = []
        try:
            for key in ordered:
                lock = self._lock_for(key)
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()

    def __len__(self) -> int:
        return len(self._locks)
