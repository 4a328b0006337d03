"""
Concurrency utilities.

- ``synchronized``: method decorator that holds the instance's ``_lock``.
- ``KeyedLocks``: one re-entrant lock per key (e.g. per device id), created
  on demand, so work for different keys never contends.
"""

from __future__ import annotations

import threading
from collections.abc import Hashable
from functools import wraps
from typing import Callable


def synchronized(func: Callable) -> Callable:
    """Decorator that acquires ``self._lock`` if present on the instance."""

    @wraps(func)
    def _wrapped(self, *args, **kwargs):
        lock = getattr(self, "_lock", None)
        if lock is None:
            return func(self, *args, **kwargs)
        with lock:
            return func(self, *args, **kwargs)

    return _wrapped


class KeyedLocks:
    """Lazily created RLock per key.

    Locks are never evicted: the key space (registered devices) is small and
    evicting a lock another thread is waiting on would break mutual exclusion.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[Hashable, threading.RLock] = {}

    def get(self, key: Hashable) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    def __call__(self, key: Hashable) -> threading.RLock:
        return self.get(key)
