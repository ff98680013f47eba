# services/api/core/locks.py
"""
Named lock registries.

Collections, sequence counters and individual records are the only shared
mutable state in the service. Each name gets its own lock, created lazily.
Valid for a single-process deployment only (one writer process per data file).
"""
from __future__ import annotations

import asyncio
import threading
from typing import Dict


class NamedLocks:
    """Thread locks keyed by resource name (re-entrant, so nested store calls are fine)."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.RLock] = {}

    def get(self, name: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(name)
            if lock is None:
                lock = threading.RLock()
                self._locks[name] = lock
            return lock

    def __call__(self, name: str) -> threading.RLock:
        return self.get(name)


class NamedAsyncLocks:
    """asyncio locks keyed by name. Must be used from a single event loop."""

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}

    def get(self, name: str) -> asyncio.Lock:
        lock = self._locks.get(name)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[name] = lock
        return lock

    def __call__(self, name: str) -> asyncio.Lock:
        return self.get(name)

    def discard(self, name: str) -> None:
        lock = self._locks.get(name)
        if lock is not None and not lock.locked():
            del self._locks[name]
