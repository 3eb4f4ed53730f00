"""
Per-key asyncio locks.

Used to serialize payments for a single user while letting different users
proceed concurrently.
"""

import asyncio
import weakref
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class KeyedLock:
    """
    A table of ``asyncio.Lock`` objects, one per key, created on demand.

    The locks live in one event loop of one process. Serialization holds only
    when the service runs as a single worker; separate uvicorn workers each
    have their own table.
    """

    def __init__(self) -> None:
        # Locks vanish once nobody holds or waits on them.
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        """Hold the lock for ``key`` for the duration of the block."""
        lock = self.lock_for(key)
        async with lock:
            yield
