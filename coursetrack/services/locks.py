"""In-process mutex keyed by natural identity.

Read-modify-write operations (complete a lesson, record a join) take
the lock for their key so two concurrent calls on the same
enrollment or attendance row are serialized, while calls on different
keys run in parallel.

Each key's asyncio.Lock is reference counted and dropped once nobody
holds or waits on it, so the table stays proportional to in-flight
work rather than to every key ever seen.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Hashable
from contextlib import asynccontextmanager


class KeyedLock:
    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._users: dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)
