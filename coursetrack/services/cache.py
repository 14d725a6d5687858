"""Read-through cache for derived views.

Flow:  caller -> cache -> hit  -> return
       caller -> cache -> miss -> compute -> store with TTL -> return

Only derived data is cached (the leaderboard snapshot).  Entries carry a
TTL as a backstop, and writers that change the inputs (achievement
awards, course completions) delete the entry explicitly so readers see
the change on their next call.
"""

from __future__ import annotations

import time
from typing import Protocol, runtime_checkable

from coursetrack.db.redis import redis_pool


@runtime_checkable
class CacheService(Protocol):
    async def get(self, key: str) -> str | None:
        """Fetch a cached value.  Returns None on cache miss."""
        ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store a value with a TTL (time to live)."""
        ...

    async def delete(self, key: str) -> None:
        """Explicitly invalidate a cached entry."""
        ...


class InMemoryCacheService:
    """Process-local cache.  Expiry is checked lazily on ``get``.

    The autouse fixture in conftest.py clears the store between tests.
    """

    def __init__(self) -> None:
        self._store: dict[str, tuple[str, float]] = {}

    async def get(self, key: str) -> str | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if time.monotonic() >= expires_at:
            del self._store[key]
            return None
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._store[key] = (value, time.monotonic() + ttl_seconds)

    async def delete(self, key: str) -> None:
        self._store.pop(key, None)

    def clear(self) -> None:
        self._store.clear()


class RedisCacheService:
    """Redis-backed cache, shared by every API instance and the worker."""

    # Prefix keeps cache keys apart from the task queue lists
    _PREFIX = "cache:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    async def get(self, key: str) -> str | None:
        return await self._redis.get(f"{self._PREFIX}{key}")

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self._redis.setex(f"{self._PREFIX}{key}", ttl_seconds, value)

    async def delete(self, key: str) -> None:
        await self._redis.delete(f"{self._PREFIX}{key}")


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

if redis_pool is not None:
    cache_service: CacheService = RedisCacheService(redis_pool)
else:
    cache_service = InMemoryCacheService()
