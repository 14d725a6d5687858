"""Redis connection management.

Mirrors engine.py: when REDIS_URL is configured a connection pool is
created at import time; when it is None (local dev, tests) the cache
and task queue fall back to in-memory implementations.

Redis holds only derived or transient data here: the leaderboard
snapshot and the background task queues.  Enrollment and attendance
state never lives in Redis.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis

from coursetrack.core.config import SETTINGS

logger = logging.getLogger(__name__)

if SETTINGS.redis_url:
    redis_pool: aioredis.Redis | None = aioredis.from_url(  # type: ignore[type-arg]
        SETTINGS.redis_url,
        decode_responses=True,
        max_connections=20,
    )
else:
    redis_pool = None


@asynccontextmanager
async def lifespan_redis():
    """Startup/shutdown hook for Redis, paired with lifespan_db()."""
    if redis_pool is None:
        logger.info("No REDIS_URL configured; Redis features use in-memory fallbacks")
        yield
        return

    try:
        await redis_pool.ping()  # type: ignore[misc]
        logger.info("Redis connected: %s", SETTINGS.redis_url)
    except Exception:
        # The leaderboard cache is derived data; serve uncached rather
        # than refuse to start.
        logger.exception("Redis connection failed on startup")
        yield
        return

    yield

    await redis_pool.aclose()
    logger.info("Redis connection pool closed")
