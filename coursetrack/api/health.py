"""Health and readiness endpoints.

  /health (liveness)   "is the process alive?"  Always 200; the body
                       reports per-dependency status.
  /ready  (readiness)  "can this instance take traffic?"  503 while the
                       database is configured but unreachable.  Redis is
                       not critical: the leaderboard serves uncached and a
                       failed completion task is logged, not retried.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Response, status
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from coursetrack.db.engine import engine
from coursetrack.db.redis import redis_pool

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


async def _check_redis() -> str:
    if redis_pool is None:
        return "not_configured"
    try:
        await redis_pool.ping()  # type: ignore[misc]
    except (RedisError, OSError):
        logger.warning("Redis health check failed", exc_info=True)
        return "degraded"
    return "ok"


async def _check_database() -> str:
    if engine is None:
        return "not_configured"
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError):
        logger.warning("Database health check failed", exc_info=True)
        return "degraded"
    return "ok"


@router.get("/health")
async def health() -> dict:
    """Liveness probe plus dependency status.

    Returns 200 even when degraded; a 503 here would make the
    orchestrator restart a process that is only waiting on a dependency.
    """
    checks = {
        "database": await _check_database(),
        "redis": await _check_redis(),
    }
    overall = "degraded" if "degraded" in checks.values() else "ok"
    return {"status": overall, "checks": checks}


@router.get("/ready")
async def ready() -> Response:
    """Readiness probe.  The database is the only critical dependency."""
    if await _check_database() == "degraded":
        return Response(status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return Response(status_code=status.HTTP_200_OK)
