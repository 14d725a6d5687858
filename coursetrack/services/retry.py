"""Bounded retry with exponential backoff for transient storage failures.

Only wrap idempotent calls.  Every repo write in this service is an
upsert keyed by natural identity, so repeating one after a dropped
connection converges on the same row.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

from sqlalchemy.exc import InterfaceError, OperationalError

from coursetrack.core.config import SETTINGS
from coursetrack.core.metrics import STORAGE_RETRIES
from coursetrack.services.errors import TransientStorageError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    OperationalError,
    InterfaceError,
    TransientStorageError,
    ConnectionError,
)


def retry_transient(
    attempts: int | None = None,
    backoff_seconds: float | None = None,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Decorator: retry an async call on transient storage errors.

    Defaults come from STORAGE_RETRY_ATTEMPTS and
    STORAGE_RETRY_BACKOFF_SECONDS; the delay doubles after each failure.
    """
    max_attempts = attempts or SETTINGS.storage_retry_attempts
    base_delay = backoff_seconds or SETTINGS.storage_retry_backoff_seconds

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            delay = base_delay
            for attempt in range(1, max_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except TRANSIENT_ERRORS:
                    if attempt == max_attempts:
                        logger.exception(
                            "%s failed after %d attempts",
                            func.__qualname__,
                            max_attempts,
                        )
                        raise
                    STORAGE_RETRIES.labels(operation=func.__qualname__).inc()
                    logger.warning(
                        "%s attempt %d failed, retrying in %.3fs",
                        func.__qualname__,
                        attempt,
                        delay,
                    )
                    await asyncio.sleep(delay)
                    delay *= 2
            raise AssertionError("unreachable")

        return wrapper

    return decorator
