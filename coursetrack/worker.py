"""Background worker process.

RUN:  python -m coursetrack.worker

Same image as the API, different command:
  api:    uvicorn coursetrack.main:app --host 0.0.0.0 --port 8000
  worker: python -m coursetrack.worker

The loop polls every registered queue round-robin, dispatches one task
at a time to its handler and logs the outcome.  A failing handler is
logged with its traceback and the loop moves on.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from coursetrack.core.config import SETTINGS
from coursetrack.core.logging import setup_logging
from coursetrack.services.providers import leaderboard
from coursetrack.services.task_queue import (
    COURSE_COMPLETED,
    LEADERBOARD_REFRESH,
    Task,
    task_queue,
)

TaskHandler = Callable[[dict], Coroutine[Any, Any, None]]

logger = logging.getLogger("coursetrack.worker")


# ---------------------------------------------------------------------------
# Handler registry
# ---------------------------------------------------------------------------

HANDLERS: dict[str, TaskHandler] = {}


def register_handler(queue: str):
    """Decorator: register a coroutine as the handler for a queue."""

    def decorator(func):
        HANDLERS[queue] = func
        return func

    return decorator


# ---------------------------------------------------------------------------
# Task handlers
# ---------------------------------------------------------------------------


@register_handler(COURSE_COMPLETED)
async def handle_course_completed(payload: dict) -> None:
    """A learner finished a course for the first time.

    This is where the certificate renderer is notified; it calls the
    certificate-eligibility endpoint before rendering anything.
    """
    logger.info(
        "Course completed: enrollment=%s student=%s course=%s at=%s",
        payload.get("enrollment_id"),
        payload.get("student_id"),
        payload.get("course_id"),
        payload.get("completed_at"),
        extra={
            "student_id": payload.get("student_id"),
            "course_id": payload.get("course_id"),
        },
    )
    await leaderboard.invalidate()


@register_handler(LEADERBOARD_REFRESH)
async def handle_leaderboard_refresh(payload: dict) -> None:
    """Rebuild the cached leaderboard snapshot."""
    entries = await leaderboard.refresh()
    logger.info(
        "Leaderboard refreshed (%d ranked users, reason=%s)",
        len(entries),
        payload.get("reason", "unspecified"),
    )


# ---------------------------------------------------------------------------
# Main worker loop
# ---------------------------------------------------------------------------


async def process(task: Task) -> bool:
    """Run one task.  Returns False when its handler raised."""
    handler = HANDLERS[task.queue]
    try:
        await handler(task.payload)
    except Exception:
        logger.exception("Task %s on [%s] failed", task.id, task.queue)
        return False
    logger.info("Task %s on [%s] completed", task.id, task.queue)
    return True


async def run_worker() -> None:
    """Poll all registered queues and dispatch tasks to handlers."""
    queues = list(HANDLERS.keys())
    logger.info("Worker started, listening on queues: %s", queues)

    while True:
        idle = True
        for queue_name in queues:
            task = await task_queue.dequeue(queue_name, timeout=1)
            if task is None:
                continue
            idle = False
            await process(task)
        if idle:
            # in-memory dequeue returns at once; avoid spinning
            await asyncio.sleep(0.5)


if __name__ == "__main__":
    setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
    asyncio.run(run_worker())
