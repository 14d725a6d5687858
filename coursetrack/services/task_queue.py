"""Background task queue using Redis lists.

Work that talks to other systems (notifying the certificate renderer
that a course was completed, rebuilding the leaderboard snapshot) is
enqueued after the enrollment mutation has committed and its lock has
been released, so a slow consumer never holds up a learner's request.

  Producer (API):    LPUSH task onto a Redis list, return immediately
  Consumer (worker): BRPOP from the list, dispatch to a handler, loop

LPUSH at the head plus BRPOP from the tail gives FIFO order.  Delivery
is at-most-once: a task is lost if the worker dies mid-handler.  Both
handlers are idempotent and the leaderboard cache has a TTL, so a lost
task only delays derived data.

Queues:
  course_completed     payload {enrollment_id, student_id, course_id, completed_at}
  leaderboard_refresh  payload {reason}
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from coursetrack.core.metrics import QUEUE_DEPTH
from coursetrack.db.redis import redis_pool

COURSE_COMPLETED = "course_completed"
LEADERBOARD_REFRESH = "leaderboard_refresh"


@dataclass(frozen=True, slots=True)
class Task:
    """A unit of background work.

    id:      unique identifier for tracking in logs
    queue:   which queue the task belongs to
    payload: JSON-serializable data for the handler
    """

    id: str
    queue: str
    payload: dict


@runtime_checkable
class TaskQueue(Protocol):
    async def enqueue(self, queue: str, payload: dict) -> Task: ...
    async def dequeue(self, queue: str, timeout: int = 0) -> Task | None: ...
    async def queue_length(self, queue: str) -> int: ...


class InMemoryTaskQueue:
    """In-memory task queue for dev and tests."""

    def __init__(self) -> None:
        self._queues: dict[str, list[Task]] = {}

    async def enqueue(self, queue: str, payload: dict) -> Task:
        task = Task(id=str(uuid.uuid4()), queue=queue, payload=payload)
        tasks = self._queues.setdefault(queue, [])
        tasks.append(task)
        QUEUE_DEPTH.labels(queue_name=queue).set(len(tasks))
        return task

    async def dequeue(self, queue: str, timeout: int = 0) -> Task | None:
        tasks = self._queues.get(queue, [])
        if not tasks:
            return None
        task = tasks.pop(0)
        QUEUE_DEPTH.labels(queue_name=queue).set(len(tasks))
        return task

    async def queue_length(self, queue: str) -> int:
        return len(self._queues.get(queue, []))

    def clear(self) -> None:
        self._queues.clear()


class RedisTaskQueue:
    """Redis-backed task queue using LPUSH/BRPOP."""

    _PREFIX = "tasks:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    async def enqueue(self, queue: str, payload: dict) -> Task:
        task = Task(id=str(uuid.uuid4()), queue=queue, payload=payload)
        task_json = json.dumps(
            {"id": task.id, "queue": task.queue, "payload": task.payload}
        )
        depth = await self._redis.lpush(f"{self._PREFIX}{queue}", task_json)
        QUEUE_DEPTH.labels(queue_name=queue).set(depth)
        return task

    async def dequeue(self, queue: str, timeout: int = 5) -> Task | None:
        # Blocks up to `timeout` seconds; None when nothing arrived
        result = await self._redis.brpop(f"{self._PREFIX}{queue}", timeout=timeout)
        if result is None:
            return None
        _, task_json = result
        QUEUE_DEPTH.labels(queue_name=queue).set(await self.queue_length(queue))
        return Task(**json.loads(task_json))

    async def queue_length(self, queue: str) -> int:
        return await self._redis.llen(f"{self._PREFIX}{queue}")


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

if redis_pool is not None:
    task_queue: TaskQueue = RedisTaskQueue(redis_pool)
else:
    task_queue = InMemoryTaskQueue()
