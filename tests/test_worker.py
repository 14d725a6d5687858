from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from uuid import uuid4

import pytest

from coursetrack import worker
from coursetrack.models.achievement import Achievement
from coursetrack.services import providers
from coursetrack.services.cache import cache_service
from coursetrack.services.leaderboard import SNAPSHOT_KEY
from coursetrack.services.task_queue import (
    COURSE_COMPLETED,
    LEADERBOARD_REFRESH,
    Task,
    task_queue,
)


def test_every_queue_has_a_handler() -> None:
    assert set(worker.HANDLERS) == {COURSE_COMPLETED, LEADERBOARD_REFRESH}


def test_refresh_task_writes_snapshot() -> None:
    asyncio.run(
        providers.achievement_repo.add(
            Achievement.new(
                user_id=uuid4(),
                title="first",
                points=5,
                earned_at=datetime(2026, 1, 1, tzinfo=UTC),
            )
        )
    )
    task = Task(id="t-1", queue=LEADERBOARD_REFRESH, payload={"reason": "test"})
    assert asyncio.run(worker.process(task)) is True
    assert asyncio.run(cache_service.get(SNAPSHOT_KEY)) is not None


def test_completion_task_drops_snapshot() -> None:
    asyncio.run(cache_service.set(SNAPSHOT_KEY, "[]", 60))
    task = asyncio.run(
        task_queue.enqueue(
            COURSE_COMPLETED,
            {"enrollment_id": "e", "student_id": "s", "course_id": "c"},
        )
    )
    assert asyncio.run(worker.process(task)) is True
    assert asyncio.run(cache_service.get(SNAPSHOT_KEY)) is None


def test_failing_handler_is_reported_not_raised(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    async def broken(payload: dict) -> None:
        raise RuntimeError("renderer down")

    monkeypatch.setitem(worker.HANDLERS, COURSE_COMPLETED, broken)
    task = Task(id="t-2", queue=COURSE_COMPLETED, payload={})
    assert asyncio.run(worker.process(task)) is False
