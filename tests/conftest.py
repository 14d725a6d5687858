from __future__ import annotations

import sys
import uuid
from datetime import UTC, datetime
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from coursetrack.main import app
from coursetrack.models.attendance import Event
from coursetrack.models.course import Course
from coursetrack.services import providers, token_service
from coursetrack.services.cache import cache_service
from coursetrack.services.task_queue import task_queue

# Ensure repo root is on sys.path so `import coursetrack` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

STUDENT_ID = "11111111-1111-4111-8111-111111111111"
OTHER_STUDENT_ID = "22222222-2222-4222-8222-222222222222"
INSTRUCTOR_ID = "33333333-3333-4333-8333-333333333333"
ADMIN_ID = "44444444-4444-4444-8444-444444444444"


@pytest.fixture(autouse=True)
def reset_repos() -> None:
    """Clear the in-memory repos and directories between tests."""
    for repo in (
        providers.enrollment_repo,
        providers.attendance_repo,
        providers.achievement_repo,
        providers.course_catalog,
        providers.event_directory,
        providers.profile_directory,
    ):
        if hasattr(repo, "clear"):
            repo.clear()  # type: ignore[union-attr]


@pytest.fixture(autouse=True)
def reset_cache() -> None:
    """Clear cache between tests."""
    if hasattr(cache_service, "_store"):
        cache_service._store.clear()  # type: ignore[union-attr]


@pytest.fixture(autouse=True)
def reset_task_queue() -> None:
    """Clear task queues between tests."""
    if hasattr(task_queue, "_queues"):
        task_queue._queues.clear()  # type: ignore[union-attr]


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


def mint_token(
    user_id: str = STUDENT_ID,
    roles: list[str] | None = None,
) -> str:
    """Create a valid ES256 JWT for testing."""
    return token_service.create_access_token(sub=user_id, roles=roles)


def auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def token() -> str:
    """Token for a student."""
    return mint_token()


@pytest.fixture
def other_token() -> str:
    return mint_token(OTHER_STUDENT_ID)


@pytest.fixture
def instructor_token() -> str:
    return mint_token(INSTRUCTOR_ID, roles=["instructor"])


@pytest.fixture
def admin_token() -> str:
    """Token with admin role."""
    return mint_token(ADMIN_ID, roles=["admin"])


# ---------------------------------------------------------------------------
# Catalog helpers
# ---------------------------------------------------------------------------


def seed_course(title: str = "Intro", durations: list[int] | None = None) -> Course:
    """Add a course with lessons 1..N to the in-memory catalog."""
    course = Course.new(
        title=title,
        lesson_durations=[30, 45, 45] if durations is None else durations,
    )
    providers.course_catalog.add(course)  # type: ignore[union-attr]
    return course


def seed_event(
    course: Course,
    instructor_id: str = INSTRUCTOR_ID,
    meeting_date: datetime | None = None,
) -> Event:
    """Add a live session for ``course`` to the in-memory event directory."""
    event = Event.new(
        course_id=course.id,
        instructor_id=uuid.UUID(instructor_id),
        title=f"{course.title} live",
        meeting_date=meeting_date or datetime(2026, 3, 10, 15, 0, tzinfo=UTC),
    )
    providers.event_directory.add(event)  # type: ignore[union-attr]
    return event
