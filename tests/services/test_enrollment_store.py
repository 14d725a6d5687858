"""Enrollment lifecycle: one record per (student, course), reused across
every transition."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import UTC, datetime
from uuid import uuid4

import pytest

from coursetrack.models.course import Course
from coursetrack.models.enrollment import EnrollmentStatus
from coursetrack.repos.directory_repo import InMemoryCourseCatalog
from coursetrack.repos.enrollment_repo import InMemoryEnrollmentRepo
from coursetrack.services.enrollment_store import EnrollmentStore
from coursetrack.services.errors import (
    AlreadyEnrolledError,
    InvalidStateError,
    NotFoundError,
)
from coursetrack.services.locks import KeyedLock

NOW = datetime(2026, 2, 1, 12, 0, tzinfo=UTC)


class _SlowRepo(InMemoryEnrollmentRepo):
    """Yields to the loop on every lookup so concurrent callers interleave."""

    async def get_for(self, student_id, course_id):
        await asyncio.sleep(0.01)
        return await super().get_for(student_id, course_id)


@pytest.fixture
def repo() -> InMemoryEnrollmentRepo:
    return InMemoryEnrollmentRepo()


@pytest.fixture
def course() -> Course:
    return Course.new(title="Data Science", lesson_durations=[60, 60])


@pytest.fixture
def store(repo, course) -> EnrollmentStore:
    catalog = InMemoryCourseCatalog()
    catalog.add(course)
    return EnrollmentStore(repo, catalog, KeyedLock(), clock=lambda: NOW)


def test_create_starts_pending(store, course) -> None:
    student = uuid4()
    enrollment = asyncio.run(store.create_enrollment(student, course.id))
    assert enrollment.status == EnrollmentStatus.PENDING
    assert enrollment.activated_at is None
    assert enrollment.completed_lesson_ids == frozenset()


def test_create_for_unknown_course_is_not_found(store) -> None:
    with pytest.raises(NotFoundError):
        asyncio.run(store.create_enrollment(uuid4(), uuid4()))


def test_repeated_create_returns_same_pending_record(store, course) -> None:
    student = uuid4()
    first = asyncio.run(store.create_enrollment(student, course.id))
    second = asyncio.run(store.create_enrollment(student, course.id))
    assert second.id == first.id
    assert len(asyncio.run(store.list_enrollments(student))) == 1


def test_create_when_active_is_already_enrolled(store, course) -> None:
    student = uuid4()
    pending = asyncio.run(store.create_enrollment(student, course.id))
    asyncio.run(store.activate_enrollment(pending.id))
    with pytest.raises(AlreadyEnrolledError):
        asyncio.run(store.create_enrollment(student, course.id))


def test_concurrent_creates_yield_single_record() -> None:
    repo = _SlowRepo()
    catalog = InMemoryCourseCatalog()
    course = Course.new(title="Race", lesson_durations=[5])
    catalog.add(course)
    store = EnrollmentStore(repo, catalog, KeyedLock(), clock=lambda: NOW)
    student = uuid4()

    async def many():
        return await asyncio.gather(
            *(store.create_enrollment(student, course.id) for _ in range(5))
        )

    results = asyncio.run(many())
    assert len({e.id for e in results}) == 1
    assert len(asyncio.run(repo.list_by_student(student))) == 1


def test_activate_moves_pending_to_active(store, course) -> None:
    pending = asyncio.run(store.create_enrollment(uuid4(), course.id))
    active = asyncio.run(store.activate_enrollment(pending.id))
    assert active.id == pending.id
    assert active.status == EnrollmentStatus.ACTIVE
    assert active.activated_at == NOW


def test_activate_twice_is_harmless(store, course) -> None:
    pending = asyncio.run(store.create_enrollment(uuid4(), course.id))
    first = asyncio.run(store.activate_enrollment(pending.id))
    second = asyncio.run(store.activate_enrollment(pending.id))
    assert second == first


def test_activate_cancelled_is_invalid(store, course) -> None:
    pending = asyncio.run(store.create_enrollment(uuid4(), course.id))
    asyncio.run(store.cancel_enrollment(pending.id))
    with pytest.raises(InvalidStateError, match="cancelled"):
        asyncio.run(store.activate_enrollment(pending.id))


def test_activate_unknown_enrollment_is_not_found(store) -> None:
    with pytest.raises(NotFoundError):
        asyncio.run(store.activate_enrollment(uuid4()))


def test_grant_free_creates_free_enrollment(store, course) -> None:
    enrollment = asyncio.run(store.grant_free(uuid4(), course.id))
    assert enrollment.status == EnrollmentStatus.FREE
    assert enrollment.activated_at == NOW


def test_grant_free_upgrades_pending(store, course) -> None:
    student = uuid4()
    pending = asyncio.run(store.create_enrollment(student, course.id))
    free = asyncio.run(store.grant_free(student, course.id))
    assert free.id == pending.id
    assert free.status == EnrollmentStatus.FREE


def test_grant_free_on_active_is_already_enrolled(store, course) -> None:
    student = uuid4()
    pending = asyncio.run(store.create_enrollment(student, course.id))
    asyncio.run(store.activate_enrollment(pending.id))
    with pytest.raises(AlreadyEnrolledError):
        asyncio.run(store.grant_free(student, course.id))


def test_cancel_then_create_reopens_same_record_with_progress(
    store, repo, course
) -> None:
    student = uuid4()
    pending = asyncio.run(store.create_enrollment(student, course.id))
    active = asyncio.run(store.activate_enrollment(pending.id))
    with_progress = replace(
        active, completed_lesson_ids=frozenset({course.lessons[0].id})
    )
    asyncio.run(repo.save(with_progress))

    cancelled = asyncio.run(store.cancel_enrollment(pending.id))
    assert cancelled.status == EnrollmentStatus.CANCELLED
    assert asyncio.run(store.cancel_enrollment(pending.id)) == cancelled

    reopened = asyncio.run(store.create_enrollment(student, course.id))
    assert reopened.id == pending.id
    assert reopened.status == EnrollmentStatus.PENDING
    assert reopened.completed_lesson_ids == frozenset({course.lessons[0].id})


def test_roster_lists_only_access_granting_enrollments(store, course) -> None:
    pending = asyncio.run(store.create_enrollment(uuid4(), course.id))
    active_student = uuid4()
    p = asyncio.run(store.create_enrollment(active_student, course.id))
    asyncio.run(store.activate_enrollment(p.id))
    free = asyncio.run(store.grant_free(uuid4(), course.id))

    roster = asyncio.run(store.list_course_roster(course.id))
    ids = {e.id for e in roster}
    assert ids == {p.id, free.id}
    assert pending.id not in ids


def test_get_enrollment_missing_is_not_found(store, course) -> None:
    with pytest.raises(NotFoundError):
        asyncio.run(store.get_enrollment(uuid4(), course.id))
