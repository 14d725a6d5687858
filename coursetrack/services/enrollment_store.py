"""Enrollment lifecycle.

    pending ──activate──▶ active
       │                    │
       └──grant_free──▶ free │
                            ▼
    any ─────cancel────▶ cancelled ──create──▶ pending (same record)

At most one record exists per (student, course).  Every transition
reuses that record: a repeated create returns the pending one, a
create after cancellation reopens it, and progress survives
cancellation.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import replace
from datetime import UTC, datetime
from uuid import UUID

from coursetrack.core.metrics import ENROLLMENT_TRANSITIONS
from coursetrack.models.enrollment import Enrollment, EnrollmentStatus
from coursetrack.repos.directory_repo import CourseCatalog
from coursetrack.repos.enrollment_repo import EnrollmentRepo
from coursetrack.services.errors import (
    AlreadyEnrolledError,
    InvalidStateError,
    NotFoundError,
)
from coursetrack.services.locks import KeyedLock

logger = logging.getLogger(__name__)


class EnrollmentStore:
    def __init__(
        self,
        enrollments: EnrollmentRepo,
        catalog: CourseCatalog,
        locks: KeyedLock,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._enrollments = enrollments
        self._catalog = catalog
        self._locks = locks
        self._clock = clock or (lambda: datetime.now(UTC))

    @staticmethod
    def _lock_key(student_id: UUID, course_id: UUID) -> tuple:
        return ("enrollment", student_id, course_id)

    async def _require_course(self, course_id: UUID) -> None:
        if await self._catalog.get_course(course_id) is None:
            raise NotFoundError("Course not found")

    async def _insert(self, candidate: Enrollment) -> Enrollment | None:
        """Insert ``candidate``.

        Returns None when it was stored, or the record another writer
        created for the same pair first.
        """
        stored = await self._enrollments.add_if_absent(candidate)
        if stored.id != candidate.id:
            return stored
        self._transitioned(stored)
        return None

    async def _save(self, enrollment: Enrollment) -> Enrollment:
        await self._enrollments.save(enrollment)
        self._transitioned(enrollment)
        return enrollment

    def _transitioned(self, enrollment: Enrollment) -> None:
        ENROLLMENT_TRANSITIONS.labels(status=enrollment.status).inc()
        logger.info(
            "Enrollment %s is now %s",
            enrollment.id,
            enrollment.status,
            extra={
                "student_id": str(enrollment.student_id),
                "course_id": str(enrollment.course_id),
            },
        )

    async def create_enrollment(
        self, student_id: UUID, course_id: UUID, *, timeout: float | None = None
    ) -> Enrollment:
        """Start a purchase.  Active/free pairs raise AlreadyEnrolledError."""
        async with asyncio.timeout(timeout):
            await self._require_course(course_id)
            async with self._locks.hold(self._lock_key(student_id, course_id)):
                existing = await self._enrollments.get_for(student_id, course_id)
                if existing is None:
                    candidate = Enrollment.new(
                        student_id=student_id, course_id=course_id, now=self._clock()
                    )
                    existing = await self._insert(candidate)
                    if existing is None:
                        return candidate

                if existing.status.grants_access:
                    raise AlreadyEnrolledError()
                if existing.status == EnrollmentStatus.PENDING:
                    return existing
                return await self._save(
                    replace(
                        existing,
                        status=EnrollmentStatus.PENDING,
                        updated_at=self._clock(),
                    )
                )

    async def activate_enrollment(
        self, enrollment_id: UUID, *, timeout: float | None = None
    ) -> Enrollment:
        """Payment confirmed: pending -> active.  Repeating it is harmless."""
        async with asyncio.timeout(timeout):
            found = await self.get_by_id(enrollment_id)
            async with self._locks.hold(
                self._lock_key(found.student_id, found.course_id)
            ):
                current = await self.get_by_id(enrollment_id)
                if current.status == EnrollmentStatus.ACTIVE:
                    return current
                if current.status != EnrollmentStatus.PENDING:
                    raise InvalidStateError(
                        f"Cannot activate an enrollment that is {current.status}"
                    )
                now = self._clock()
                return await self._save(
                    replace(
                        current,
                        status=EnrollmentStatus.ACTIVE,
                        activated_at=now,
                        updated_at=now,
                    )
                )

    async def grant_free(
        self, student_id: UUID, course_id: UUID, *, timeout: float | None = None
    ) -> Enrollment:
        async with asyncio.timeout(timeout):
            await self._require_course(course_id)
            async with self._locks.hold(self._lock_key(student_id, course_id)):
                existing = await self._enrollments.get_for(student_id, course_id)
                if existing is None:
                    candidate = Enrollment.new(
                        student_id=student_id,
                        course_id=course_id,
                        now=self._clock(),
                        status=EnrollmentStatus.FREE,
                    )
                    existing = await self._insert(candidate)
                    if existing is None:
                        return candidate

                if existing.status == EnrollmentStatus.FREE:
                    return existing
                if existing.status == EnrollmentStatus.ACTIVE:
                    raise AlreadyEnrolledError()
                now = self._clock()
                return await self._save(
                    replace(
                        existing,
                        status=EnrollmentStatus.FREE,
                        activated_at=existing.activated_at or now,
                        updated_at=now,
                    )
                )

    async def cancel_enrollment(
        self, enrollment_id: UUID, *, timeout: float | None = None
    ) -> Enrollment:
        async with asyncio.timeout(timeout):
            found = await self.get_by_id(enrollment_id)
            async with self._locks.hold(
                self._lock_key(found.student_id, found.course_id)
            ):
                current = await self.get_by_id(enrollment_id)
                if current.status == EnrollmentStatus.CANCELLED:
                    return current
                return await self._save(
                    replace(
                        current,
                        status=EnrollmentStatus.CANCELLED,
                        updated_at=self._clock(),
                    )
                )

    async def get_by_id(self, enrollment_id: UUID) -> Enrollment:
        enrollment = await self._enrollments.get(enrollment_id)
        if enrollment is None:
            raise NotFoundError("Enrollment not found")
        return enrollment

    async def get_enrollment(self, student_id: UUID, course_id: UUID) -> Enrollment:
        enrollment = await self._enrollments.get_for(student_id, course_id)
        if enrollment is None:
            raise NotFoundError("Enrollment not found")
        return enrollment

    async def list_enrollments(self, student_id: UUID) -> list[Enrollment]:
        return await self._enrollments.list_by_student(student_id)

    async def list_course_roster(self, course_id: UUID) -> list[Enrollment]:
        """Enrollments that currently grant access to the course."""
        return await self._enrollments.list_by_course(
            course_id, statuses=(EnrollmentStatus.ACTIVE, EnrollmentStatus.FREE)
        )
