from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol
from uuid import UUID

from coursetrack.models.enrollment import Enrollment, EnrollmentStatus


class EnrollmentRepo(Protocol):
    async def get(self, enrollment_id: UUID) -> Enrollment | None: ...
    async def get_for(self, student_id: UUID, course_id: UUID) -> Enrollment | None: ...
    async def add_if_absent(self, enrollment: Enrollment) -> Enrollment: ...
    async def save(self, enrollment: Enrollment) -> None: ...
    async def list_by_student(self, student_id: UUID) -> list[Enrollment]: ...
    async def list_by_students(
        self, student_ids: Iterable[UUID]
    ) -> list[Enrollment]: ...
    async def list_by_course(
        self,
        course_id: UUID,
        statuses: Iterable[EnrollmentStatus] | None = None,
    ) -> list[Enrollment]: ...


class InMemoryEnrollmentRepo:
    """Dict-backed repo keyed by (student_id, course_id).

    Methods never await, so each call is atomic with respect to other
    coroutines on the same event loop.
    """

    def __init__(self) -> None:
        self._by_key: dict[tuple[UUID, UUID], Enrollment] = {}

    async def get(self, enrollment_id: UUID) -> Enrollment | None:
        for enrollment in self._by_key.values():
            if enrollment.id == enrollment_id:
                return enrollment
        return None

    async def get_for(self, student_id: UUID, course_id: UUID) -> Enrollment | None:
        return self._by_key.get((student_id, course_id))

    async def add_if_absent(self, enrollment: Enrollment) -> Enrollment:
        """Insert unless the pair exists; return whichever record is stored."""
        return self._by_key.setdefault(enrollment.key, enrollment)

    async def save(self, enrollment: Enrollment) -> None:
        existing = self._by_key.get(enrollment.key)
        if existing is not None and existing.id != enrollment.id:
            raise ValueError("enrollment identity changed for existing pair")
        self._by_key[enrollment.key] = enrollment

    async def list_by_student(self, student_id: UUID) -> list[Enrollment]:
        found = [e for e in self._by_key.values() if e.student_id == student_id]
        return sorted(found, key=lambda e: e.created_at)

    async def list_by_students(self, student_ids: Iterable[UUID]) -> list[Enrollment]:
        wanted = set(student_ids)
        return [e for e in self._by_key.values() if e.student_id in wanted]

    async def list_by_course(
        self,
        course_id: UUID,
        statuses: Iterable[EnrollmentStatus] | None = None,
    ) -> list[Enrollment]:
        allowed = set(statuses) if statuses is not None else None
        return [
            e
            for e in self._by_key.values()
            if e.course_id == course_id and (allowed is None or e.status in allowed)
        ]

    def clear(self) -> None:
        self._by_key.clear()
