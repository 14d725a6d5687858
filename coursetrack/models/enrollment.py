from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from uuid import UUID, uuid4


class EnrollmentStatus(StrEnum):
    PENDING = "pending"  # purchase initiated, waiting for payment
    ACTIVE = "active"  # payment confirmed
    FREE = "free"  # granted without payment
    CANCELLED = "cancelled"

    @property
    def grants_access(self) -> bool:
        return self in (EnrollmentStatus.ACTIVE, EnrollmentStatus.FREE)


@dataclass(frozen=True, slots=True)
class Enrollment:
    """A student's relationship with one course.

    ``completed_lesson_ids`` is the single source of truth for progress.
    ``completion_percentage`` and ``completed`` are derived from it and
    the current lesson list; ``completed_at`` records the first time the
    enrollment reached 100% and is never overwritten.
    """

    id: UUID
    student_id: UUID
    course_id: UUID
    status: EnrollmentStatus
    created_at: datetime
    updated_at: datetime
    completed_lesson_ids: frozenset[UUID] = field(default_factory=frozenset)
    completion_percentage: float = 0.0
    completed: bool = False
    activated_at: datetime | None = None
    completed_at: datetime | None = None

    @staticmethod
    def new(
        *,
        student_id: UUID,
        course_id: UUID,
        now: datetime,
        status: EnrollmentStatus = EnrollmentStatus.PENDING,
    ) -> Enrollment:
        return Enrollment(
            id=uuid4(),
            student_id=student_id,
            course_id=course_id,
            status=status,
            created_at=now,
            updated_at=now,
            activated_at=now if status.grants_access else None,
        )

    @property
    def key(self) -> tuple[UUID, UUID]:
        return (self.student_id, self.course_id)
