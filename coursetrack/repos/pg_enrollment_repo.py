"""PostgreSQL implementation of EnrollmentRepo."""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coursetrack.db.engine import session_scope
from coursetrack.db.tables import EnrollmentRow
from coursetrack.models.enrollment import Enrollment, EnrollmentStatus
from coursetrack.services.retry import retry_transient

_KEY = ["student_id", "course_id"]


class PgEnrollmentRepo:
    """Satisfies the EnrollmentRepo Protocol using PostgreSQL via SQLAlchemy.

    One session (one transaction) per call.  Writes are upserts on the
    (student_id, course_id) unique constraint, so a retried call lands
    on the same row.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @retry_transient()
    async def get(self, enrollment_id: UUID) -> Enrollment | None:
        async with session_scope(self._session_factory) as session:
            stmt = select(EnrollmentRow).where(EnrollmentRow.id == enrollment_id)
            row = (await session.execute(stmt)).scalar_one_or_none()
            return _row_to_enrollment(row) if row is not None else None

    @retry_transient()
    async def get_for(self, student_id: UUID, course_id: UUID) -> Enrollment | None:
        async with session_scope(self._session_factory) as session:
            stmt = select(EnrollmentRow).where(
                EnrollmentRow.student_id == student_id,
                EnrollmentRow.course_id == course_id,
            )
            row = (await session.execute(stmt)).scalar_one_or_none()
            return _row_to_enrollment(row) if row is not None else None

    @retry_transient()
    async def add_if_absent(self, enrollment: Enrollment) -> Enrollment:
        async with session_scope(self._session_factory) as session:
            stmt = (
                pg_insert(EnrollmentRow)
                .values(**_enrollment_values(enrollment))
                .on_conflict_do_nothing(index_elements=_KEY)
            )
            await session.execute(stmt)
            stored = select(EnrollmentRow).where(
                EnrollmentRow.student_id == enrollment.student_id,
                EnrollmentRow.course_id == enrollment.course_id,
            )
            row = (await session.execute(stored)).scalar_one()
            return _row_to_enrollment(row)

    @retry_transient()
    async def save(self, enrollment: Enrollment) -> None:
        values = _enrollment_values(enrollment)
        mutable = {
            k: v for k, v in values.items() if k not in ("id", "created_at", *_KEY)
        }
        async with session_scope(self._session_factory) as session:
            stmt = (
                pg_insert(EnrollmentRow)
                .values(**values)
                .on_conflict_do_update(index_elements=_KEY, set_=mutable)
            )
            await session.execute(stmt)

    @retry_transient()
    async def list_by_student(self, student_id: UUID) -> list[Enrollment]:
        async with session_scope(self._session_factory) as session:
            stmt = (
                select(EnrollmentRow)
                .where(EnrollmentRow.student_id == student_id)
                .order_by(EnrollmentRow.created_at)
            )
            rows = (await session.execute(stmt)).scalars().all()
            return [_row_to_enrollment(r) for r in rows]

    @retry_transient()
    async def list_by_students(self, student_ids: Iterable[UUID]) -> list[Enrollment]:
        ids = list(student_ids)
        if not ids:
            return []
        async with session_scope(self._session_factory) as session:
            stmt = select(EnrollmentRow).where(EnrollmentRow.student_id.in_(ids))
            rows = (await session.execute(stmt)).scalars().all()
            return [_row_to_enrollment(r) for r in rows]

    @retry_transient()
    async def list_by_course(
        self,
        course_id: UUID,
        statuses: Iterable[EnrollmentStatus] | None = None,
    ) -> list[Enrollment]:
        async with session_scope(self._session_factory) as session:
            stmt = select(EnrollmentRow).where(EnrollmentRow.course_id == course_id)
            if statuses is not None:
                stmt = stmt.where(
                    EnrollmentRow.status.in_([str(s) for s in statuses])
                )
            rows = (await session.execute(stmt)).scalars().all()
            return [_row_to_enrollment(r) for r in rows]


def _enrollment_values(e: Enrollment) -> dict:
    return {
        "id": e.id,
        "student_id": e.student_id,
        "course_id": e.course_id,
        "status": str(e.status),
        "completed_lesson_ids": sorted(e.completed_lesson_ids),
        "completion_percentage": e.completion_percentage,
        "completed": e.completed,
        "created_at": e.created_at,
        "updated_at": e.updated_at,
        "activated_at": e.activated_at,
        "completed_at": e.completed_at,
    }


def _row_to_enrollment(row: EnrollmentRow) -> Enrollment:
    return Enrollment(
        id=row.id,
        student_id=row.student_id,
        course_id=row.course_id,
        status=EnrollmentStatus(row.status),
        created_at=row.created_at,
        updated_at=row.updated_at,
        completed_lesson_ids=frozenset(row.completed_lesson_ids or ()),
        completion_percentage=float(row.completion_percentage or 0),
        completed=row.completed,
        activated_at=row.activated_at,
        completed_at=row.completed_at,
    )
