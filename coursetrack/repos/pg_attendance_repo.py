"""PostgreSQL implementation of AttendanceRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import Select, delete, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coursetrack.db.engine import session_scope
from coursetrack.db.tables import AttendanceRecordRow
from coursetrack.models.attendance import (
    AttendanceFilter,
    AttendanceRecord,
    AttendanceStatus,
    RecordedType,
)
from coursetrack.services.retry import retry_transient

_KEY = ["event_id", "student_id"]


class PgAttendanceRepo:
    """Satisfies the AttendanceRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @retry_transient()
    async def get(self, event_id: UUID, student_id: UUID) -> AttendanceRecord | None:
        async with session_scope(self._session_factory) as session:
            stmt = select(AttendanceRecordRow).where(
                AttendanceRecordRow.event_id == event_id,
                AttendanceRecordRow.student_id == student_id,
            )
            row = (await session.execute(stmt)).scalar_one_or_none()
            return _row_to_record(row) if row is not None else None

    @retry_transient()
    async def save(self, record: AttendanceRecord) -> None:
        values = _record_values(record)
        mutable = {
            k: v for k, v in values.items() if k not in ("id", "created_at", *_KEY)
        }
        async with session_scope(self._session_factory) as session:
            stmt = (
                pg_insert(AttendanceRecordRow)
                .values(**values)
                .on_conflict_do_update(index_elements=_KEY, set_=mutable)
            )
            await session.execute(stmt)

    @retry_transient()
    async def delete(self, record_id: UUID) -> bool:
        async with session_scope(self._session_factory) as session:
            stmt = delete(AttendanceRecordRow).where(AttendanceRecordRow.id == record_id)
            result = await session.execute(stmt)
            return result.rowcount > 0

    @retry_transient()
    async def query(
        self,
        filt: AttendanceFilter,
        *,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[AttendanceRecord]:
        stmt = _apply_filter(select(AttendanceRecordRow), filt).order_by(
            AttendanceRecordRow.meeting_date.desc(),
            AttendanceRecordRow.created_at.desc(),
        )
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        async with session_scope(self._session_factory) as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_row_to_record(r) for r in rows]

    @retry_transient()
    async def count(self, filt: AttendanceFilter) -> int:
        stmt = _apply_filter(
            select(func.count()).select_from(AttendanceRecordRow), filt
        )
        async with session_scope(self._session_factory) as session:
            return (await session.execute(stmt)).scalar_one()


def _apply_filter(stmt: Select, filt: AttendanceFilter) -> Select:
    t = AttendanceRecordRow
    if filt.student_id is not None:
        stmt = stmt.where(t.student_id == filt.student_id)
    if filt.event_id is not None:
        stmt = stmt.where(t.event_id == filt.event_id)
    if filt.course_id is not None:
        stmt = stmt.where(t.course_id == filt.course_id)
    if filt.instructor_id is not None:
        stmt = stmt.where(t.instructor_id == filt.instructor_id)
    if filt.status is not None:
        stmt = stmt.where(t.status == str(filt.status))
    if filt.start is not None:
        stmt = stmt.where(t.meeting_date >= filt.start)
    if filt.end is not None:
        stmt = stmt.where(t.meeting_date <= filt.end)
    return stmt


def _record_values(r: AttendanceRecord) -> dict:
    return {
        "id": r.id,
        "event_id": r.event_id,
        "student_id": r.student_id,
        "course_id": r.course_id,
        "instructor_id": r.instructor_id,
        "meeting_date": r.meeting_date,
        "status": str(r.status),
        "recorded_type": str(r.recorded_type),
        "recorded_by": r.recorded_by,
        "joined_at": r.joined_at,
        "check_in_time": r.check_in_time,
        "check_out_time": r.check_out_time,
        "duration_minutes": r.duration_minutes,
        "remarks": r.remarks,
        "created_at": r.created_at,
        "updated_at": r.updated_at,
    }


def _row_to_record(row: AttendanceRecordRow) -> AttendanceRecord:
    return AttendanceRecord(
        id=row.id,
        event_id=row.event_id,
        student_id=row.student_id,
        course_id=row.course_id,
        instructor_id=row.instructor_id,
        meeting_date=row.meeting_date,
        created_at=row.created_at,
        updated_at=row.updated_at,
        status=AttendanceStatus(row.status),
        recorded_type=RecordedType(row.recorded_type),
        recorded_by=row.recorded_by,
        joined_at=row.joined_at,
        check_in_time=row.check_in_time,
        check_out_time=row.check_out_time,
        duration_minutes=row.duration_minutes,
        remarks=row.remarks,
    )
