from __future__ import annotations

from typing import Protocol
from uuid import UUID

from coursetrack.models.attendance import AttendanceFilter, AttendanceRecord


class AttendanceRepo(Protocol):
    async def get(self, event_id: UUID, student_id: UUID) -> AttendanceRecord | None: ...
    async def save(self, record: AttendanceRecord) -> None: ...
    async def delete(self, record_id: UUID) -> bool: ...
    async def query(
        self,
        filt: AttendanceFilter,
        *,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[AttendanceRecord]: ...
    async def count(self, filt: AttendanceFilter) -> int: ...


def matches(record: AttendanceRecord, filt: AttendanceFilter) -> bool:
    """True when ``record`` satisfies every populated filter field."""
    if filt.student_id is not None and record.student_id != filt.student_id:
        return False
    if filt.event_id is not None and record.event_id != filt.event_id:
        return False
    if filt.course_id is not None and record.course_id != filt.course_id:
        return False
    if filt.instructor_id is not None and record.instructor_id != filt.instructor_id:
        return False
    if filt.status is not None and record.status != filt.status:
        return False
    if filt.start is not None and record.meeting_date < filt.start:
        return False
    if filt.end is not None and record.meeting_date > filt.end:
        return False
    return True


class InMemoryAttendanceRepo:
    """Dict-backed repo keyed by (event_id, student_id)."""

    def __init__(self) -> None:
        self._by_key: dict[tuple[UUID, UUID], AttendanceRecord] = {}

    async def get(self, event_id: UUID, student_id: UUID) -> AttendanceRecord | None:
        return self._by_key.get((event_id, student_id))

    async def save(self, record: AttendanceRecord) -> None:
        existing = self._by_key.get(record.key)
        if existing is not None and existing.id != record.id:
            raise ValueError("attendance identity changed for existing pair")
        self._by_key[record.key] = record

    async def delete(self, record_id: UUID) -> bool:
        for key, record in self._by_key.items():
            if record.id == record_id:
                del self._by_key[key]
                return True
        return False

    async def query(
        self,
        filt: AttendanceFilter,
        *,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[AttendanceRecord]:
        found = [r for r in self._by_key.values() if matches(r, filt)]
        # newest meeting first, like the listing screens
        found.sort(key=lambda r: (r.meeting_date, r.created_at), reverse=True)
        if limit is None:
            return found[offset:]
        return found[offset : offset + limit]

    async def count(self, filt: AttendanceFilter) -> int:
        return sum(1 for r in self._by_key.values() if matches(r, filt))

    def clear(self) -> None:
        self._by_key.clear()
