"""Live-session attendance.

One AttendanceRecord per (event, student), written from two directions:

  - automatic: the student joins the live session (``record_join``).
    Creates the record as ``attended`` or refreshes ``joined_at``.
  - manual: the event's instructor or the admin grades the student
    (``upsert_manual_record``).  Sets ``status`` and the other
    supplied fields and marks the record ``manual``.

``status`` is what every summary counts.  A later automatic join only
touches ``joined_at``, so it never overrides an instructor's grade,
and a manual upsert never clears ``joined_at``.

Event roster views treat every active/free enrollee of the event's
course without a record as absent (flagged ``implicit``).
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from datetime import UTC, date, datetime, time
from uuid import UUID

from coursetrack.core.metrics import ATTENDANCE_UPSERTS
from coursetrack.models.attendance import (
    AttendanceFilter,
    AttendanceRecord,
    AttendanceStatus,
    AttendanceSummary,
    Event,
    EventAttendanceReport,
    ManualAttendanceFields,
    RecordedType,
    RosterEntry,
)
from coursetrack.models.principal import Principal
from coursetrack.repos.attendance_repo import AttendanceRepo
from coursetrack.repos.directory_repo import EventDirectory
from coursetrack.services.enrollment_store import EnrollmentStore
from coursetrack.services.errors import CoreError, ForbiddenError, NotFoundError
from coursetrack.services.locks import KeyedLock
from coursetrack.services.rounding import percentage

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class BulkItem:
    event_id: UUID
    student_id: UUID
    fields: ManualAttendanceFields


@dataclass(frozen=True, slots=True)
class BulkResult:
    event_id: UUID
    student_id: UUID
    record: AttendanceRecord | None = None
    error: str | None = None
    code: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True, slots=True)
class RecordPage:
    records: tuple[AttendanceRecord, ...]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


def date_range(
    start: date | None, end: date | None
) -> tuple[datetime | None, datetime | None]:
    """Whole-day bounds in UTC.  ``end`` includes its entire day."""
    lower = datetime.combine(start, time.min, tzinfo=UTC) if start else None
    upper = datetime.combine(end, time.max, tzinfo=UTC) if end else None
    return lower, upper


def summarize(statuses: Iterable[AttendanceStatus]) -> AttendanceSummary:
    counts = {status: 0 for status in AttendanceStatus}
    total = 0
    for status in statuses:
        counts[status] += 1
        total += 1
    attended = counts[AttendanceStatus.ATTENDED]
    return AttendanceSummary(
        total=total,
        attended=attended,
        absent=counts[AttendanceStatus.ABSENT],
        late=counts[AttendanceStatus.LATE],
        excused=counts[AttendanceStatus.EXCUSED],
        attendance_percentage=int(percentage(attended, total, places=0)),
    )


def _apply(record: AttendanceRecord, fields: ManualAttendanceFields) -> AttendanceRecord:
    changes = {
        name: value
        for name in (
            "status",
            "remarks",
            "duration_minutes",
            "check_in_time",
            "check_out_time",
        )
        if (value := getattr(fields, name)) is not None
    }
    return replace(record, **changes)


class AttendanceRecorder:
    def __init__(
        self,
        records: AttendanceRepo,
        events: EventDirectory,
        enrollment_store: EnrollmentStore,
        locks: KeyedLock,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._records = records
        self._events = events
        self._enrollment_store = enrollment_store
        self._locks = locks
        self._clock = clock or (lambda: datetime.now(UTC))

    async def _event(self, event_id: UUID) -> Event:
        event = await self._events.get_event(event_id)
        if event is None:
            raise NotFoundError("Event not found")
        return event

    @staticmethod
    def _require_owner_or_admin(event: Event, actor: Principal) -> None:
        if actor.is_admin() or actor.id == event.instructor_id:
            return
        raise ForbiddenError("Only the event's instructor or an admin may do this")

    async def record_join(
        self,
        event_id: UUID,
        student_id: UUID,
        timestamp: datetime | None = None,
        *,
        timeout: float | None = None,
    ) -> AttendanceRecord:
        async with asyncio.timeout(timeout):
            event = await self._event(event_id)
            async with self._locks.hold(("attendance", event_id, student_id)):
                now = self._clock()
                joined_at = timestamp or now
                existing = await self._records.get(event_id, student_id)
                if existing is None:
                    record = replace(
                        AttendanceRecord.new(
                            event=event,
                            student_id=student_id,
                            now=now,
                            recorded_type=RecordedType.AUTOMATIC,
                        ),
                        joined_at=joined_at,
                    )
                else:
                    record = replace(existing, joined_at=joined_at, updated_at=now)
                await self._records.save(record)

        ATTENDANCE_UPSERTS.labels(recorded_type=RecordedType.AUTOMATIC).inc()
        logger.info(
            "Join recorded",
            extra={"event_id": str(event_id), "student_id": str(student_id)},
        )
        return record

    async def upsert_manual_record(
        self,
        event_id: UUID,
        student_id: UUID,
        actor: Principal,
        fields: ManualAttendanceFields,
        *,
        timeout: float | None = None,
    ) -> AttendanceRecord:
        async with asyncio.timeout(timeout):
            event = await self._event(event_id)
            self._require_owner_or_admin(event, actor)
            async with self._locks.hold(("attendance", event_id, student_id)):
                now = self._clock()
                existing = await self._records.get(event_id, student_id)
                if existing is None:
                    existing = AttendanceRecord.new(
                        event=event,
                        student_id=student_id,
                        now=now,
                        recorded_type=RecordedType.MANUAL,
                    )
                record = replace(
                    _apply(existing, fields),
                    recorded_type=RecordedType.MANUAL,
                    recorded_by=actor.id,
                    updated_at=now,
                )
                await self._records.save(record)

        ATTENDANCE_UPSERTS.labels(recorded_type=RecordedType.MANUAL).inc()
        logger.info(
            "Attendance marked %s by %s",
            record.status,
            actor.user_id,
            extra={"event_id": str(event_id), "student_id": str(student_id)},
        )
        return record

    async def bulk_upsert(
        self,
        actor: Principal,
        items: Iterable[BulkItem],
        *,
        timeout: float | None = None,
    ) -> list[BulkResult]:
        """Apply each item independently; one bad row never aborts the batch.

        ``timeout`` bounds each item on its own, so a slow row is reported as
        ``timeout`` and leaves that row unchanged.
        """
        results = []
        for item in items:
            try:
                record = await self.upsert_manual_record(
                    item.event_id, item.student_id, actor, item.fields, timeout=timeout
                )
            except CoreError as exc:
                error, code = exc.message, exc.code
            except TimeoutError:
                error, code = "Deadline exceeded for this record", "timeout"
            else:
                results.append(BulkResult(item.event_id, item.student_id, record))
                continue
            results.append(
                BulkResult(item.event_id, item.student_id, error=error, code=code)
            )
        return results

    async def summarize_for_student(
        self,
        student_id: UUID,
        *,
        course_id: UUID | None = None,
        start: date | None = None,
        end: date | None = None,
        instructor_id: UUID | None = None,
    ) -> AttendanceSummary:
        lower, upper = date_range(start, end)
        records = await self._records.query(
            AttendanceFilter(
                student_id=student_id,
                course_id=course_id,
                start=lower,
                end=upper,
                instructor_id=instructor_id,
            )
        )
        return summarize(r.status for r in records)

    async def summarize_for_event(
        self, event_id: UUID, actor: Principal | None = None
    ) -> EventAttendanceReport:
        event = await self._event(event_id)
        if actor is not None:
            self._require_owner_or_admin(event, actor)

        roster_ids = sorted(
            e.student_id
            for e in await self._enrollment_store.list_course_roster(event.course_id)
        )
        records = {
            r.student_id: r
            for r in await self._records.query(AttendanceFilter(event_id=event_id))
        }

        entries = []
        for student_id in roster_ids:
            record = records.pop(student_id, None)
            if record is None:
                entries.append(
                    RosterEntry(
                        student_id=student_id,
                        status=AttendanceStatus.ABSENT,
                        record=None,
                        implicit=True,
                        enrolled=True,
                    )
                )
            else:
                entries.append(
                    RosterEntry(student_id, record.status, record, False, True)
                )
        # recorded but no longer (or never) on the roster
        for student_id in sorted(records):
            record = records[student_id]
            entries.append(RosterEntry(student_id, record.status, record, False, False))

        return EventAttendanceReport(
            event=event,
            summary=summarize(e.status for e in entries),
            roster=tuple(entries),
        )

    async def list_records(
        self,
        actor: Principal,
        *,
        student_id: UUID | None = None,
        event_id: UUID | None = None,
        course_id: UUID | None = None,
        status: AttendanceStatus | None = None,
        start: date | None = None,
        end: date | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> RecordPage:
        """Newest meetings first.  Non-admins only see events they teach."""
        lower, upper = date_range(start, end)
        filt = AttendanceFilter(
            student_id=student_id,
            event_id=event_id,
            course_id=course_id,
            status=status,
            start=lower,
            end=upper,
            instructor_id=None if actor.is_admin() else actor.id,
        )
        total = await self._records.count(filt)
        records = await self._records.query(
            filt, limit=limit, offset=(page - 1) * limit
        )
        return RecordPage(tuple(records), total, page, limit)

    async def delete_record(self, record_id: UUID, actor: Principal) -> None:
        if not actor.is_admin():
            raise ForbiddenError("Only an admin may delete attendance records")
        if not await self._records.delete(record_id):
            raise NotFoundError("Attendance record not found")
        logger.info("Attendance record %s deleted by %s", record_id, actor.user_id)
