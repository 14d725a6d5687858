from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from uuid import UUID, uuid4


class AttendanceStatus(StrEnum):
    ATTENDED = "attended"
    ABSENT = "absent"
    LATE = "late"
    EXCUSED = "excused"


class RecordedType(StrEnum):
    AUTOMATIC = "automatic"  # live-session join
    MANUAL = "manual"  # instructor/admin entry


@dataclass(frozen=True, slots=True)
class Event:
    """A scheduled live session belonging to one course and one instructor."""

    id: UUID
    course_id: UUID
    instructor_id: UUID
    title: str
    meeting_date: datetime

    @staticmethod
    def new(
        *, course_id: UUID, instructor_id: UUID, title: str, meeting_date: datetime
    ) -> Event:
        return Event(
            id=uuid4(),
            course_id=course_id,
            instructor_id=instructor_id,
            title=title,
            meeting_date=meeting_date,
        )


@dataclass(frozen=True, slots=True)
class AttendanceRecord:
    """One student's attendance at one event, unique per (event_id, student_id).

    ``status`` is the graded outcome used by every summary; ``joined_at``
    is the timestamp of the latest automatic join.  The two coexist on
    the same row.
    """

    id: UUID
    event_id: UUID
    student_id: UUID
    course_id: UUID
    instructor_id: UUID  # event owner, copied from the Event at creation
    meeting_date: datetime  # copied from the Event at creation
    created_at: datetime
    updated_at: datetime
    status: AttendanceStatus = AttendanceStatus.ATTENDED
    recorded_type: RecordedType = RecordedType.AUTOMATIC
    recorded_by: UUID | None = None
    joined_at: datetime | None = None
    check_in_time: datetime | None = None
    check_out_time: datetime | None = None
    duration_minutes: int | None = None
    remarks: str | None = None

    @staticmethod
    def new(
        *,
        event: Event,
        student_id: UUID,
        now: datetime,
        recorded_type: RecordedType,
        status: AttendanceStatus = AttendanceStatus.ATTENDED,
    ) -> AttendanceRecord:
        return AttendanceRecord(
            id=uuid4(),
            event_id=event.id,
            student_id=student_id,
            course_id=event.course_id,
            instructor_id=event.instructor_id,
            meeting_date=event.meeting_date,
            created_at=now,
            updated_at=now,
            status=status,
            recorded_type=recorded_type,
        )

    @property
    def key(self) -> tuple[UUID, UUID]:
        return (self.event_id, self.student_id)


@dataclass(frozen=True, slots=True)
class ManualAttendanceFields:
    """Fields an instructor may set; ``None`` means "leave unchanged"."""

    status: AttendanceStatus | None = None
    remarks: str | None = None
    duration_minutes: int | None = None
    check_in_time: datetime | None = None
    check_out_time: datetime | None = None


@dataclass(frozen=True, slots=True)
class AttendanceFilter:
    student_id: UUID | None = None
    event_id: UUID | None = None
    course_id: UUID | None = None
    status: AttendanceStatus | None = None
    start: datetime | None = None
    end: datetime | None = None  # inclusive upper bound on meeting_date
    instructor_id: UUID | None = None


@dataclass(frozen=True, slots=True)
class AttendanceSummary:
    total: int = 0
    attended: int = 0
    absent: int = 0
    late: int = 0
    excused: int = 0
    attendance_percentage: int = 0


@dataclass(frozen=True, slots=True)
class RosterEntry:
    student_id: UUID
    status: AttendanceStatus
    record: AttendanceRecord | None
    implicit: bool  # True when no record exists and the student counts as absent
    enrolled: bool


@dataclass(frozen=True, slots=True)
class EventAttendanceReport:
    event: Event
    summary: AttendanceSummary
    roster: tuple[RosterEntry, ...]
