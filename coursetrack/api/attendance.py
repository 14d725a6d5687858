"""Live-session attendance endpoints.

Joining is open to any learner and always records the caller.
Marking, listing and per-event reports are for instructors (their own
events) and the admin.  Deleting is admin only.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel, Field

from coursetrack.api.dependencies import (
    Deadline,
    require_any_role,
    require_role,
    require_self_or_any_role,
    require_user,
)
from coursetrack.models.attendance import (
    AttendanceRecord,
    AttendanceStatus,
    AttendanceSummary,
    ManualAttendanceFields,
    RecordedType,
)
from coursetrack.models.principal import Principal
from coursetrack.services.attendance_recorder import BulkItem
from coursetrack.services.providers import attendance_recorder

router = APIRouter(tags=["attendance"])

_staff = require_any_role({"instructor", "admin"})


class ManualRecordIn(BaseModel):
    event_id: UUID
    student_id: UUID
    status: AttendanceStatus | None = None
    remarks: str | None = Field(default=None, max_length=2000)
    duration_minutes: int | None = Field(default=None, ge=0)
    check_in_time: datetime | None = None
    check_out_time: datetime | None = None

    def fields(self) -> ManualAttendanceFields:
        return ManualAttendanceFields(
            status=self.status,
            remarks=self.remarks,
            duration_minutes=self.duration_minutes,
            check_in_time=self.check_in_time,
            check_out_time=self.check_out_time,
        )


class BulkIn(BaseModel):
    records: list[ManualRecordIn] = Field(min_length=1, max_length=500)


class AttendanceOut(BaseModel):
    id: UUID
    event_id: UUID
    student_id: UUID
    course_id: UUID
    meeting_date: datetime
    status: AttendanceStatus
    recorded_type: RecordedType
    recorded_by: UUID | None
    joined_at: datetime | None
    check_in_time: datetime | None
    check_out_time: datetime | None
    duration_minutes: int | None
    remarks: str | None
    updated_at: datetime

    @classmethod
    def from_domain(cls, r: AttendanceRecord) -> AttendanceOut:
        return cls(
            id=r.id,
            event_id=r.event_id,
            student_id=r.student_id,
            course_id=r.course_id,
            meeting_date=r.meeting_date,
            status=r.status,
            recorded_type=r.recorded_type,
            recorded_by=r.recorded_by,
            joined_at=r.joined_at,
            check_in_time=r.check_in_time,
            check_out_time=r.check_out_time,
            duration_minutes=r.duration_minutes,
            remarks=r.remarks,
            updated_at=r.updated_at,
        )


class SummaryOut(BaseModel):
    total: int
    attended: int
    absent: int
    late: int
    excused: int
    attendance_percentage: int

    @classmethod
    def from_domain(cls, s: AttendanceSummary) -> SummaryOut:
        return cls(
            total=s.total,
            attended=s.attended,
            absent=s.absent,
            late=s.late,
            excused=s.excused,
            attendance_percentage=s.attendance_percentage,
        )


class BulkResultOut(BaseModel):
    event_id: UUID
    student_id: UUID
    ok: bool
    record: AttendanceOut | None = None
    error: str | None = None
    code: str | None = None


class BulkOut(BaseModel):
    succeeded: int
    failed: int
    results: list[BulkResultOut]


class RecordPageOut(BaseModel):
    records: list[AttendanceOut]
    total: int
    page: int
    limit: int
    pages: int


class RosterEntryOut(BaseModel):
    student_id: UUID
    status: AttendanceStatus
    implicit: bool
    enrolled: bool
    record: AttendanceOut | None


class EventReportOut(BaseModel):
    event_id: UUID
    course_id: UUID
    title: str
    meeting_date: datetime
    summary: SummaryOut
    roster: list[RosterEntryOut]


@router.post("/v1/events/{event_id}/join", response_model=AttendanceOut)
async def join_event(
    event_id: UUID,
    principal: Annotated[Principal, Depends(require_user)],
    deadline: Deadline,
) -> AttendanceOut:
    record = await attendance_recorder.record_join(
        event_id, principal.id, timeout=deadline
    )
    return AttendanceOut.from_domain(record)


@router.post("/v1/attendance", response_model=AttendanceOut)
async def mark_attendance(
    body: ManualRecordIn,
    principal: Annotated[Principal, Depends(_staff)],
    deadline: Deadline,
) -> AttendanceOut:
    record = await attendance_recorder.upsert_manual_record(
        body.event_id, body.student_id, principal, body.fields(), timeout=deadline
    )
    return AttendanceOut.from_domain(record)


@router.post("/v1/attendance/bulk", response_model=BulkOut)
async def mark_attendance_bulk(
    body: BulkIn,
    principal: Annotated[Principal, Depends(_staff)],
    deadline: Deadline,
) -> BulkOut:
    results = await attendance_recorder.bulk_upsert(
        principal,
        [BulkItem(r.event_id, r.student_id, r.fields()) for r in body.records],
        timeout=deadline,
    )
    out = [
        BulkResultOut(
            event_id=r.event_id,
            student_id=r.student_id,
            ok=r.ok,
            record=AttendanceOut.from_domain(r.record) if r.record else None,
            error=r.error,
            code=r.code,
        )
        for r in results
    ]
    succeeded = sum(1 for r in results if r.ok)
    return BulkOut(succeeded=succeeded, failed=len(results) - succeeded, results=out)


@router.get("/v1/attendance", response_model=RecordPageOut)
async def list_attendance(
    principal: Annotated[Principal, Depends(_staff)],
    student_id: UUID | None = None,
    event_id: UUID | None = None,
    course_id: UUID | None = None,
    status_filter: Annotated[AttendanceStatus | None, Query(alias="status")] = None,
    start_date: date | None = None,
    end_date: date | None = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
) -> RecordPageOut:
    result = await attendance_recorder.list_records(
        principal,
        student_id=student_id,
        event_id=event_id,
        course_id=course_id,
        status=status_filter,
        start=start_date,
        end=end_date,
        page=page,
        limit=limit,
    )
    return RecordPageOut(
        records=[AttendanceOut.from_domain(r) for r in result.records],
        total=result.total,
        page=result.page,
        limit=result.limit,
        pages=result.pages,
    )


@router.get("/v1/attendance/events/{event_id}", response_model=EventReportOut)
async def event_attendance(
    event_id: UUID,
    principal: Annotated[Principal, Depends(_staff)],
) -> EventReportOut:
    report = await attendance_recorder.summarize_for_event(event_id, principal)
    return EventReportOut(
        event_id=report.event.id,
        course_id=report.event.course_id,
        title=report.event.title,
        meeting_date=report.event.meeting_date,
        summary=SummaryOut.from_domain(report.summary),
        roster=[
            RosterEntryOut(
                student_id=e.student_id,
                status=e.status,
                implicit=e.implicit,
                enrolled=e.enrolled,
                record=AttendanceOut.from_domain(e.record) if e.record else None,
            )
            for e in report.roster
        ],
    )


@router.get(
    "/v1/attendance/students/{student_id}/summary", response_model=SummaryOut
)
async def student_summary(
    student_id: UUID,
    _principal: Annotated[
        Principal, Depends(require_self_or_any_role({"instructor", "admin"}))
    ],
    course_id: UUID | None = None,
    instructor_id: UUID | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
) -> SummaryOut:
    summary = await attendance_recorder.summarize_for_student(
        student_id,
        course_id=course_id,
        start=start_date,
        end=end_date,
        instructor_id=instructor_id,
    )
    return SummaryOut.from_domain(summary)


@router.delete(
    "/v1/attendance/{record_id}", status_code=status.HTTP_204_NO_CONTENT
)
async def delete_attendance(
    record_id: UUID,
    principal: Annotated[Principal, Depends(require_role("admin"))],
) -> Response:
    await attendance_recorder.delete_record(record_id, principal)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
