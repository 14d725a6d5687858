"""Lesson access, completion and progress endpoints.

The caller is always the learner; progress is never written on
someone else's behalf.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from coursetrack.api.dependencies import Deadline, require_user
from coursetrack.api.enrollments import EnrollmentOut
from coursetrack.models.principal import Principal
from coursetrack.services.errors import AccessDeniedError
from coursetrack.services.progress_engine import LessonState
from coursetrack.services.providers import progress_engine

router = APIRouter(prefix="/v1/courses", tags=["progress"])


class AccessOut(BaseModel):
    lesson_id: UUID
    allowed: bool
    reason: str | None = None
    message: str | None = None


class LessonOut(BaseModel):
    id: UUID
    order: int
    title: str
    duration_minutes: int
    state: LessonState


class ProgressOut(BaseModel):
    course_id: UUID
    course_title: str
    completion_percentage: float
    completed: bool
    completed_at: datetime | None
    certificate_eligible: bool
    next_lesson_id: UUID | None
    lessons: list[LessonOut]


class EligibilityOut(BaseModel):
    course_id: UUID
    eligible: bool


@router.get("/{course_id}/lessons/{lesson_id}/access", response_model=AccessOut)
async def check_access(
    course_id: UUID,
    lesson_id: UUID,
    principal: Annotated[Principal, Depends(require_user)],
) -> AccessOut:
    decision = await progress_engine.check_access(principal.id, course_id, lesson_id)
    if decision.allowed:
        return AccessOut(lesson_id=lesson_id, allowed=True)
    return AccessOut(
        lesson_id=lesson_id,
        allowed=False,
        reason=str(decision.reason),
        message=AccessDeniedError(decision.reason).message,
    )


@router.post("/{course_id}/lessons/{lesson_id}/complete", response_model=EnrollmentOut)
async def complete_lesson(
    course_id: UUID,
    lesson_id: UUID,
    principal: Annotated[Principal, Depends(require_user)],
    deadline: Deadline,
) -> EnrollmentOut:
    enrollment = await progress_engine.complete_lesson(
        principal.id, course_id, lesson_id, timeout=deadline
    )
    return EnrollmentOut.from_domain(enrollment)


@router.get("/{course_id}/progress", response_model=ProgressOut)
async def progress(
    course_id: UUID,
    principal: Annotated[Principal, Depends(require_user)],
) -> ProgressOut:
    report = await progress_engine.progress_report(principal.id, course_id)
    return ProgressOut(
        course_id=report.course.id,
        course_title=report.course.title,
        completion_percentage=report.percentage,
        completed=report.enrollment.completed,
        completed_at=report.enrollment.completed_at,
        certificate_eligible=report.certificate_eligible,
        next_lesson_id=report.next_lesson.id if report.next_lesson else None,
        lessons=[
            LessonOut(
                id=p.lesson.id,
                order=p.lesson.order,
                title=p.lesson.title,
                duration_minutes=p.lesson.duration_minutes,
                state=p.state,
            )
            for p in report.lessons
        ],
    )


@router.get("/{course_id}/certificate-eligibility", response_model=EligibilityOut)
async def certificate_eligibility(
    course_id: UUID,
    principal: Annotated[Principal, Depends(require_user)],
) -> EligibilityOut:
    eligible = await progress_engine.certificate_eligibility(principal.id, course_id)
    return EligibilityOut(course_id=course_id, eligible=eligible)
