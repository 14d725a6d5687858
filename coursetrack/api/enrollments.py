"""Enrollment lifecycle endpoints.

  POST /v1/enrollments                   student starts a purchase (pending)
  POST /v1/enrollments/{id}/activate     payment webhook (admin)
  POST /v1/enrollments/grant-free        free access (admin, instructor)
  POST /v1/enrollments/{id}/cancel       admin
  GET  /v1/enrollments/me
  GET  /v1/students/{student_id}/enrollments
  GET  /v1/courses/{course_id}/enrollment

Every enrollment returned here is re-evaluated against the current
catalog, so percentages reflect lessons added or removed since the
last write.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from coursetrack.api.dependencies import (
    Deadline,
    require_any_role,
    require_role,
    require_self_or_any_role,
    require_user,
)
from coursetrack.models.enrollment import Enrollment, EnrollmentStatus
from coursetrack.models.principal import Principal
from coursetrack.services.providers import enrollment_store, progress_engine

router = APIRouter(tags=["enrollments"])


class EnrollIn(BaseModel):
    course_id: UUID


class GrantFreeIn(BaseModel):
    student_id: UUID
    course_id: UUID


class EnrollmentOut(BaseModel):
    id: UUID
    student_id: UUID
    course_id: UUID
    status: EnrollmentStatus
    completed_lesson_ids: list[UUID]
    completion_percentage: float
    completed: bool
    created_at: datetime
    updated_at: datetime
    activated_at: datetime | None
    completed_at: datetime | None

    @classmethod
    def from_domain(cls, e: Enrollment) -> EnrollmentOut:
        return cls(
            id=e.id,
            student_id=e.student_id,
            course_id=e.course_id,
            status=e.status,
            completed_lesson_ids=sorted(e.completed_lesson_ids),
            completion_percentage=e.completion_percentage,
            completed=e.completed,
            created_at=e.created_at,
            updated_at=e.updated_at,
            activated_at=e.activated_at,
            completed_at=e.completed_at,
        )


async def _out(enrollment: Enrollment) -> EnrollmentOut:
    return EnrollmentOut.from_domain(await progress_engine.current(enrollment))


async def _out_many(enrollments: list[Enrollment]) -> list[EnrollmentOut]:
    return [
        EnrollmentOut.from_domain(e)
        for e in await progress_engine.current_many(enrollments)
    ]


@router.post(
    "/v1/enrollments",
    response_model=EnrollmentOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_enrollment(
    body: EnrollIn,
    principal: Annotated[Principal, Depends(require_user)],
    deadline: Deadline,
) -> EnrollmentOut:
    enrollment = await enrollment_store.create_enrollment(
        principal.id, body.course_id, timeout=deadline
    )
    return await _out(enrollment)


@router.post(
    "/v1/enrollments/grant-free",
    response_model=EnrollmentOut,
    status_code=status.HTTP_201_CREATED,
)
async def grant_free(
    body: GrantFreeIn,
    _principal: Annotated[
        Principal, Depends(require_any_role({"admin", "instructor"}))
    ],
    deadline: Deadline,
) -> EnrollmentOut:
    enrollment = await enrollment_store.grant_free(
        body.student_id, body.course_id, timeout=deadline
    )
    return await _out(enrollment)


@router.post("/v1/enrollments/{enrollment_id}/activate", response_model=EnrollmentOut)
async def activate_enrollment(
    enrollment_id: UUID,
    _principal: Annotated[Principal, Depends(require_role("admin"))],
    deadline: Deadline,
) -> EnrollmentOut:
    enrollment = await enrollment_store.activate_enrollment(
        enrollment_id, timeout=deadline
    )
    return await _out(enrollment)


@router.post("/v1/enrollments/{enrollment_id}/cancel", response_model=EnrollmentOut)
async def cancel_enrollment(
    enrollment_id: UUID,
    _principal: Annotated[Principal, Depends(require_role("admin"))],
    deadline: Deadline,
) -> EnrollmentOut:
    enrollment = await enrollment_store.cancel_enrollment(
        enrollment_id, timeout=deadline
    )
    return await _out(enrollment)


@router.get("/v1/enrollments/me", response_model=list[EnrollmentOut])
async def my_enrollments(
    principal: Annotated[Principal, Depends(require_user)],
) -> list[EnrollmentOut]:
    return await _out_many(await enrollment_store.list_enrollments(principal.id))


@router.get(
    "/v1/students/{student_id}/enrollments", response_model=list[EnrollmentOut]
)
async def student_enrollments(
    student_id: UUID,
    _principal: Annotated[
        Principal, Depends(require_self_or_any_role({"admin", "instructor"}))
    ],
) -> list[EnrollmentOut]:
    return await _out_many(await enrollment_store.list_enrollments(student_id))


@router.get("/v1/courses/{course_id}/enrollment", response_model=EnrollmentOut)
async def my_course_enrollment(
    course_id: UUID,
    principal: Annotated[Principal, Depends(require_user)],
) -> EnrollmentOut:
    return await _out(await enrollment_store.get_enrollment(principal.id, course_id))
