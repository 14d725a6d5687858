"""Sequential lesson unlocking and completion tracking.

``completed_lesson_ids`` on the enrollment is the only persisted
progress state.  Unlock status, percentage and the ``completed`` flag
are all derived from it against the course's *current* lesson list by
the pure functions below, so the API read path, the write path and the
leaderboard can never disagree about what "completed" means.

Rules:
  - a lesson is accessible only while the enrollment is active or free
  - the first lesson by order is always accessible
  - any other lesson is accessible iff its immediate predecessor is completed
  - percentage = 100 * |completed & lessons| / |lessons|, 2 decimals,
    0 for a course without lessons
  - completed_at is stamped on the first transition to 100% and is
    never rewritten, even if lessons are later added and the
    percentage drops
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from enum import StrEnum
from uuid import UUID

from redis.exceptions import RedisError

from coursetrack.core.metrics import (
    COURSES_COMPLETED,
    LESSON_ACCESS_DENIED,
    LESSONS_COMPLETED,
)
from coursetrack.models.course import Course, Lesson
from coursetrack.models.enrollment import Enrollment
from coursetrack.repos.directory_repo import CourseCatalog
from coursetrack.repos.enrollment_repo import EnrollmentRepo
from coursetrack.services.errors import AccessDeniedError, AccessReason, NotFoundError
from coursetrack.services.locks import KeyedLock
from coursetrack.services.rounding import percentage
from coursetrack.services.task_queue import COURSE_COMPLETED, TaskQueue

logger = logging.getLogger(__name__)

CompletionListener = Callable[[Enrollment], Awaitable[None]]


class LessonState(StrEnum):
    COMPLETED = "completed"
    UNLOCKED = "unlocked"
    LOCKED = "locked"


@dataclass(frozen=True, slots=True)
class AccessDecision:
    allowed: bool
    reason: AccessReason | None = None


@dataclass(frozen=True, slots=True)
class LessonProgress:
    lesson: Lesson
    state: LessonState


@dataclass(frozen=True, slots=True)
class ProgressReport:
    enrollment: Enrollment
    course: Course
    lessons: tuple[LessonProgress, ...]
    next_lesson: Lesson | None
    certificate_eligible: bool

    @property
    def percentage(self) -> float:
        return self.enrollment.completion_percentage


# ---------------------------------------------------------------------------
# Pure functions
# ---------------------------------------------------------------------------


def compute_progress(enrollment: Enrollment, course: Course) -> float:
    done = len(enrollment.completed_lesson_ids & course.lesson_ids)
    return percentage(done, len(course.lessons))


def can_access_lesson(
    enrollment: Enrollment | None, course: Course, lesson_id: UUID
) -> AccessDecision:
    """Decide access to ``lesson_id``.  ``None`` means no enrollment exists.

    Raises NotFoundError when the lesson is not part of ``course``.
    """
    if course.lesson(lesson_id) is None:
        raise NotFoundError("Lesson not found in this course")
    if enrollment is None or not enrollment.status.grants_access:
        return AccessDecision(False, AccessReason.NOT_ENROLLED)
    previous = course.predecessor(lesson_id)
    if previous is None or previous.id in enrollment.completed_lesson_ids:
        return AccessDecision(True)
    return AccessDecision(False, AccessReason.PREVIOUS_LESSON_INCOMPLETE)


def is_certificate_eligible(enrollment: Enrollment) -> bool:
    return enrollment.completed


def evaluate(enrollment: Enrollment, course: Course, now: datetime) -> Enrollment:
    """Re-derive percentage and ``completed`` from the current lesson list.

    Returns ``enrollment`` itself when nothing changed.
    """
    pct = compute_progress(enrollment, course)
    # counted, not compared on the rounded percentage
    done = len(enrollment.completed_lesson_ids & course.lesson_ids)
    completed = bool(course.lessons) and done == len(course.lessons)
    completed_at = enrollment.completed_at
    if completed and completed_at is None:
        completed_at = now
    if (
        pct == enrollment.completion_percentage
        and completed == enrollment.completed
        and completed_at == enrollment.completed_at
    ):
        return enrollment
    return replace(
        enrollment,
        completion_percentage=pct,
        completed=completed,
        completed_at=completed_at,
    )


def lesson_states(
    enrollment: Enrollment | None, course: Course
) -> tuple[LessonProgress, ...]:
    done = enrollment.completed_lesson_ids if enrollment is not None else frozenset()
    states = []
    for lesson in course.lessons:
        if lesson.id in done:
            state = LessonState.COMPLETED
        elif can_access_lesson(enrollment, course, lesson.id).allowed:
            state = LessonState.UNLOCKED
        else:
            state = LessonState.LOCKED
        states.append(LessonProgress(lesson, state))
    return tuple(states)


def next_lesson(enrollment: Enrollment, course: Course) -> Lesson | None:
    for lesson in course.lessons:
        if lesson.id not in enrollment.completed_lesson_ids:
            return lesson
    return None


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class ProgressEngine:
    """Applies lesson completions to stored enrollments.

    Every mutation runs as read -> decide -> one ``save`` while holding
    the (student, course) lock and inside the caller's deadline.  A
    timeout before ``save`` leaves the stored enrollment untouched.
    """

    def __init__(
        self,
        enrollments: EnrollmentRepo,
        catalog: CourseCatalog,
        locks: KeyedLock,
        tasks: TaskQueue,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._enrollments = enrollments
        self._catalog = catalog
        self._locks = locks
        self._tasks = tasks
        self._clock = clock or (lambda: datetime.now(UTC))
        self._listeners: list[CompletionListener] = []

    def add_completion_listener(self, listener: CompletionListener) -> None:
        self._listeners.append(listener)

    async def _course(self, course_id: UUID) -> Course:
        course = await self._catalog.get_course(course_id)
        if course is None:
            raise NotFoundError("Course not found")
        return course

    async def _enrollment(self, student_id: UUID, course_id: UUID) -> Enrollment:
        enrollment = await self._enrollments.get_for(student_id, course_id)
        if enrollment is None:
            raise NotFoundError("Enrollment not found")
        return enrollment

    async def complete_lesson(
        self,
        student_id: UUID,
        course_id: UUID,
        lesson_id: UUID,
        *,
        timeout: float | None = None,
    ) -> Enrollment:
        async with asyncio.timeout(timeout):
            course = await self._course(course_id)
            async with self._locks.hold(("enrollment", student_id, course_id)):
                enrollment = await self._enrollments.get_for(student_id, course_id)
                decision = can_access_lesson(enrollment, course, lesson_id)
                if not decision.allowed or enrollment is None:
                    LESSON_ACCESS_DENIED.labels(reason=decision.reason).inc()
                    raise AccessDeniedError(decision.reason)

                now = self._clock()
                added = lesson_id not in enrollment.completed_lesson_ids
                candidate = enrollment
                if added:
                    candidate = replace(
                        enrollment,
                        completed_lesson_ids=enrollment.completed_lesson_ids
                        | {lesson_id},
                        updated_at=now,
                    )
                updated = evaluate(candidate, course, now)
                if updated is not enrollment:
                    await self._enrollments.save(updated)

        newly_completed = (
            enrollment.completed_at is None and updated.completed_at is not None
        )
        if added:
            LESSONS_COMPLETED.inc()
            logger.info(
                "Lesson %s completed (%.2f%%)",
                lesson_id,
                updated.completion_percentage,
                extra={"student_id": str(student_id), "course_id": str(course_id)},
            )
        if newly_completed:
            await self._announce_completion(updated)
        return updated

    async def _announce_completion(self, enrollment: Enrollment) -> None:
        """Outbound work for a first completion, run after the lock is released."""
        COURSES_COMPLETED.inc()
        logger.info(
            "Course completed",
            extra={
                "student_id": str(enrollment.student_id),
                "course_id": str(enrollment.course_id),
            },
        )
        try:
            await self._tasks.enqueue(
                COURSE_COMPLETED,
                {
                    "enrollment_id": str(enrollment.id),
                    "student_id": str(enrollment.student_id),
                    "course_id": str(enrollment.course_id),
                    "completed_at": enrollment.completed_at.isoformat(),
                },
            )
        except RedisError:
            # the completion itself is already committed
            logger.exception(
                "Could not enqueue %s for enrollment %s",
                COURSE_COMPLETED,
                enrollment.id,
            )
        for listener in self._listeners:
            await listener(enrollment)

    async def check_access(
        self, student_id: UUID, course_id: UUID, lesson_id: UUID
    ) -> AccessDecision:
        course = await self._course(course_id)
        enrollment = await self._enrollments.get_for(student_id, course_id)
        decision = can_access_lesson(enrollment, course, lesson_id)
        if not decision.allowed:
            LESSON_ACCESS_DENIED.labels(reason=decision.reason).inc()
        return decision

    async def current(self, enrollment: Enrollment) -> Enrollment:
        """The enrollment re-evaluated against today's catalog.

        A first completion discovered here (lessons were removed from
        the course) is stamped and persisted so ``completed_at`` stays
        stable across reads.
        """
        course = await self._catalog.get_course(enrollment.course_id)
        if course is None:
            return enrollment
        return await self._reconcile(enrollment, course)

    async def _reconcile(self, enrollment: Enrollment, course: Course) -> Enrollment:
        evaluated = evaluate(enrollment, course, self._clock())
        if enrollment.completed_at is not None or evaluated.completed_at is None:
            return evaluated
        key = ("enrollment", enrollment.student_id, enrollment.course_id)
        async with self._locks.hold(key):
            stored = await self._enrollment(enrollment.student_id, enrollment.course_id)
            evaluated = evaluate(stored, course, self._clock())
            if stored.completed_at is not None or evaluated.completed_at is None:
                return evaluated
            await self._enrollments.save(evaluated)
        await self._announce_completion(evaluated)
        return evaluated

    async def current_many(self, enrollments: Iterable[Enrollment]) -> list[Enrollment]:
        return [await self.current(e) for e in enrollments]

    async def courses_for(self, enrollments: Iterable[Enrollment]) -> dict[UUID, Course]:
        """Load each distinct course once."""
        courses: dict[UUID, Course] = {}
        for course_id in {e.course_id for e in enrollments}:
            course = await self._catalog.get_course(course_id)
            if course is not None:
                courses[course_id] = course
        return courses

    async def progress_report(self, student_id: UUID, course_id: UUID) -> ProgressReport:
        course = await self._course(course_id)
        enrollment = await self._reconcile(
            await self._enrollment(student_id, course_id), course
        )
        return ProgressReport(
            enrollment=enrollment,
            course=course,
            lessons=lesson_states(enrollment, course),
            next_lesson=next_lesson(enrollment, course),
            certificate_eligible=is_certificate_eligible(enrollment),
        )

    async def certificate_eligibility(self, student_id: UUID, course_id: UUID) -> bool:
        course = await self._course(course_id)
        enrollment = await self._reconcile(
            await self._enrollment(student_id, course_id), course
        )
        return is_certificate_eligible(enrollment)
