from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID, uuid4


@dataclass(frozen=True, slots=True)
class Lesson:
    id: UUID
    course_id: UUID
    order: int  # dense, 1-based within a course
    title: str = ""
    duration_minutes: int = 0

    @staticmethod
    def new(
        *,
        course_id: UUID,
        order: int,
        title: str = "",
        duration_minutes: int = 0,
    ) -> Lesson:
        return Lesson(
            id=uuid4(),
            course_id=course_id,
            order=order,
            title=title,
            duration_minutes=duration_minutes,
        )


@dataclass(frozen=True, slots=True)
class Course:
    """Catalog view of a course.

    Read-only from this service's point of view.  ``lessons`` is always
    kept sorted by ``order`` so positional lookups (first lesson,
    predecessor) are valid.
    """

    id: UUID
    title: str
    lessons: tuple[Lesson, ...] = field(default=())

    def __post_init__(self) -> None:
        ordered = tuple(sorted(self.lessons, key=lambda lesson: lesson.order))
        orders = [lesson.order for lesson in ordered]
        if len(set(orders)) != len(orders):
            raise ValueError(f"duplicate lesson order in course {self.id}")
        if any(o < 1 for o in orders):
            raise ValueError(f"lesson order must be >= 1 in course {self.id}")
        object.__setattr__(self, "lessons", ordered)

    @property
    def lesson_ids(self) -> frozenset[UUID]:
        return frozenset(lesson.id for lesson in self.lessons)

    def lesson(self, lesson_id: UUID) -> Lesson | None:
        for lesson in self.lessons:
            if lesson.id == lesson_id:
                return lesson
        return None

    def predecessor(self, lesson_id: UUID) -> Lesson | None:
        """The lesson immediately before ``lesson_id`` by order, if any."""
        previous: Lesson | None = None
        for lesson in self.lessons:
            if lesson.id == lesson_id:
                return previous
            previous = lesson
        return None

    @staticmethod
    def new(*, title: str, lesson_durations: list[int] | None = None) -> Course:
        """Build a course with lessons numbered 1..N (handy for seeding)."""
        course_id = uuid4()
        lessons = tuple(
            Lesson.new(
                course_id=course_id,
                order=i,
                title=f"Lesson {i}",
                duration_minutes=minutes,
            )
            for i, minutes in enumerate(lesson_durations or [], start=1)
        )
        return Course(id=course_id, title=title, lessons=lessons)
