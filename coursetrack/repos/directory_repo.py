"""Read-only views of data owned by neighbouring services.

Courses and lessons come from course authoring, events from the
scheduling screens, profiles from the profile service.  This service
never writes them; the in-memory versions accept ``add`` for seeding
dev and test runs.
"""

from __future__ import annotations

from typing import Protocol
from uuid import UUID

from coursetrack.models.achievement import UserProfile
from coursetrack.models.attendance import Event
from coursetrack.models.course import Course


class CourseCatalog(Protocol):
    async def get_course(self, course_id: UUID) -> Course | None: ...


class EventDirectory(Protocol):
    async def get_event(self, event_id: UUID) -> Event | None: ...


class ProfileDirectory(Protocol):
    async def get_profile(self, user_id: UUID) -> UserProfile | None: ...


class InMemoryCourseCatalog:
    def __init__(self) -> None:
        self._courses: dict[UUID, Course] = {}

    async def get_course(self, course_id: UUID) -> Course | None:
        return self._courses.get(course_id)

    def add(self, course: Course) -> None:
        self._courses[course.id] = course

    def clear(self) -> None:
        self._courses.clear()


class InMemoryEventDirectory:
    def __init__(self) -> None:
        self._events: dict[UUID, Event] = {}

    async def get_event(self, event_id: UUID) -> Event | None:
        return self._events.get(event_id)

    def add(self, event: Event) -> None:
        self._events[event.id] = event

    def clear(self) -> None:
        self._events.clear()


class InMemoryProfileDirectory:
    def __init__(self) -> None:
        self._profiles: dict[UUID, UserProfile] = {}

    async def get_profile(self, user_id: UUID) -> UserProfile | None:
        return self._profiles.get(user_id)

    def add(self, profile: UserProfile) -> None:
        self._profiles[profile.user_id] = profile

    def clear(self) -> None:
        self._profiles.clear()
