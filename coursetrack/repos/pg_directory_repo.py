"""PostgreSQL readers for the catalog, event and profile tables."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coursetrack.db.engine import session_scope
from coursetrack.db.tables import CourseRow, EventRow, LessonRow, ProfileRow
from coursetrack.models.achievement import UserProfile
from coursetrack.models.attendance import Event
from coursetrack.models.course import Course, Lesson
from coursetrack.services.retry import retry_transient


class PgCourseCatalog:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @retry_transient()
    async def get_course(self, course_id: UUID) -> Course | None:
        async with session_scope(self._session_factory) as session:
            course = (
                await session.execute(select(CourseRow).where(CourseRow.id == course_id))
            ).scalar_one_or_none()
            if course is None:
                return None
            stmt = (
                select(LessonRow)
                .where(LessonRow.course_id == course_id)
                .order_by(LessonRow.order)
            )
            lessons = (await session.execute(stmt)).scalars().all()
            return Course(
                id=course.id,
                title=course.title,
                lessons=tuple(
                    Lesson(
                        id=row.id,
                        course_id=row.course_id,
                        order=row.order,
                        title=row.title,
                        duration_minutes=row.duration_minutes,
                    )
                    for row in lessons
                ),
            )


class PgEventDirectory:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @retry_transient()
    async def get_event(self, event_id: UUID) -> Event | None:
        async with session_scope(self._session_factory) as session:
            row = (
                await session.execute(select(EventRow).where(EventRow.id == event_id))
            ).scalar_one_or_none()
            if row is None:
                return None
            return Event(
                id=row.id,
                course_id=row.course_id,
                instructor_id=row.instructor_id,
                title=row.title,
                meeting_date=row.meeting_date,
            )


class PgProfileDirectory:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @retry_transient()
    async def get_profile(self, user_id: UUID) -> UserProfile | None:
        async with session_scope(self._session_factory) as session:
            row = (
                await session.execute(
                    select(ProfileRow).where(ProfileRow.user_id == user_id)
                )
            ).scalar_one_or_none()
            if row is None:
                return None
            return UserProfile(
                user_id=row.user_id, name=row.name, streak_days=row.streak_days
            )
