"""PostgreSQL implementation of AchievementRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from coursetrack.db.engine import session_scope
from coursetrack.db.tables import AchievementRow
from coursetrack.models.achievement import Achievement
from coursetrack.services.retry import retry_transient


class PgAchievementRepo:
    """Satisfies the AchievementRepo Protocol using PostgreSQL via SQLAlchemy."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @retry_transient()
    async def add(self, achievement: Achievement) -> None:
        async with session_scope(self._session_factory) as session:
            stmt = (
                pg_insert(AchievementRow)
                .values(
                    id=achievement.id,
                    user_id=achievement.user_id,
                    title=achievement.title,
                    description=achievement.description,
                    points=achievement.points,
                    type=achievement.type,
                    course_id=achievement.course_id,
                    earned_at=achievement.earned_at,
                )
                .on_conflict_do_nothing(index_elements=["id"])
            )
            await session.execute(stmt)

    @retry_transient()
    async def list_by_user(self, user_id: UUID) -> list[Achievement]:
        async with session_scope(self._session_factory) as session:
            stmt = (
                select(AchievementRow)
                .where(AchievementRow.user_id == user_id)
                .order_by(AchievementRow.earned_at.desc())
            )
            rows = (await session.execute(stmt)).scalars().all()
            return [_row_to_achievement(r) for r in rows]

    @retry_transient()
    async def list_all(self) -> list[Achievement]:
        async with session_scope(self._session_factory) as session:
            rows = (await session.execute(select(AchievementRow))).scalars().all()
            return [_row_to_achievement(r) for r in rows]

    @retry_transient()
    async def recent(self, limit: int) -> list[Achievement]:
        async with session_scope(self._session_factory) as session:
            stmt = (
                select(AchievementRow)
                .order_by(AchievementRow.earned_at.desc())
                .limit(limit)
            )
            rows = (await session.execute(stmt)).scalars().all()
            return [_row_to_achievement(r) for r in rows]


def _row_to_achievement(row: AchievementRow) -> Achievement:
    return Achievement(
        id=row.id,
        user_id=row.user_id,
        title=row.title,
        points=row.points,
        earned_at=row.earned_at,
        course_id=row.course_id,
        description=row.description,
        type=row.type,
    )
