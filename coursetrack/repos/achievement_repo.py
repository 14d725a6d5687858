from __future__ import annotations

from typing import Protocol
from uuid import UUID

from coursetrack.models.achievement import Achievement


class AchievementRepo(Protocol):
    async def add(self, achievement: Achievement) -> None: ...
    async def list_by_user(self, user_id: UUID) -> list[Achievement]: ...
    async def list_all(self) -> list[Achievement]: ...
    async def recent(self, limit: int) -> list[Achievement]: ...


def _newest_first(items: list[Achievement]) -> list[Achievement]:
    return sorted(items, key=lambda a: a.earned_at, reverse=True)


class InMemoryAchievementRepo:
    def __init__(self) -> None:
        self._by_id: dict[UUID, Achievement] = {}

    async def add(self, achievement: Achievement) -> None:
        # keyed by id, so re-adding the same award is a no-op
        self._by_id.setdefault(achievement.id, achievement)

    async def list_by_user(self, user_id: UUID) -> list[Achievement]:
        return _newest_first([a for a in self._by_id.values() if a.user_id == user_id])

    async def list_all(self) -> list[Achievement]:
        return list(self._by_id.values())

    async def recent(self, limit: int) -> list[Achievement]:
        return _newest_first(list(self._by_id.values()))[:limit]

    def clear(self) -> None:
        self._by_id.clear()
