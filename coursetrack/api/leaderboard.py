"""Leaderboard and achievement endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from coursetrack.api.dependencies import require_role, require_user
from coursetrack.models.achievement import Achievement, LeaderboardEntry
from coursetrack.models.principal import Principal
from coursetrack.services.providers import leaderboard

router = APIRouter(tags=["leaderboard"])


class EntryOut(BaseModel):
    rank: int
    user_id: UUID
    name: str
    total_points: int
    achievement_count: int
    first_earned_at: datetime
    courses_completed: int
    courses_enrolled: int
    average_progress: float
    total_hours: float
    streak_days: int

    @classmethod
    def from_domain(cls, e: LeaderboardEntry) -> EntryOut:
        return cls(
            rank=e.rank,
            user_id=e.user_id,
            name=e.name,
            total_points=e.total_points,
            achievement_count=e.achievement_count,
            first_earned_at=e.first_earned_at,
            courses_completed=e.courses_completed,
            courses_enrolled=e.courses_enrolled,
            average_progress=e.average_progress,
            total_hours=e.total_hours,
            streak_days=e.streak_days,
        )


class LeaderboardOut(BaseModel):
    entries: list[EntryOut]
    total_users: int
    # null when the caller has no achievements yet
    my_rank: int | None
    me: EntryOut | None


class AchievementIn(BaseModel):
    user_id: UUID
    title: str = Field(min_length=1, max_length=255)
    points: int = Field(ge=0)
    course_id: UUID | None = None
    description: str | None = None
    type: str = "milestone"


class AchievementOut(BaseModel):
    id: UUID
    user_id: UUID
    title: str
    points: int
    earned_at: datetime
    course_id: UUID | None
    description: str | None
    type: str

    @classmethod
    def from_domain(cls, a: Achievement) -> AchievementOut:
        return cls(
            id=a.id,
            user_id=a.user_id,
            title=a.title,
            points=a.points,
            earned_at=a.earned_at,
            course_id=a.course_id,
            description=a.description,
            type=a.type,
        )


class PointsOut(BaseModel):
    user_id: UUID
    total_points: int


@router.get("/v1/leaderboard", response_model=LeaderboardOut)
async def get_leaderboard(
    principal: Annotated[Principal, Depends(require_user)],
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
) -> LeaderboardOut:
    entries = await leaderboard.leaderboard_snapshot()
    me = next((e for e in entries if e.user_id == principal.id), None)
    return LeaderboardOut(
        entries=[EntryOut.from_domain(e) for e in entries[:limit]],
        total_users=len(entries),
        my_rank=me.rank if me else None,
        me=EntryOut.from_domain(me) if me else None,
    )


@router.get("/v1/leaderboard/me", response_model=EntryOut)
async def my_rank(
    principal: Annotated[Principal, Depends(require_user)],
) -> EntryOut:
    return EntryOut.from_domain(await leaderboard.rank_for(principal.id))


@router.post(
    "/v1/achievements",
    response_model=AchievementOut,
    status_code=status.HTTP_201_CREATED,
)
async def award_achievement(
    body: AchievementIn,
    principal: Annotated[Principal, Depends(require_role("admin"))],
) -> AchievementOut:
    achievement = await leaderboard.award_achievement(
        principal,
        user_id=body.user_id,
        title=body.title,
        points=body.points,
        course_id=body.course_id,
        description=body.description,
        type=body.type,
    )
    return AchievementOut.from_domain(achievement)


@router.get("/v1/achievements/me", response_model=list[AchievementOut])
async def my_achievements(
    principal: Annotated[Principal, Depends(require_user)],
) -> list[AchievementOut]:
    return [
        AchievementOut.from_domain(a)
        for a in await leaderboard.achievements_for(principal.id)
    ]


@router.get("/v1/achievements/recent", response_model=list[AchievementOut])
async def recent_achievements(
    _principal: Annotated[Principal, Depends(require_user)],
    limit: Annotated[int, Query(ge=1, le=50)] = 5,
) -> list[AchievementOut]:
    return [
        AchievementOut.from_domain(a)
        for a in await leaderboard.recent_achievements(limit)
    ]


@router.get("/v1/achievements/points", response_model=PointsOut)
async def my_points(
    principal: Annotated[Principal, Depends(require_user)],
) -> PointsOut:
    return PointsOut(
        user_id=principal.id,
        total_points=await leaderboard.total_points(principal.id),
    )
