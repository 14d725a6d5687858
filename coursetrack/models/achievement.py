from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID, uuid4


@dataclass(frozen=True, slots=True)
class Achievement:
    """Points awarded to a user.  A user accumulates many of these."""

    id: UUID
    user_id: UUID
    title: str
    points: int
    earned_at: datetime
    course_id: UUID | None = None
    description: str | None = None
    type: str = "milestone"  # milestone|course_completion|streak|attendance

    def __post_init__(self) -> None:
        if self.points < 0:
            raise ValueError("achievement points must be >= 0")

    @staticmethod
    def new(
        *,
        user_id: UUID,
        title: str,
        points: int,
        earned_at: datetime,
        course_id: UUID | None = None,
        description: str | None = None,
        type: str = "milestone",
    ) -> Achievement:
        return Achievement(
            id=uuid4(),
            user_id=user_id,
            title=title,
            points=points,
            earned_at=earned_at,
            course_id=course_id,
            description=description,
            type=type,
        )


@dataclass(frozen=True, slots=True)
class UserProfile:
    """Display fields owned by the external profile service."""

    user_id: UUID
    name: str = ""
    streak_days: int = 0


@dataclass(frozen=True, slots=True)
class LeaderboardEntry:
    """Derived, never persisted.  Rebuilt from achievements + enrollments."""

    rank: int
    user_id: UUID
    name: str
    total_points: int
    achievement_count: int
    first_earned_at: datetime
    courses_completed: int = 0
    courses_enrolled: int = 0
    average_progress: float = 0.0
    total_hours: float = 0.0
    streak_days: int = 0
