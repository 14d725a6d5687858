"""Points leaderboard.

Ordering, for a fixed set of achievements:
  1. total points, highest first
  2. earliest achievement timestamp, earliest first
  3. user id, ascending (only reached when two users' earliest
     achievements carry the identical timestamp)

Rank is the 1-based position in that order, so repeated runs over the
same data always produce the same ranks.

Per-user course stats are read through progress_engine.evaluate; this
module never re-derives what "completed" means.

The ranked list is served from a read-through cache.  Awards and
course completions delete the cached copy, so a reader sees every
achievement committed before its scan started; nothing is promised
about writes that land during the scan.
"""

from __future__ import annotations

import logging
import time
from collections import defaultdict
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from pydantic import TypeAdapter
from redis.exceptions import RedisError

from coursetrack.core.config import SETTINGS
from coursetrack.core.metrics import CACHE_OPERATIONS, LEADERBOARD_COMPUTE_DURATION
from coursetrack.models.achievement import Achievement, LeaderboardEntry
from coursetrack.models.enrollment import Enrollment
from coursetrack.models.principal import Principal
from coursetrack.repos.achievement_repo import AchievementRepo
from coursetrack.repos.directory_repo import ProfileDirectory
from coursetrack.repos.enrollment_repo import EnrollmentRepo
from coursetrack.services.cache import CacheService
from coursetrack.services.errors import ForbiddenError, NotRankedError
from coursetrack.services.progress_engine import ProgressEngine, evaluate
from coursetrack.services.rounding import round_half_up

logger = logging.getLogger(__name__)

SNAPSHOT_KEY = "leaderboard:snapshot"

_snapshot_adapter = TypeAdapter(list[LeaderboardEntry])


@dataclass(frozen=True, slots=True)
class Tally:
    user_id: UUID
    total_points: int
    achievement_count: int
    first_earned_at: datetime


def rank_achievements(achievements: Iterable[Achievement]) -> list[Tally]:
    """Group by user and sort into leaderboard order."""
    points: dict[UUID, int] = defaultdict(int)
    counts: dict[UUID, int] = defaultdict(int)
    first: dict[UUID, datetime] = {}
    for a in achievements:
        points[a.user_id] += a.points
        counts[a.user_id] += 1
        if a.user_id not in first or a.earned_at < first[a.user_id]:
            first[a.user_id] = a.earned_at
    tallies = [
        Tally(user_id, points[user_id], counts[user_id], first[user_id])
        for user_id in first
    ]
    tallies.sort(key=lambda t: (-t.total_points, t.first_earned_at, t.user_id))
    return tallies


class LeaderboardAggregator:
    def __init__(
        self,
        achievements: AchievementRepo,
        enrollments: EnrollmentRepo,
        progress: ProgressEngine,
        profiles: ProfileDirectory,
        cache: CacheService,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._achievements = achievements
        self._enrollments = enrollments
        self._progress = progress
        self._profiles = profiles
        self._cache = cache
        self._clock = clock or (lambda: datetime.now(UTC))

    async def compute_leaderboard(self) -> list[LeaderboardEntry]:
        started = time.perf_counter()
        tallies = rank_achievements(await self._achievements.list_all())

        by_user: dict[UUID, list[Enrollment]] = defaultdict(list)
        all_enrollments = await self._enrollments.list_by_students(
            t.user_id for t in tallies
        )
        for e in all_enrollments:
            if e.status.grants_access:
                by_user[e.student_id].append(e)
        courses = await self._progress.courses_for(all_enrollments)
        now = self._clock()

        entries = []
        for position, tally in enumerate(tallies, start=1):
            evaluated = [
                (evaluate(e, courses[e.course_id], now), courses[e.course_id])
                for e in by_user.get(tally.user_id, [])
                if e.course_id in courses
            ]
            minutes = sum(
                lesson.duration_minutes
                for e, course in evaluated
                for lesson in course.lessons
                if lesson.id in e.completed_lesson_ids
            )
            # percentages carry 2 decimals, so sum them as integer hundredths
            total_pct = round(sum(e.completion_percentage for e, _ in evaluated) * 100)
            profile = await self._profiles.get_profile(tally.user_id)
            entries.append(
                LeaderboardEntry(
                    rank=position,
                    user_id=tally.user_id,
                    name=profile.name if profile else "",
                    total_points=tally.total_points,
                    achievement_count=tally.achievement_count,
                    first_earned_at=tally.first_earned_at,
                    courses_completed=sum(1 for e, _ in evaluated if e.completed),
                    courses_enrolled=len(evaluated),
                    average_progress=float(
                        round_half_up(total_pct, 100 * len(evaluated))
                    ),
                    total_hours=float(round_half_up(minutes, 60)),
                    streak_days=profile.streak_days if profile else 0,
                )
            )
        LEADERBOARD_COMPUTE_DURATION.observe(time.perf_counter() - started)
        return entries

    async def leaderboard_snapshot(self) -> list[LeaderboardEntry]:
        try:
            cached = await self._cache.get(SNAPSHOT_KEY)
        except RedisError:
            logger.warning("Leaderboard cache read failed", exc_info=True)
            cached = None
        if cached is not None:
            CACHE_OPERATIONS.labels(operation="hit").inc()
            return _snapshot_adapter.validate_json(cached)
        CACHE_OPERATIONS.labels(operation="miss").inc()
        return await self.refresh()

    async def refresh(self) -> list[LeaderboardEntry]:
        """Recompute and store the snapshot."""
        entries = await self.compute_leaderboard()
        try:
            await self._cache.set(
                SNAPSHOT_KEY,
                _snapshot_adapter.dump_json(entries).decode(),
                SETTINGS.leaderboard_cache_ttl,
            )
        except RedisError:
            logger.warning("Leaderboard cache write failed", exc_info=True)
        return entries

    async def invalidate(self, *_: object) -> None:
        try:
            await self._cache.delete(SNAPSHOT_KEY)
        except RedisError:
            # the TTL still bounds staleness
            logger.warning("Leaderboard cache invalidation failed", exc_info=True)

    async def rank_for(self, user_id: UUID) -> LeaderboardEntry:
        for entry in await self.leaderboard_snapshot():
            if entry.user_id == user_id:
                return entry
        raise NotRankedError()

    async def award_achievement(
        self,
        actor: Principal,
        *,
        user_id: UUID,
        title: str,
        points: int,
        course_id: UUID | None = None,
        description: str | None = None,
        type: str = "milestone",
    ) -> Achievement:
        if not actor.is_admin():
            raise ForbiddenError("Only an admin may award achievements")
        achievement = Achievement.new(
            user_id=user_id,
            title=title,
            points=points,
            earned_at=self._clock(),
            course_id=course_id,
            description=description,
            type=type,
        )
        await self._achievements.add(achievement)
        await self.invalidate()
        logger.info(
            "Achievement %r (%d pts) awarded to %s", title, points, user_id
        )
        return achievement

    async def achievements_for(self, user_id: UUID) -> list[Achievement]:
        return await self._achievements.list_by_user(user_id)

    async def recent_achievements(self, limit: int = 5) -> list[Achievement]:
        return await self._achievements.recent(limit)

    async def total_points(self, user_id: UUID) -> int:
        return sum(a.points for a in await self._achievements.list_by_user(user_id))
