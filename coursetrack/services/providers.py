"""Module-level service singletons.

Same pattern as cache.py and task_queue.py: PostgreSQL-backed repos
when DATABASE_URL is configured, in-memory ones otherwise.  Routers and
the worker import from here so every caller in a process shares one
KeyedLock and one set of repos.
"""

from __future__ import annotations

from coursetrack.db.engine import async_session_factory
from coursetrack.repos.achievement_repo import AchievementRepo, InMemoryAchievementRepo
from coursetrack.repos.attendance_repo import AttendanceRepo, InMemoryAttendanceRepo
from coursetrack.repos.directory_repo import (
    CourseCatalog,
    EventDirectory,
    InMemoryCourseCatalog,
    InMemoryEventDirectory,
    InMemoryProfileDirectory,
    ProfileDirectory,
)
from coursetrack.repos.enrollment_repo import EnrollmentRepo, InMemoryEnrollmentRepo
from coursetrack.services.attendance_recorder import AttendanceRecorder
from coursetrack.services.cache import cache_service
from coursetrack.services.enrollment_store import EnrollmentStore
from coursetrack.services.leaderboard import LeaderboardAggregator
from coursetrack.services.locks import KeyedLock
from coursetrack.services.progress_engine import ProgressEngine
from coursetrack.services.task_queue import task_queue

if async_session_factory is not None:
    from coursetrack.repos.pg_achievement_repo import PgAchievementRepo
    from coursetrack.repos.pg_attendance_repo import PgAttendanceRepo
    from coursetrack.repos.pg_directory_repo import (
        PgCourseCatalog,
        PgEventDirectory,
        PgProfileDirectory,
    )
    from coursetrack.repos.pg_enrollment_repo import PgEnrollmentRepo

    enrollment_repo: EnrollmentRepo = PgEnrollmentRepo(async_session_factory)
    attendance_repo: AttendanceRepo = PgAttendanceRepo(async_session_factory)
    achievement_repo: AchievementRepo = PgAchievementRepo(async_session_factory)
    course_catalog: CourseCatalog = PgCourseCatalog(async_session_factory)
    event_directory: EventDirectory = PgEventDirectory(async_session_factory)
    profile_directory: ProfileDirectory = PgProfileDirectory(async_session_factory)
else:
    enrollment_repo = InMemoryEnrollmentRepo()
    attendance_repo = InMemoryAttendanceRepo()
    achievement_repo = InMemoryAchievementRepo()
    course_catalog = InMemoryCourseCatalog()
    event_directory = InMemoryEventDirectory()
    profile_directory = InMemoryProfileDirectory()

locks = KeyedLock()

enrollment_store = EnrollmentStore(enrollment_repo, course_catalog, locks)
progress_engine = ProgressEngine(enrollment_repo, course_catalog, locks, task_queue)
attendance_recorder = AttendanceRecorder(
    attendance_repo, event_directory, enrollment_store, locks
)
leaderboard = LeaderboardAggregator(
    achievement_repo,
    enrollment_repo,
    progress_engine,
    profile_directory,
    cache_service,
)

progress_engine.add_completion_listener(leaderboard.invalidate)
