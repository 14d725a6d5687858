"""Application metrics using the Prometheus client library.

All metrics are declared here so there is a single inventory of what
the service measures.  Modules import the metric they own and
increment/observe it at the point of action.

Counters are used for transitions (they only go up; PromQL rate()
turns them into per-second figures), gauges for current state, and
histograms for durations so p95/p99 can be derived from buckets.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# ---------------------------------------------------------------------------
# HTTP metrics (populated by the MetricsMiddleware)
# ---------------------------------------------------------------------------

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests by method, endpoint, and status code",
    ["method", "endpoint", "status_code"],
)

REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

ACTIVE_REQUESTS = Gauge(
    "http_active_requests",
    "Number of HTTP requests currently being processed",
)

# ---------------------------------------------------------------------------
# Domain metrics
# ---------------------------------------------------------------------------

ENROLLMENT_TRANSITIONS = Counter(
    "enrollment_transitions_total",
    "Enrollment status transitions by resulting status",
    ["status"],  # pending|active|free|cancelled
)

LESSONS_COMPLETED = Counter(
    "lessons_completed_total",
    "Lesson completions that changed an enrollment's completed set",
)

COURSES_COMPLETED = Counter(
    "courses_completed_total",
    "Enrollments that reached 100% for the first time",
)

LESSON_ACCESS_DENIED = Counter(
    "lesson_access_denied_total",
    "Lesson access checks that were denied, by reason",
    ["reason"],  # not_enrolled|previous_lesson_incomplete
)

ATTENDANCE_UPSERTS = Counter(
    "attendance_upserts_total",
    "Attendance record writes by recorded type",
    ["recorded_type"],  # automatic|manual
)

STORAGE_RETRIES = Counter(
    "storage_retries_total",
    "Transient storage failures that were retried",
    ["operation"],
)

CACHE_OPERATIONS = Counter(
    "cache_operations_total",
    "Cache get operations by result",
    ["operation"],  # "hit" or "miss"
)

LEADERBOARD_COMPUTE_DURATION = Histogram(
    "leaderboard_compute_duration_seconds",
    "Time spent aggregating achievements into a ranked leaderboard",
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0],
)

QUEUE_DEPTH = Gauge(
    "task_queue_depth",
    "Number of tasks waiting in a queue",
    ["queue_name"],  # "course_completed", "leaderboard_refresh"
)
