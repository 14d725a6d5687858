"""Domain errors raised by the coursetrack services.

Every error here is an expected outcome (a locked lesson, a duplicate
enrollment), not a defect.  The API layer maps ``code`` to an HTTP
status in one place (coursetrack/api/errors.py) and logs at INFO.
"""

from __future__ import annotations

from enum import StrEnum


class CoreError(Exception):
    """Base domain error."""

    code = "core_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class NotFoundError(CoreError):
    """Referenced enrollment, event, course, lesson or record is absent."""

    code = "not_found"


class AlreadyEnrolledError(CoreError):
    """An active or free enrollment already exists for the pair."""

    code = "already_enrolled"

    def __init__(self, message: str = "Student is already enrolled in this course"):
        super().__init__(message)


class InvalidStateError(CoreError):
    """Illegal enrollment status transition."""

    code = "invalid_state"


class AccessReason(StrEnum):
    NOT_ENROLLED = "not_enrolled"
    PREVIOUS_LESSON_INCOMPLETE = "previous_lesson_incomplete"


_ACCESS_MESSAGES = {
    AccessReason.NOT_ENROLLED: "Enroll in this course to unlock its lessons",
    AccessReason.PREVIOUS_LESSON_INCOMPLETE: (
        "Complete the previous lesson to unlock this one"
    ),
}


class AccessDeniedError(CoreError):
    """Lesson-sequence violation.  ``reason`` drives the client call-to-action."""

    code = "access_denied"

    def __init__(self, reason: AccessReason) -> None:
        self.reason = reason
        super().__init__(_ACCESS_MESSAGES[reason])


class ForbiddenError(CoreError):
    """Caller is not allowed to perform this operation."""

    code = "forbidden"

    def __init__(self, message: str = "Not authorized for this operation"):
        super().__init__(message)


class NotRankedError(CoreError):
    """Leaderboard lookup for a user with no achievements."""

    code = "not_ranked"

    def __init__(self, message: str = "User has no achievements yet"):
        super().__init__(message)


class TransientStorageError(Exception):
    """A storage call failed in a way that is safe to retry."""
