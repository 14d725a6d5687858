"""Domain errors and deadlines map to stable HTTP responses."""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from coursetrack.api.errors import register_error_handlers
from coursetrack.services.errors import (
    AccessDeniedError,
    AccessReason,
    AlreadyEnrolledError,
    CoreError,
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    NotRankedError,
)


def _app_raising(exc: BaseException) -> TestClient:
    app = FastAPI()
    register_error_handlers(app)

    @app.get("/boom")
    async def boom() -> None:
        raise exc

    return TestClient(app)


@pytest.mark.parametrize(
    ("exc", "status", "code"),
    [
        (NotFoundError("Enrollment not found"), 404, "not_found"),
        (AlreadyEnrolledError(), 409, "already_enrolled"),
        (InvalidStateError("Cannot activate"), 409, "invalid_state"),
        (ForbiddenError(), 403, "forbidden"),
        (NotRankedError(), 404, "not_ranked"),
    ],
    ids=lambda v: v if isinstance(v, str) else None,
)
def test_core_errors_map_to_status(exc: CoreError, status: int, code: str) -> None:
    resp = _app_raising(exc).get("/boom")
    assert resp.status_code == status
    assert resp.json() == {"detail": exc.message, "code": code}


def test_access_denied_carries_reason() -> None:
    exc = AccessDeniedError(AccessReason.PREVIOUS_LESSON_INCOMPLETE)
    resp = _app_raising(exc).get("/boom")
    assert resp.status_code == 403
    assert resp.json() == {
        "detail": "Complete the previous lesson to unlock this one",
        "code": "access_denied",
        "reason": "previous_lesson_incomplete",
    }


def test_deadline_exceeded_is_504() -> None:
    resp = _app_raising(TimeoutError()).get("/boom")
    assert resp.status_code == 504
    assert resp.json()["code"] == "timeout"
