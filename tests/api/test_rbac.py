"""Table-driven RBAC tests.

Each row describes: endpoint, method, role, expected HTTP status.
Routes are exercised against an empty store, so an allowed caller gets
the route's own "nothing here" answer (404, or 200 with an empty body)
while a refused caller gets 401/403 from the guard before any lookup.
"""

from __future__ import annotations

import dataclasses
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from coursetrack.api import dependencies
from tests.conftest import ADMIN_ID, STUDENT_ID, auth, mint_token

_MISSING = uuid4()

_RBAC_CASES = [
    # (endpoint, method, role, expected_status)
    # any authenticated user
    ("/v1/enrollments/me", "GET", "student", 200),
    ("/v1/enrollments/me", "GET", None, 401),
    ("/v1/leaderboard", "GET", "student", 200),
    ("/v1/leaderboard", "GET", None, 401),
    ("/v1/achievements/me", "GET", "student", 200),
    # admin only
    (f"/v1/enrollments/{_MISSING}/activate", "POST", "admin", 404),
    (f"/v1/enrollments/{_MISSING}/activate", "POST", "instructor", 403),
    (f"/v1/enrollments/{_MISSING}/activate", "POST", "student", 403),
    (f"/v1/enrollments/{_MISSING}/cancel", "POST", "admin", 404),
    (f"/v1/enrollments/{_MISSING}/cancel", "POST", "student", 403),
    (f"/v1/attendance/{_MISSING}", "DELETE", "admin", 404),
    (f"/v1/attendance/{_MISSING}", "DELETE", "instructor", 403),
    # instructor or admin
    ("/v1/attendance", "GET", "instructor", 200),
    ("/v1/attendance", "GET", "admin", 200),
    ("/v1/attendance", "GET", "student", 403),
    ("/v1/attendance", "GET", None, 401),
    (f"/v1/attendance/events/{_MISSING}", "GET", "instructor", 404),
    (f"/v1/attendance/events/{_MISSING}", "GET", "student", 403),
    # the student named in the path, or staff
    (f"/v1/students/{STUDENT_ID}/enrollments", "GET", "student", 200),
    (f"/v1/students/{uuid4()}/enrollments", "GET", "student", 403),
    (f"/v1/students/{uuid4()}/enrollments", "GET", "instructor", 200),
    (f"/v1/attendance/students/{uuid4()}/summary", "GET", "student", 403),
    (f"/v1/attendance/students/{uuid4()}/summary", "GET", "admin", 200),
]


def _case_id(case: tuple) -> str:
    endpoint, method, role, status = case
    return f"{method} {endpoint.split('/')[2]} as {role or 'anon'} -> {status}"


def _token(role: str | None) -> dict[str, str]:
    if role is None:
        return {}
    user_id = ADMIN_ID if role == "admin" else STUDENT_ID
    return auth(mint_token(user_id, roles=[role]))


@pytest.mark.parametrize(
    "endpoint,method,role,expected",
    _RBAC_CASES,
    ids=[_case_id(c) for c in _RBAC_CASES],
)
def test_rbac(
    client: TestClient, endpoint: str, method: str, role: str | None, expected: int
) -> None:
    resp = client.request(method, endpoint, headers=_token(role))
    assert resp.status_code == expected, resp.text


def test_garbage_token_is_401(client: TestClient) -> None:
    resp = client.get("/v1/enrollments/me", headers=auth("not-a-jwt"))
    assert resp.status_code == 401
    assert resp.headers["www-authenticate"] == "Bearer"


def test_non_uuid_subject_is_401(client: TestClient) -> None:
    resp = client.get("/v1/enrollments/me", headers=auth(mint_token("alice")))
    assert resp.status_code == 401


def test_unknown_roles_are_ignored(client: TestClient) -> None:
    token = mint_token(STUDENT_ID, roles=["superuser"])
    resp = client.get("/v1/attendance", headers=auth(token))
    assert resp.status_code == 403


def test_single_admin_strips_admin_role_from_others(
    client: TestClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(
        dependencies,
        "SETTINGS",
        dataclasses.replace(dependencies.SETTINGS, admin_user_id=ADMIN_ID),
    )
    url = "/v1/attendance"
    impostor = mint_token(STUDENT_ID, roles=["admin"])
    assert client.get(url, headers=auth(impostor)).status_code == 403

    real = mint_token(ADMIN_ID, roles=["admin"])
    assert client.get(url, headers=auth(real)).status_code == 200
