from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from uuid import UUID

from fastapi.testclient import TestClient

from coursetrack.models.achievement import Achievement
from coursetrack.services import providers
from tests.conftest import OTHER_STUDENT_ID, STUDENT_ID, auth

T1 = datetime(2026, 1, 1, 8, 0, tzinfo=UTC)


def _seed(user_id: str, points: int, at: datetime) -> None:
    asyncio.run(
        providers.achievement_repo.add(
            Achievement.new(
                user_id=UUID(user_id), title="seeded", points=points, earned_at=at
            )
        )
    )


def test_tie_broken_by_earliest_achievement(client: TestClient, token: str) -> None:
    _seed(OTHER_STUDENT_ID, 150, T1 + timedelta(hours=2))
    _seed(STUDENT_ID, 100, T1)
    _seed(STUDENT_ID, 50, T1 + timedelta(hours=3))

    resp = client.get("/v1/leaderboard", headers=auth(token))
    assert resp.status_code == 200
    body = resp.json()
    assert [e["user_id"] for e in body["entries"]] == [STUDENT_ID, OTHER_STUDENT_ID]
    assert [e["rank"] for e in body["entries"]] == [1, 2]
    assert body["total_users"] == 2
    assert body["my_rank"] == 1
    assert body["me"]["total_points"] == 150


def test_leaderboard_limit(client: TestClient, token: str) -> None:
    _seed(STUDENT_ID, 10, T1)
    _seed(OTHER_STUDENT_ID, 20, T1)
    body = client.get(
        "/v1/leaderboard", params={"limit": 1}, headers=auth(token)
    ).json()
    assert len(body["entries"]) == 1
    assert body["total_users"] == 2
    assert body["my_rank"] == 2


def test_my_rank_not_ranked(client: TestClient, token: str) -> None:
    resp = client.get("/v1/leaderboard/me", headers=auth(token))
    assert resp.status_code == 404
    assert resp.json()["code"] == "not_ranked"

    body = client.get("/v1/leaderboard", headers=auth(token)).json()
    assert body["my_rank"] is None
    assert body["me"] is None


def test_award_updates_cached_leaderboard(
    client: TestClient, token: str, admin_token: str
) -> None:
    _seed(OTHER_STUDENT_ID, 50, T1)
    first = client.get("/v1/leaderboard", headers=auth(token)).json()
    assert first["my_rank"] is None

    resp = client.post(
        "/v1/achievements",
        json={"user_id": STUDENT_ID, "title": "Fast learner", "points": 80},
        headers=auth(admin_token),
    )
    assert resp.status_code == 201
    assert resp.json()["points"] == 80

    resp = client.get("/v1/leaderboard/me", headers=auth(token))
    assert resp.status_code == 200
    assert resp.json()["rank"] == 1


def test_award_requires_admin(client: TestClient, token: str) -> None:
    resp = client.post(
        "/v1/achievements",
        json={"user_id": STUDENT_ID, "title": "Self-awarded", "points": 999},
        headers=auth(token),
    )
    assert resp.status_code == 403


def test_negative_points_rejected(client: TestClient, admin_token: str) -> None:
    resp = client.post(
        "/v1/achievements",
        json={"user_id": STUDENT_ID, "title": "Penalty", "points": -5},
        headers=auth(admin_token),
    )
    assert resp.status_code == 422


def test_my_achievements_points_and_recent(client: TestClient, token: str) -> None:
    _seed(STUDENT_ID, 10, T1)
    _seed(STUDENT_ID, 25, T1 + timedelta(days=1))
    _seed(OTHER_STUDENT_ID, 5, T1 + timedelta(days=2))

    mine = client.get("/v1/achievements/me", headers=auth(token)).json()
    assert [a["points"] for a in mine] == [25, 10]

    points = client.get("/v1/achievements/points", headers=auth(token)).json()
    assert points == {"user_id": STUDENT_ID, "total_points": 35}

    recent = client.get(
        "/v1/achievements/recent", params={"limit": 2}, headers=auth(token)
    ).json()
    assert [a["user_id"] for a in recent] == [OTHER_STUDENT_ID, STUDENT_ID]
