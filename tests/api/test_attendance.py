from __future__ import annotations

from datetime import UTC, datetime
from uuid import uuid4

from fastapi.testclient import TestClient

from tests.conftest import (
    INSTRUCTOR_ID,
    OTHER_STUDENT_ID,
    STUDENT_ID,
    auth,
    mint_token,
    seed_course,
    seed_event,
)

OTHER_INSTRUCTOR_ID = "55555555-5555-4555-8555-555555555555"


def _mark(client: TestClient, token: str, event_id, student_id, **fields):
    return client.post(
        "/v1/attendance",
        json={"event_id": str(event_id), "student_id": str(student_id), **fields},
        headers=auth(token),
    )


def test_join_records_caller(client: TestClient, token: str) -> None:
    event = seed_event(seed_course())
    resp = client.post(f"/v1/events/{event.id}/join", headers=auth(token))
    assert resp.status_code == 200
    body = resp.json()
    assert body["student_id"] == STUDENT_ID
    assert body["status"] == "attended"
    assert body["recorded_type"] == "automatic"
    assert body["joined_at"] is not None


def test_repeat_join_same_record(client: TestClient, token: str) -> None:
    event = seed_event(seed_course())
    first = client.post(f"/v1/events/{event.id}/join", headers=auth(token)).json()
    second = client.post(f"/v1/events/{event.id}/join", headers=auth(token)).json()
    assert second["id"] == first["id"]
    assert second["joined_at"] is not None


def test_join_unknown_event_404(client: TestClient, token: str) -> None:
    resp = client.post(f"/v1/events/{uuid4()}/join", headers=auth(token))
    assert resp.status_code == 404


def test_owner_marks_attendance(client: TestClient, instructor_token: str) -> None:
    event = seed_event(seed_course())
    resp = _mark(
        client, instructor_token, event.id, STUDENT_ID, status="late", remarks="10m"
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "late"
    assert body["recorded_type"] == "manual"
    assert body["recorded_by"] == INSTRUCTOR_ID


def test_other_instructor_forbidden(client: TestClient) -> None:
    event = seed_event(seed_course(), instructor_id=INSTRUCTOR_ID)
    other = mint_token(OTHER_INSTRUCTOR_ID, roles=["instructor"])
    resp = _mark(client, other, event.id, STUDENT_ID, status="absent")
    assert resp.status_code == 403
    assert resp.json()["code"] == "forbidden"


def test_student_cannot_mark(client: TestClient, token: str) -> None:
    event = seed_event(seed_course())
    resp = _mark(client, token, event.id, STUDENT_ID, status="attended")
    assert resp.status_code == 403


def test_invalid_status_is_422(client: TestClient, instructor_token: str) -> None:
    event = seed_event(seed_course())
    resp = _mark(client, instructor_token, event.id, STUDENT_ID, status="present")
    assert resp.status_code == 422


def test_bulk_mixed_results(client: TestClient, instructor_token: str) -> None:
    course = seed_course()
    mine = seed_event(course)
    theirs = seed_event(course, instructor_id=OTHER_INSTRUCTOR_ID)
    resp = client.post(
        "/v1/attendance/bulk",
        json={
            "records": [
                {
                    "event_id": str(mine.id),
                    "student_id": STUDENT_ID,
                    "status": "absent",
                },
                {
                    "event_id": str(theirs.id),
                    "student_id": STUDENT_ID,
                    "status": "absent",
                },
            ]
        },
        headers=auth(instructor_token),
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["succeeded"] == 1
    assert body["failed"] == 1
    assert body["results"][1]["code"] == "forbidden"


def test_event_report_includes_implicit_absentees(
    client: TestClient, token: str, admin_token: str, instructor_token: str
) -> None:
    course = seed_course()
    event = seed_event(course)
    for student in (STUDENT_ID, OTHER_STUDENT_ID):
        client.post(
            "/v1/enrollments/grant-free",
            json={"student_id": student, "course_id": str(course.id)},
            headers=auth(admin_token),
        )
    client.post(f"/v1/events/{event.id}/join", headers=auth(token))

    resp = client.get(
        f"/v1/attendance/events/{event.id}", headers=auth(instructor_token)
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["summary"]["total"] == 2
    assert body["summary"]["attended"] == 1
    assert body["summary"]["absent"] == 1
    assert body["summary"]["attendance_percentage"] == 50
    implicit = [e for e in body["roster"] if e["implicit"]]
    assert [e["student_id"] for e in implicit] == [OTHER_STUDENT_ID]
    assert implicit[0]["record"] is None


def test_student_summary_self_and_date_filter(
    client: TestClient, token: str, other_token: str
) -> None:
    course = seed_course()
    march = seed_event(course, meeting_date=datetime(2026, 3, 10, 9, tzinfo=UTC))
    april = seed_event(course, meeting_date=datetime(2026, 4, 2, 9, tzinfo=UTC))
    client.post(f"/v1/events/{march.id}/join", headers=auth(token))
    client.post(f"/v1/events/{april.id}/join", headers=auth(token))
    url = f"/v1/attendance/students/{STUDENT_ID}/summary"

    resp = client.get(url, headers=auth(token))
    assert resp.json()["total"] == 2

    resp = client.get(
        url,
        params={"start_date": "2026-03-01", "end_date": "2026-03-10"},
        headers=auth(token),
    )
    assert resp.json()["total"] == 1

    assert client.get(url, headers=auth(other_token)).status_code == 403


def test_list_scoped_and_filtered(
    client: TestClient, token: str, instructor_token: str, admin_token: str
) -> None:
    course = seed_course()
    mine = seed_event(course)
    theirs = seed_event(course, instructor_id=OTHER_INSTRUCTOR_ID)
    client.post(f"/v1/events/{mine.id}/join", headers=auth(token))
    client.post(f"/v1/events/{theirs.id}/join", headers=auth(token))

    resp = client.get("/v1/attendance", headers=auth(instructor_token))
    assert resp.status_code == 200
    assert resp.json()["total"] == 1

    resp = client.get(
        "/v1/attendance", params={"status": "attended"}, headers=auth(admin_token)
    )
    assert resp.json()["total"] == 2
    resp = client.get(
        "/v1/attendance", params={"status": "absent"}, headers=auth(admin_token)
    )
    assert resp.json()["total"] == 0


def test_delete_admin_only(
    client: TestClient, token: str, instructor_token: str, admin_token: str
) -> None:
    event = seed_event(seed_course())
    record = client.post(f"/v1/events/{event.id}/join", headers=auth(token)).json()
    url = f"/v1/attendance/{record['id']}"

    assert client.delete(url, headers=auth(instructor_token)).status_code == 403
    assert client.delete(url, headers=auth(admin_token)).status_code == 204
    assert client.delete(url, headers=auth(admin_token)).status_code == 404
