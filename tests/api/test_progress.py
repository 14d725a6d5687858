"""Lesson access and completion over HTTP.

Follows a learner through a three-lesson course: pending enrollment,
activation, sequential completion, certificate eligibility.
"""

from __future__ import annotations

import asyncio
from dataclasses import replace
from uuid import uuid4

from fastapi.testclient import TestClient

from coursetrack.models.course import Lesson
from coursetrack.services import providers
from coursetrack.services.task_queue import COURSE_COMPLETED, task_queue
from tests.conftest import auth, seed_course


def _active_enrollment(client: TestClient, token: str, admin_token: str, course):
    resp = client.post(
        "/v1/enrollments", json={"course_id": str(course.id)}, headers=auth(token)
    )
    enrollment_id = resp.json()["id"]
    resp = client.post(
        f"/v1/enrollments/{enrollment_id}/activate", headers=auth(admin_token)
    )
    assert resp.status_code == 200
    return resp.json()


def _complete(client: TestClient, token: str, course_id, lesson_id):
    return client.post(
        f"/v1/courses/{course_id}/lessons/{lesson_id}/complete", headers=auth(token)
    )


def test_three_lesson_walkthrough(
    client: TestClient, token: str, admin_token: str
) -> None:
    course = seed_course()
    l1, l2, l3 = (str(lesson.id) for lesson in course.lessons)

    resp = client.post(
        "/v1/enrollments", json={"course_id": str(course.id)}, headers=auth(token)
    )
    pending_id = resp.json()["id"]
    resp = client.get(
        f"/v1/courses/{course.id}/lessons/{l1}/access", headers=auth(token)
    )
    assert resp.json() == {
        "lesson_id": l1,
        "allowed": False,
        "reason": "not_enrolled",
        "message": "Enroll in this course to unlock its lessons",
    }

    client.post(f"/v1/enrollments/{pending_id}/activate", headers=auth(admin_token))

    resp = client.get(
        f"/v1/courses/{course.id}/lessons/{l2}/access", headers=auth(token)
    )
    assert resp.json()["allowed"] is False
    assert resp.json()["reason"] == "previous_lesson_incomplete"

    resp = _complete(client, token, course.id, l1)
    assert resp.status_code == 200
    assert resp.json()["completion_percentage"] == 33.33

    resp = client.get(
        f"/v1/courses/{course.id}/lessons/{l2}/access", headers=auth(token)
    )
    assert resp.json()["allowed"] is True

    assert _complete(client, token, course.id, l2).json()["completion_percentage"] == (
        66.67
    )
    done = _complete(client, token, course.id, l3).json()
    assert done["completion_percentage"] == 100.0
    assert done["completed"] is True
    assert done["completed_at"] is not None

    resp = client.get(
        f"/v1/courses/{course.id}/certificate-eligibility", headers=auth(token)
    )
    assert resp.json() == {"course_id": str(course.id), "eligible": True}


def test_completing_out_of_order_is_403_with_reason(
    client: TestClient, token: str, admin_token: str
) -> None:
    course = seed_course()
    _active_enrollment(client, token, admin_token, course)
    resp = _complete(client, token, course.id, course.lessons[2].id)
    assert resp.status_code == 403
    body = resp.json()
    assert body["code"] == "access_denied"
    assert body["reason"] == "previous_lesson_incomplete"


def test_completing_without_enrollment_is_403(client: TestClient, token: str) -> None:
    course = seed_course()
    resp = _complete(client, token, course.id, course.lessons[0].id)
    assert resp.status_code == 403
    assert resp.json()["reason"] == "not_enrolled"


def test_unknown_lesson_is_404(
    client: TestClient, token: str, admin_token: str
) -> None:
    course = seed_course()
    _active_enrollment(client, token, admin_token, course)
    resp = _complete(client, token, course.id, uuid4())
    assert resp.status_code == 404


def test_repeat_completion_keeps_completed_at(
    client: TestClient, token: str, admin_token: str
) -> None:
    course = seed_course(durations=[10])
    _active_enrollment(client, token, admin_token, course)
    first = _complete(client, token, course.id, course.lessons[0].id).json()
    again = _complete(client, token, course.id, course.lessons[0].id).json()
    assert again["completed_at"] == first["completed_at"]
    assert again["completed_lesson_ids"] == first["completed_lesson_ids"]


def test_course_completion_enqueues_one_task(
    client: TestClient, token: str, admin_token: str
) -> None:
    course = seed_course(durations=[10])
    _active_enrollment(client, token, admin_token, course)
    _complete(client, token, course.id, course.lessons[0].id)
    _complete(client, token, course.id, course.lessons[0].id)
    assert asyncio.run(task_queue.queue_length(COURSE_COMPLETED)) == 1


def test_progress_view(client: TestClient, token: str, admin_token: str) -> None:
    course = seed_course()
    _active_enrollment(client, token, admin_token, course)
    _complete(client, token, course.id, course.lessons[0].id)

    resp = client.get(f"/v1/courses/{course.id}/progress", headers=auth(token))
    assert resp.status_code == 200
    body = resp.json()
    assert body["course_title"] == "Intro"
    assert body["completion_percentage"] == 33.33
    assert body["certificate_eligible"] is False
    assert body["next_lesson_id"] == str(course.lessons[1].id)
    assert [lesson["state"] for lesson in body["lessons"]] == [
        "completed",
        "unlocked",
        "locked",
    ]


def test_progress_reflects_added_lesson(
    client: TestClient, token: str, admin_token: str
) -> None:
    course = seed_course(durations=[10, 10])
    _active_enrollment(client, token, admin_token, course)
    for lesson in course.lessons:
        _complete(client, token, course.id, lesson.id)

    extra = Lesson.new(course_id=course.id, order=3)
    providers.course_catalog.add(  # type: ignore[union-attr]
        replace(course, lessons=course.lessons + (extra,))
    )
    resp = client.get(f"/v1/courses/{course.id}/enrollment", headers=auth(token))
    body = resp.json()
    assert body["completion_percentage"] == 66.67
    assert body["completed"] is False
    assert body["completed_at"] is not None
