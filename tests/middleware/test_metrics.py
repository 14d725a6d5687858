"""Tests for Prometheus metrics middleware and the domain counters.

prometheus-client uses a global default registry and counters only go
up, so every assertion is on a DELTA: read, act, read again.
"""

from __future__ import annotations

from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from tests.conftest import auth, seed_course


def _get_sample(name: str, labels: dict | None = None) -> float:
    """Read a metric sample's current value from the global registry."""
    value = REGISTRY.get_sample_value(name, labels=labels or {})
    return value if value is not None else 0.0


def test_request_counter_increments(client: TestClient) -> None:
    labels = {"method": "GET", "endpoint": "/health", "status_code": "200"}
    before = _get_sample("http_requests_total", labels)
    client.get("/health")
    after = _get_sample("http_requests_total", labels)
    assert after - before >= 1


def test_request_duration_histogram_observes(client: TestClient) -> None:
    labels = {"method": "GET", "endpoint": "/health"}
    before = _get_sample("http_request_duration_seconds_count", labels)
    client.get("/health")
    after = _get_sample("http_request_duration_seconds_count", labels)
    assert after - before >= 1


def test_endpoint_label_is_route_template(client: TestClient, token: str) -> None:
    course = seed_course()
    labels = {
        "method": "GET",
        "endpoint": "/v1/courses/{course_id}/lessons/{lesson_id}/access",
        "status_code": "200",
    }
    before = _get_sample("http_requests_total", labels)
    client.get(
        f"/v1/courses/{course.id}/lessons/{course.lessons[0].id}/access",
        headers=auth(token),
    )
    after = _get_sample("http_requests_total", labels)
    assert after - before == 1


def test_access_denied_counter(client: TestClient, token: str) -> None:
    course = seed_course()
    labels = {"reason": "not_enrolled"}
    before = _get_sample("lesson_access_denied_total", labels)
    client.get(
        f"/v1/courses/{course.id}/lessons/{course.lessons[0].id}/access",
        headers=auth(token),
    )
    after = _get_sample("lesson_access_denied_total", labels)
    assert after - before == 1


def test_metrics_endpoint_returns_prometheus_format(client: TestClient) -> None:
    client.get("/health")
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "http_requests_total" in resp.text
    assert "enrollment_transitions_total" in resp.text


def test_metrics_endpoint_not_self_instrumented(client: TestClient) -> None:
    labels = {"method": "GET", "endpoint": "/metrics", "status_code": "200"}
    before = _get_sample("http_requests_total", labels)
    client.get("/metrics")
    client.get("/metrics")
    after = _get_sample("http_requests_total", labels)
    assert after == before
