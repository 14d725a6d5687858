"""Prometheus scrape endpoint (text exposition format, not JSON).

Exposes the HTTP series from MetricsMiddleware plus the domain series
declared in coursetrack/core/metrics.py, e.g.:

  enrollment_transitions_total{status="active"} 12.0
  lesson_access_denied_total{reason="previous_lesson_incomplete"} 3.0

Restrict access at the ingress in production; series names and rates
reveal internal behaviour.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

router = APIRouter(tags=["observability"])


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    """Expose all Prometheus metrics in text exposition format."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
