from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from coursetrack.api.attendance import router as attendance_router
from coursetrack.api.enrollments import router as enrollments_router
from coursetrack.api.errors import register_error_handlers
from coursetrack.api.health import router as health_router
from coursetrack.api.leaderboard import router as leaderboard_router
from coursetrack.api.metrics_endpoint import router as metrics_router
from coursetrack.api.progress import router as progress_router
from coursetrack.core.config import SETTINGS
from coursetrack.core.logging import setup_logging
from coursetrack.db.engine import lifespan_db
from coursetrack.db.redis import lifespan_redis
from coursetrack.middleware.metrics import MetricsMiddleware
from coursetrack.middleware.request_context import RequestContextMiddleware

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    # Nested so teardown runs in reverse order even if one fails
    async with lifespan_db():
        async with lifespan_redis():
            yield


app = FastAPI(
    title="coursetrack",
    lifespan=lifespan,
    docs_url="/docs" if SETTINGS.is_dev else None,
    redoc_url="/redoc" if SETTINGS.is_dev else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Last-added runs first: RequestContext -> Metrics -> CORS -> route,
# so every request has an ID before its metrics are recorded.
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)

register_error_handlers(app)

app.include_router(metrics_router)
app.include_router(health_router)
app.include_router(enrollments_router)
app.include_router(progress_router)
app.include_router(attendance_router)
app.include_router(leaderboard_router)

logger.info(
    "coursetrack started  env=%s log_level=%s port=%d docs=%s single_admin=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    "on" if SETTINGS.is_dev else "off",
    "on" if SETTINGS.admin_user_id else "off",
)
