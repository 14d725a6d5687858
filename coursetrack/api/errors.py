"""Domain error -> HTTP response mapping.

Domain errors are expected outcomes, so they are logged at INFO with
their code and never with a traceback.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from coursetrack.services.errors import AccessDeniedError, CoreError

logger = logging.getLogger(__name__)

STATUS_BY_CODE = {
    "not_found": status.HTTP_404_NOT_FOUND,
    "already_enrolled": status.HTTP_409_CONFLICT,
    "invalid_state": status.HTTP_409_CONFLICT,
    "access_denied": status.HTTP_403_FORBIDDEN,
    "forbidden": status.HTTP_403_FORBIDDEN,
    "not_ranked": status.HTTP_404_NOT_FOUND,
}


async def core_error_handler(request: Request, exc: CoreError) -> JSONResponse:
    body = {"detail": exc.message, "code": exc.code}
    if isinstance(exc, AccessDeniedError):
        body["reason"] = str(exc.reason)
    logger.info(
        "%s %s -> %s: %s",
        request.method,
        request.url.path,
        exc.code,
        exc.message,
        extra={"error_code": exc.code},
    )
    return JSONResponse(
        status_code=STATUS_BY_CODE.get(exc.code, status.HTTP_400_BAD_REQUEST),
        content=body,
    )


async def timeout_handler(request: Request, exc: TimeoutError) -> JSONResponse:
    logger.warning("%s %s exceeded its deadline", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_504_GATEWAY_TIMEOUT,
        content={"detail": "Request deadline exceeded", "code": "timeout"},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(CoreError, core_error_handler)
    app.add_exception_handler(TimeoutError, timeout_handler)
