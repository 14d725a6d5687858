from __future__ import annotations

import logging
from typing import Annotated
from uuid import UUID

import jwt
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from coursetrack.core.config import SETTINGS
from coursetrack.models.principal import ROLES, Principal
from coursetrack.services import token_service

logger = logging.getLogger(__name__)

# Tokens are issued by the identity service; tokenUrl only feeds the docs UI
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/oauth/token")


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def require_user(
    raw_token: Annotated[str, Depends(oauth2_scheme)],
) -> Principal:
    """Extract and validate the JWT bearer token. Returns a Principal.

    Used as a FastAPI dependency on any protected endpoint.  Unknown
    roles are dropped.  When ADMIN_USER_ID is configured, the admin role
    is honoured for that subject only.
    """
    try:
        claims = token_service.decode_access_token(raw_token)
    except jwt.ExpiredSignatureError:
        logger.warning("Expired token rejected")
        raise _unauthorized("Token expired") from None
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid token rejected: %s", e)
        raise _unauthorized("Invalid token") from None

    try:
        UUID(claims["sub"])
    except ValueError:
        logger.warning("Token subject is not a UUID: %r", claims["sub"])
        raise _unauthorized("Invalid token subject") from None

    roles = frozenset(claims.get("roles", [])) & ROLES
    admin_id = SETTINGS.admin_user_id
    if "admin" in roles and admin_id is not None and claims["sub"] != admin_id:
        logger.warning("Admin role stripped from non-admin subject=%s", claims["sub"])
        roles = roles - {"admin"}

    principal = Principal(user_id=claims["sub"], roles=roles)
    logger.debug(
        "Token validated for user=%s roles=%s",
        principal.user_id,
        sorted(principal.roles),
    )
    return principal


def require_role(role: str):
    """Dependency factory: demand a specific role.

    Usage: Depends(require_role("admin"))
    Returns the Principal if the role is present, else 403.
    """

    def _guard(
        principal: Annotated[Principal, Depends(require_user)],
    ) -> Principal:
        if not principal.has_role(role):
            logger.warning(
                "Access denied: user=%s missing role=%s",
                principal.user_id,
                role,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return principal

    return _guard


def require_any_role(roles: set[str]):
    """Dependency factory: demand at least one of the given roles.

    Usage: Depends(require_any_role({"admin", "instructor"}))
    """

    def _guard(
        principal: Annotated[Principal, Depends(require_user)],
    ) -> Principal:
        if not principal.has_any_role(roles):
            logger.warning(
                "Access denied: user=%s has none of roles=%s",
                principal.user_id,
                sorted(roles),
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return principal

    return _guard


def require_self_or_any_role(roles: set[str]):
    """Dependency factory for ``/students/{student_id}/...`` routes.

    Passes when the caller is the student named in the path or holds
    one of ``roles``.
    """

    def _guard(
        student_id: UUID,
        principal: Annotated[Principal, Depends(require_user)],
    ) -> Principal:
        if principal.id != student_id and not principal.has_any_role(roles):
            logger.warning(
                "Access denied: user=%s reading student=%s",
                principal.user_id,
                student_id,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return principal

    return _guard


def request_deadline(
    x_request_timeout: Annotated[float | None, Header()] = None,
) -> float:
    """Caller-supplied deadline in seconds, capped at REQUEST_TIMEOUT_SECONDS."""
    if x_request_timeout is None:
        return SETTINGS.request_timeout_seconds
    if x_request_timeout <= 0:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="X-Request-Timeout must be positive",
        )
    return min(x_request_timeout, SETTINGS.request_timeout_seconds)


Deadline = Annotated[float, Depends(request_deadline)]
