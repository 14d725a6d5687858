"""JWT access token validation (ES256).

Tokens are issued by the platform's identity service; this service only
verifies them.  In prod the issuer's public key comes from
JWT_PUBLIC_KEY.  In dev/test an ephemeral EC key pair is generated on
import so local runs and tests can mint their own tokens.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from coursetrack.core.config import SETTINGS

ALGORITHM = "ES256"
ISSUER = "identity-service"
AUDIENCE = "coursetrack"
ACCESS_TOKEN_TTL_MIN = 15

if SETTINGS.jwt_public_key:
    _private_key = None
    _public_key = serialization.load_pem_public_key(
        SETTINGS.jwt_public_key.encode()
    )
else:
    _private_key = ec.generate_private_key(ec.SECP256R1())
    _public_key = _private_key.public_key()


def create_access_token(
    *,
    sub: str,
    roles: list[str] | None = None,
    ttl_minutes: int = ACCESS_TOKEN_TTL_MIN,
) -> str:
    """Sign a token with the ephemeral dev key.

    Only available when no JWT_PUBLIC_KEY is configured; real tokens
    come from the identity service.
    """
    if _private_key is None:
        raise RuntimeError("token minting is disabled when JWT_PUBLIC_KEY is set")
    now = datetime.now(UTC)
    payload = {
        "sub": sub,
        "iss": ISSUER,
        "aud": AUDIENCE,
        "exp": now + timedelta(minutes=ttl_minutes),
        "iat": now,
        "jti": str(uuid.uuid4()),
        "roles": roles or ["student"],
    }
    return jwt.encode(payload, _private_key, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Verify signature and claims, return the payload.

    Pins algorithm to ES256 to prevent alg:none and alg-switching attacks.

    Raises jwt.ExpiredSignatureError, jwt.InvalidTokenError on failure.
    """
    return jwt.decode(
        token,
        _public_key,
        algorithms=[ALGORITHM],
        issuer=ISSUER,
        audience=AUDIENCE,
        options={"require": ["sub", "exp", "iat", "jti"]},
    )
