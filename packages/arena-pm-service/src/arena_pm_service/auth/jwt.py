"""JWT token creation and verification.

Verification failures are reported through a closed set of ``TokenError``
subclasses so callers match on type instead of inspecting error names.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

import jwt

from arena_pm_service.settings import settings

ACCESS = "access"
REFRESH = "refresh"


class TokenError(Exception):
    """Base class for token verification failures."""


class TokenExpired(TokenError):
    """The token signature is valid but its deadline has passed."""


class TokenMalformed(TokenError):
    """The token cannot be decoded, has a bad signature, or lacks required claims."""


class TokenWrongType(TokenError):
    """The token is valid but carries a different type tag than expected."""


def _now_utc() -> datetime:
    return datetime.now(UTC)


def create_access_token(
    user_id: UUID,
    email: str,
    role: str,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed JWT access token."""
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.access_token_expire_minutes)
    now = _now_utc()
    payload = {
        "sub": str(user_id),
        "email": email,
        "role": role,
        "iat": now,
        "exp": now + expires_delta,
        "type": ACCESS,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def create_refresh_token(user_id: UUID, expires_delta: timedelta | None = None) -> str:
    """Create a signed JWT refresh token."""
    if expires_delta is None:
        expires_delta = timedelta(days=settings.refresh_token_expire_days)
    now = _now_utc()
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + expires_delta,
        "type": REFRESH,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str, expected_type: str = ACCESS) -> dict[str, Any]:
    """Decode and verify a JWT token of the given type.

    Raises TokenExpired, TokenMalformed or TokenWrongType.
    """
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError as exc:
        raise TokenExpired(str(exc)) from exc
    except jwt.PyJWTError as exc:
        raise TokenMalformed(str(exc)) from exc

    if payload.get("type") != expected_type:
        raise TokenWrongType(f"expected {expected_type!r} token, got {payload.get('type')!r}")

    try:
        payload["sub"] = UUID(payload["sub"])
    except (KeyError, TypeError, ValueError) as exc:
        raise TokenMalformed("Malformed token payload") from exc
    return payload
