"""FastAPI auth dependencies."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from arena_pm_service.access.policy import run_gate
from arena_pm_service.auth.jwt import ACCESS, TokenError, TokenExpired, decode_token
from arena_pm_service.auth.models import CurrentUser
from arena_pm_service.errors import AppError
from arena_pm_service.settings import settings


def _token_from_request(request: Request) -> str | None:
    """The access cookie wins; a Bearer header is accepted for API clients."""
    token = request.cookies.get(settings.access_cookie_name)
    if token:
        return token
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header.removeprefix("Bearer ").strip() or None
    return None


async def get_current_user(request: Request) -> CurrentUser:
    """
    Resolve the current authenticated user from the access credential.

    Stateless: the token is trusted until it expires, no user lookup is made.
    """

    async def _verify() -> CurrentUser:
        token = _token_from_request(request)
        if token is None:
            raise AppError.unauthorized("Access denied. No authentication token provided.")
        try:
            payload = decode_token(token, expected_type=ACCESS)
        except TokenExpired as exc:
            raise AppError.unauthorized(
                "Authentication token has expired. Please login again."
            ) from exc
        except TokenError as exc:
            raise AppError.unauthorized("Invalid authentication token.") from exc
        return CurrentUser(
            user_id=payload["sub"],
            email=payload.get("email", ""),
            role=payload.get("role", "member"),
        )

    current_user = await run_gate("session", _verify)
    request.state.user = current_user
    return current_user


CurrentUserDep = Annotated[CurrentUser, Depends(get_current_user)]
