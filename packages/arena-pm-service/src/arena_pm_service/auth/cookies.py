"""Auth cookie helpers.

The access cookie is site-wide; the refresh cookie is scoped to the refresh
endpoint so the browser sends it nowhere else.
"""

from __future__ import annotations

from fastapi import Response

from arena_pm_service.settings import settings


def set_access_cookie(response: Response, access_token: str) -> None:
    response.set_cookie(
        settings.access_cookie_name,
        access_token,
        max_age=settings.access_token_expire_minutes * 60,
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="strict",
    )


def set_auth_cookies(response: Response, access_token: str, refresh_token: str) -> None:
    set_access_cookie(response, access_token)
    response.set_cookie(
        settings.refresh_cookie_name,
        refresh_token,
        max_age=settings.refresh_token_expire_days * 24 * 60 * 60,
        path=settings.refresh_cookie_path,
        httponly=True,
        secure=settings.is_production,
        samesite="strict",
    )


def clear_auth_cookies(response: Response) -> None:
    response.delete_cookie(
        settings.access_cookie_name,
        path="/",
        httponly=True,
        secure=settings.is_production,
        samesite="strict",
    )
    response.delete_cookie(
        settings.refresh_cookie_name,
        path=settings.refresh_cookie_path,
        httponly=True,
        secure=settings.is_production,
        samesite="strict",
    )
