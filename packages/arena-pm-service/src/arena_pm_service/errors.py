"""Application error type and the JSON error envelope.

Every error leaving the API is rendered as ``{"status": "error", "message": ...}``.
Quota and billing errors add a machine-readable ``code``; quota errors also
carry ``limit``, ``current`` and ``planId``.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from arena_pm_service.settings import settings

logger = structlog.get_logger()


class AppError(Exception):
    """An error with an HTTP status and a message that is safe to show users."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        *,
        code: str | None = None,
        extra: dict[str, Any] | None = None,
        internal_message: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.extra = extra or {}
        self.internal_message = internal_message

    def to_body(self) -> dict[str, Any]:
        body: dict[str, Any] = {"status": "error"}
        if self.code:
            body["code"] = self.code
        body["message"] = self.message
        body.update(self.extra)
        return body

    @classmethod
    def bad_request(cls, message: str, internal_message: str | None = None) -> AppError:
        return cls(message, 400, internal_message=internal_message)

    @classmethod
    def unauthorized(cls, message: str = "Authentication required") -> AppError:
        return cls(message, 401)

    @classmethod
    def payment_required(cls, code: str, message: str) -> AppError:
        return cls(message, 402, code=code)

    @classmethod
    def forbidden(cls, message: str = "Access denied") -> AppError:
        return cls(message, 403)

    @classmethod
    def not_found(cls, message: str = "Resource not found") -> AppError:
        return cls(message, 404)

    @classmethod
    def internal(
        cls, message: str = "Internal server error", internal_message: str | None = None
    ) -> AppError:
        return cls(message, 500, internal_message=internal_message)

    @classmethod
    def quota_exceeded(
        cls, code: str, message: str, *, limit: int, current: int, plan_id: str
    ) -> AppError:
        return cls(
            message,
            403,
            code=code,
            extra={"limit": limit, "current": current, "planId": plan_id},
        )


def _error_response(status_code: int, body: dict[str, Any]) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body)


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    body = exc.to_body()
    if exc.status_code >= 500:
        logger.error(
            "request_failed",
            path=request.url.path,
            error=exc.internal_message or exc.message,
        )
        if not settings.is_production and exc.internal_message:
            body["error"] = exc.internal_message
    return _error_response(exc.status_code, body)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        text = str(first.get("msg", message)).removeprefix("Value error, ")
        message = f"{field}: {text}" if field else text
    return _error_response(400, {"status": "error", "message": message})


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return _error_response(exc.status_code, {"status": "error", "message": str(exc.detail)})


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("unhandled_error", path=request.url.path, exc_info=exc)
    body: dict[str, Any] = {"status": "error", "message": "Internal server error"}
    if not settings.is_production:
        body["error"] = str(exc)
    return _error_response(500, body)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
