"""Auth endpoints: register, login, refresh, logout, /me, password reset, email verification."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import structlog
from fastapi import APIRouter, Request, Response
from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError

from arena_pm_service.auth.cookies import clear_auth_cookies, set_access_cookie, set_auth_cookies
from arena_pm_service.auth.deps import CurrentUserDep
from arena_pm_service.auth.jwt import (
    REFRESH,
    TokenError,
    TokenWrongType,
    create_access_token,
    create_refresh_token,
    decode_token,
)
from arena_pm_service.auth.models import is_valid_email
from arena_pm_service.auth.one_time import generate_one_time_token, hash_one_time_token
from arena_pm_service.auth.passwords import (
    DUMMY_PASSWORD_HASH,
    validate_password_policy,
    verify_password,
)
from arena_pm_service.db.deps import AuthRepoDep, NotifierDep, SessionDep, WorkspacesRepoDep
from arena_pm_service.errors import AppError
from arena_pm_service.rest.schemas import AuthData, Envelope, UserSchema, WorkspaceSchema
from arena_pm_service.settings import settings

logger = structlog.get_logger()

router = APIRouter(prefix="/auth", tags=["auth"])

REGISTRATION_FAILED = "Registration failed. Please check your details and try again."
INVALID_CREDENTIALS = "Invalid email or password."


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------
# Fields are optional so missing values get the same messages as other
# validation failures, checked in a fixed order inside each endpoint.


class RegisterRequest(BaseModel):
    email: str | None = None
    password: str | None = None
    name: str | None = None
    tos_accepted: bool | None = None


class LoginRequest(BaseModel):
    email: str | None = None
    password: str | None = None


class ForgotPasswordRequest(BaseModel):
    email: str | None = None


class ResetPasswordRequest(BaseModel):
    token: str | None = None
    password: str | None = None


class VerifyEmailRequest(BaseModel):
    token: str | None = None


def _issue_tokens(response: Response, user) -> None:
    access = create_access_token(user_id=user.id, email=user.email, role=user.role)
    refresh = create_refresh_token(user_id=user.id)
    set_auth_cookies(response, access, refresh)


def _verification_expiry() -> datetime:
    return datetime.now(UTC) + timedelta(hours=settings.email_verification_expire_hours)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post("/register", response_model=Envelope[AuthData], status_code=201)
async def register(
    body: RegisterRequest,
    response: Response,
    repo: AuthRepoDep,
    workspaces: WorkspacesRepoDep,
    session: SessionDep,
    notifier: NotifierDep,
) -> Envelope[AuthData]:
    """Create a user with a personal workspace and sign them in."""
    email = (body.email or "").strip()
    name = (body.name or "").strip()
    password = body.password or ""
    if not email or not password or not name:
        raise AppError.bad_request("Please provide email, password, and name.")
    if not is_valid_email(email):
        raise AppError.bad_request("Please provide a valid email address.")
    if len(name) > 100:
        raise AppError.bad_request("Name must be 100 characters or less.")
    if not body.tos_accepted:
        raise AppError.bad_request("You must accept the Terms of Service to register.")
    policy_error = validate_password_policy(password)
    if policy_error:
        raise AppError.bad_request(policy_error)

    if await repo.get_user_by_email(email):
        raise AppError.bad_request(REGISTRATION_FAILED)

    user_count = await repo.count_users()
    if user_count >= settings.max_users:
        raise AppError.bad_request(
            f"Maximum number of team members ({settings.max_users}) reached. "
            "Cannot register new users."
        )

    raw_token, token_hash = generate_one_time_token()
    try:
        user = await repo.create_user(
            email=email,
            password=password,
            name=name,
            role="admin" if user_count == 0 else "member",
            tos_accepted_at=datetime.now(UTC),
        )
        workspace = await workspaces.create_workspace(f"{name}'s Workspace", user.id)
        await workspaces.seed_starter_content(workspace.id, user.id)
        await repo.set_email_verification(user, token_hash, _verification_expiry())
        await session.commit()
    except IntegrityError as exc:
        # Lost a race with a concurrent registration for the same email.
        await session.rollback()
        raise AppError.bad_request(REGISTRATION_FAILED) from exc

    _issue_tokens(response, user)
    logger.info("user_registered", user_id=str(user.id), workspace_id=str(workspace.id))
    await notifier.queue_verification_email(user.email, user.name, raw_token)

    return Envelope(
        message="User registered successfully",
        data=AuthData(
            user=UserSchema.from_model(user),
            workspace=WorkspaceSchema.from_model(workspace, user_role="admin"),
        ),
    )


@router.post("/login", response_model=Envelope[AuthData])
async def login(body: LoginRequest, response: Response, repo: AuthRepoDep) -> Envelope[AuthData]:
    """Verify credentials and set the auth cookies."""
    if not body.email or not body.password:
        raise AppError.bad_request("Please provide email and password.")

    user = await repo.get_user_by_email(body.email.strip())
    password_hash = user.password_hash if user else DUMMY_PASSWORD_HASH
    if not verify_password(body.password, password_hash) or user is None:
        raise AppError.unauthorized(INVALID_CREDENTIALS)

    _issue_tokens(response, user)
    logger.info("user_logged_in", user_id=str(user.id))
    return Envelope(message="Login successful", data=AuthData(user=UserSchema.from_model(user)))


@router.post("/refresh", response_model=Envelope)
async def refresh_token(request: Request, response: Response, repo: AuthRepoDep) -> Envelope:
    """Exchange the refresh cookie for a new access cookie."""
    token = request.cookies.get(settings.refresh_cookie_name)
    if not token:
        raise AppError.unauthorized("No refresh token provided")

    try:
        payload = decode_token(token, expected_type=REFRESH)
    except TokenWrongType as exc:
        raise AppError.unauthorized("Invalid token type") from exc
    except TokenError as exc:
        raise AppError.unauthorized(
            "Invalid or expired refresh token. Please login again."
        ) from exc

    user = await repo.get_user_by_id(payload["sub"])
    if user is None:
        raise AppError.unauthorized("User not found")

    access = create_access_token(user_id=user.id, email=user.email, role=user.role)
    set_access_cookie(response, access)
    return Envelope(message="Token refreshed successfully")


@router.post("/logout", response_model=Envelope)
async def logout(response: Response, current_user: CurrentUserDep) -> Envelope:
    clear_auth_cookies(response)
    logger.info("user_logged_out", user_id=str(current_user.user_id))
    return Envelope(message="Logged out successfully")


@router.get("/me", response_model=Envelope[AuthData])
async def me(current_user: CurrentUserDep, repo: AuthRepoDep) -> Envelope[AuthData]:
    """Return the profile of the currently authenticated user."""
    user = await repo.get_user_by_id(current_user.user_id)
    if user is None:
        raise AppError.not_found("User not found")
    return Envelope(data=AuthData(user=UserSchema.from_model(user)))


@router.delete("/me", response_model=Envelope)
async def delete_account(
    response: Response, current_user: CurrentUserDep, repo: AuthRepoDep, session: SessionDep
) -> Envelope:
    """Soft-delete the account: personal data is scrubbed, workspaces stay intact."""
    user = await repo.get_user_by_id(current_user.user_id)
    if user is None:
        raise AppError.not_found("User not found")
    await repo.anonymize_user(user)
    await session.commit()
    clear_auth_cookies(response)
    logger.info("account_deleted", user_id=str(current_user.user_id))
    return Envelope(message="Account deleted successfully")


@router.post("/forgot-password", response_model=Envelope)
async def forgot_password(
    body: ForgotPasswordRequest, repo: AuthRepoDep, session: SessionDep, notifier: NotifierDep
) -> Envelope:
    """Start a password reset. The response never reveals whether the email exists."""
    if not body.email or not body.email.strip():
        raise AppError.bad_request("Please provide an email address.")

    user = await repo.get_user_by_email(body.email.strip())
    if user is not None:
        raw_token, token_hash = generate_one_time_token()
        expires_at = datetime.now(UTC) + timedelta(minutes=settings.password_reset_expire_minutes)
        await repo.set_password_reset(user, token_hash, expires_at)
        await session.commit()
        await notifier.queue_password_reset_email(user.email, user.name, raw_token)
        logger.info("password_reset_requested", user_id=str(user.id))

    return Envelope(
        message="If an account with that email exists, a password reset link has been sent."
    )


@router.post("/reset-password", response_model=Envelope)
async def reset_password(
    body: ResetPasswordRequest, repo: AuthRepoDep, session: SessionDep
) -> Envelope:
    if not body.token or not body.password:
        raise AppError.bad_request("Please provide a reset token and new password.")
    policy_error = validate_password_policy(body.password)
    if policy_error:
        raise AppError.bad_request(policy_error)

    user = await repo.get_user_by_reset_token(hash_one_time_token(body.token))
    if user is None:
        raise AppError.bad_request("Invalid or expired reset token.")

    await repo.update_password(user, body.password)
    await session.commit()
    logger.info("password_reset_completed", user_id=str(user.id))
    return Envelope(
        message="Password has been reset successfully. Please login with your new password."
    )


@router.post("/verify-email", response_model=Envelope)
async def verify_email(
    body: VerifyEmailRequest, repo: AuthRepoDep, session: SessionDep, notifier: NotifierDep
) -> Envelope:
    if not body.token:
        raise AppError.bad_request("Verification token is required.")

    user = await repo.get_user_by_verification_token(hash_one_time_token(body.token))
    if user is None:
        raise AppError.bad_request("Invalid or expired verification token.")

    await repo.mark_email_verified(user)
    await session.commit()
    logger.info("email_verified", user_id=str(user.id))
    await notifier.queue_welcome_email(user.email, user.name)
    return Envelope(message="Email verified successfully.")


@router.post("/resend-verification", response_model=Envelope)
async def resend_verification(
    current_user: CurrentUserDep, repo: AuthRepoDep, session: SessionDep, notifier: NotifierDep
) -> Envelope:
    user = await repo.get_user_by_id(current_user.user_id)
    if user is None:
        raise AppError.not_found("User not found")
    if user.email_verified:
        return Envelope(message="Email is already verified.")

    raw_token, token_hash = generate_one_time_token()
    await repo.set_email_verification(user, token_hash, _verification_expiry())
    await session.commit()
    await notifier.queue_verification_email(user.email, user.name, raw_token)
    return Envelope(message="Verification email sent.")
