"""Repository for account-related DB operations."""

from __future__ import annotations

import secrets
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from arena_pm_service.auth.passwords import hash_password
from arena_pm_service.db.models import UserModel


class AuthRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def count_users(self) -> int:
        result = await self._session.execute(select(func.count()).select_from(UserModel))
        return result.scalar_one()

    async def create_user(
        self,
        email: str,
        password: str,
        name: str,
        role: str = "member",
        tos_accepted_at: datetime | None = None,
    ) -> UserModel:
        """Create a new user with a bcrypt-hashed password."""
        user = UserModel(
            email=email.lower(),
            password_hash=hash_password(password),
            name=name,
            role=role,
            email_verified=False,
            tos_accepted_at=tos_accepted_at,
        )
        self._session.add(user)
        await self._session.flush()
        await self._session.refresh(user)
        return user

    async def get_user_by_email(self, email: str) -> UserModel | None:
        """Look up an active (not soft-deleted) user, case-insensitively."""
        result = await self._session.execute(
            select(UserModel).where(
                UserModel.email == email.lower(),
                UserModel.deleted_at.is_(None),
            )
        )
        return result.scalars().first()

    async def get_user_by_id(self, user_id: UUID) -> UserModel | None:
        result = await self._session.execute(
            select(UserModel).where(UserModel.id == user_id, UserModel.deleted_at.is_(None))
        )
        return result.scalars().first()

    async def set_email_verification(
        self, user: UserModel, token_hash: str, expires_at: datetime
    ) -> None:
        user.email_verification_token = token_hash
        user.email_verification_expires_at = expires_at
        await self._session.flush()

    async def get_user_by_verification_token(self, token_hash: str) -> UserModel | None:
        result = await self._session.execute(
            select(UserModel).where(
                UserModel.email_verification_token == token_hash,
                UserModel.email_verification_expires_at > datetime.now(UTC),
                UserModel.deleted_at.is_(None),
            )
        )
        return result.scalars().first()

    async def mark_email_verified(self, user: UserModel) -> None:
        user.email_verified = True
        user.email_verification_token = None
        user.email_verification_expires_at = None
        await self._session.flush()

    async def set_password_reset(
        self, user: UserModel, token_hash: str, expires_at: datetime
    ) -> None:
        user.password_reset_token = token_hash
        user.password_reset_expires_at = expires_at
        await self._session.flush()

    async def get_user_by_reset_token(self, token_hash: str) -> UserModel | None:
        result = await self._session.execute(
            select(UserModel).where(
                UserModel.password_reset_token == token_hash,
                UserModel.password_reset_expires_at > datetime.now(UTC),
                UserModel.deleted_at.is_(None),
            )
        )
        return result.scalars().first()

    async def update_password(self, user: UserModel, password: str) -> None:
        """Store a new password hash and invalidate any outstanding reset token."""
        user.password_hash = hash_password(password)
        user.password_reset_token = None
        user.password_reset_expires_at = None
        await self._session.flush()

    async def anonymize_user(self, user: UserModel) -> None:
        """Soft-delete: scrub personal data but keep the row so owned data stays linked."""
        user.email = f"deleted-{user.id}@deleted.invalid"
        user.name = "Deleted user"
        user.password_hash = secrets.token_hex(32)
        user.email_verification_token = None
        user.email_verification_expires_at = None
        user.password_reset_token = None
        user.password_reset_expires_at = None
        user.deleted_at = datetime.now(UTC)
        await self._session.flush()
