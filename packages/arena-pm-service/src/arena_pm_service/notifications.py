"""Outbound email notifications, queued in the email_queue table.

Delivery is handled by a separate worker. Enqueueing happens after the
request's own transaction has committed and never fails the request: every
method reports success as a bool and logs a warning when the insert fails.
"""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from arena_pm_service.db.models import EmailQueueModel
from arena_pm_service.settings import settings

logger = structlog.get_logger()


class Notifier:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def _enqueue(
        self, to_email: str, subject: str, template: str, data: dict[str, Any]
    ) -> bool:
        try:
            async with self._session_factory() as session:
                session.add(
                    EmailQueueModel(
                        to_email=to_email,
                        subject=subject,
                        template=template,
                        template_data=data,
                    )
                )
                await session.commit()
        except Exception as exc:
            logger.warning("email_enqueue_failed", template=template, error=str(exc))
            return False
        logger.info("email_queued", template=template)
        return True

    async def queue_verification_email(self, email: str, name: str, token: str) -> bool:
        return await self._enqueue(
            email,
            "Verify your email address",
            "email_verification",
            {
                "name": name,
                "verifyUrl": f"{settings.client_url}/verify-email?token={token}",
            },
        )

    async def queue_password_reset_email(self, email: str, name: str, token: str) -> bool:
        return await self._enqueue(
            email,
            "Reset your password",
            "password_reset",
            {
                "name": name,
                "resetUrl": f"{settings.client_url}/reset-password?token={token}",
                "expiresInMinutes": settings.password_reset_expire_minutes,
            },
        )

    async def queue_welcome_email(self, email: str, name: str) -> bool:
        return await self._enqueue(
            email,
            "Welcome to Arena PM",
            "welcome",
            {"name": name, "appUrl": settings.client_url},
        )

    async def queue_workspace_invite(
        self,
        email: str,
        inviter_name: str,
        workspace_name: str,
        role: str,
        token: str,
    ) -> bool:
        return await self._enqueue(
            email,
            f"{inviter_name} invited you to {workspace_name}",
            "workspace_invite",
            {
                "inviterName": inviter_name,
                "workspaceName": workspace_name,
                "role": role,
                "inviteUrl": f"{settings.client_url}/invite/{token}",
                "expiresInDays": settings.invitation_expire_days,
            },
        )
