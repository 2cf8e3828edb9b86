"""Repository for workspace invitations."""

from __future__ import annotations

from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from arena_pm_service.db.models import WorkspaceInvitationModel


class InvitationsRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_token(
        self, token: str, for_update: bool = False
    ) -> WorkspaceInvitationModel | None:
        """Find an invitation in any state, with its workspace and inviter loaded."""
        query = (
            select(WorkspaceInvitationModel)
            .options(
                selectinload(WorkspaceInvitationModel.workspace),
                selectinload(WorkspaceInvitationModel.inviter),
            )
            .where(WorkspaceInvitationModel.token == token)
        )
        if for_update:
            query = query.with_for_update()
        result = await self._session.execute(query)
        return result.scalars().first()

    async def get_pending_for_email(
        self, workspace_id: UUID, email: str
    ) -> WorkspaceInvitationModel | None:
        result = await self._session.execute(
            select(WorkspaceInvitationModel).where(
                WorkspaceInvitationModel.workspace_id == workspace_id,
                WorkspaceInvitationModel.email == email.lower(),
                WorkspaceInvitationModel.accepted_at.is_(None),
                WorkspaceInvitationModel.expires_at > datetime.now(UTC),
            )
        )
        return result.scalars().first()

    async def create(
        self,
        workspace_id: UUID,
        email: str,
        role: str,
        invited_by: UUID,
        token: str,
        expires_at: datetime,
    ) -> WorkspaceInvitationModel:
        invitation = WorkspaceInvitationModel(
            workspace_id=workspace_id,
            email=email.lower(),
            role=role,
            invited_by=invited_by,
            token=token,
            expires_at=expires_at,
        )
        self._session.add(invitation)
        await self._session.flush()
        await self._session.refresh(invitation)
        return invitation

    async def list_pending(self, workspace_id: UUID) -> list[WorkspaceInvitationModel]:
        result = await self._session.execute(
            select(WorkspaceInvitationModel)
            .options(selectinload(WorkspaceInvitationModel.inviter))
            .where(
                WorkspaceInvitationModel.workspace_id == workspace_id,
                WorkspaceInvitationModel.accepted_at.is_(None),
                WorkspaceInvitationModel.expires_at > datetime.now(UTC),
            )
            .order_by(WorkspaceInvitationModel.created_at.desc())
        )
        return list(result.scalars().all())

    async def mark_accepted(self, invitation: WorkspaceInvitationModel) -> None:
        invitation.accepted_at = datetime.now(UTC)
        await self._session.flush()

    async def delete(self, workspace_id: UUID, invitation_id: UUID) -> bool:
        """Delete an invitation outright. Returns False if it did not exist."""
        result = await self._session.execute(
            delete(WorkspaceInvitationModel)
            .where(
                WorkspaceInvitationModel.id == invitation_id,
                WorkspaceInvitationModel.workspace_id == workspace_id,
            )
            .returning(WorkspaceInvitationModel.id)
        )
        return result.first() is not None
