"""Repository for plans, subscriptions and the usage counts quotas are checked against."""

from __future__ import annotations

from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from arena_pm_service.auth.models import ACTIVE_SUBSCRIPTION_STATUSES, PlanLimits
from arena_pm_service.db.models import (
    PlanModel,
    SubscriptionModel,
    TaskModel,
    WorkspaceInvitationModel,
    WorkspaceMemberModel,
    WorkspaceModel,
)


class BillingRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_active_plan_limits(self, workspace_id: UUID) -> PlanLimits | None:
        """Limits of the workspace's active or trialing subscription, or None."""
        result = await self._session.execute(
            select(PlanModel)
            .join(SubscriptionModel, SubscriptionModel.plan_id == PlanModel.id)
            .where(
                SubscriptionModel.workspace_id == workspace_id,
                SubscriptionModel.status.in_(ACTIVE_SUBSCRIPTION_STATUSES),
            )
        )
        plan = result.scalars().first()
        if plan is None:
            return None
        return PlanLimits(
            plan_id=plan.id,
            max_members=plan.max_members,
            max_tasks_per_workspace=plan.max_tasks_per_workspace,
            features=dict(plan.features or {}),
        )

    async def get_subscription(
        self, workspace_id: UUID
    ) -> tuple[str, str, str | None] | None:
        """Return (status, plan_id, plan_name) for the workspace, in any status."""
        result = await self._session.execute(
            select(SubscriptionModel.status, SubscriptionModel.plan_id, PlanModel.name)
            .join(PlanModel, PlanModel.id == SubscriptionModel.plan_id)
            .where(SubscriptionModel.workspace_id == workspace_id)
        )
        row = result.first()
        if row is None:
            return None
        return row[0], row[1], row[2]

    async def create_subscription(
        self, workspace_id: UUID, plan_id: str = "free"
    ) -> SubscriptionModel:
        subscription = SubscriptionModel(
            workspace_id=workspace_id, plan_id=plan_id, status="active", seat_count=1
        )
        self._session.add(subscription)
        await self._session.flush()
        return subscription

    async def count_top_level_tasks(self, workspace_id: UUID) -> int:
        result = await self._session.execute(
            select(func.count())
            .select_from(TaskModel)
            .where(TaskModel.workspace_id == workspace_id, TaskModel.parent_task_id.is_(None))
        )
        return result.scalar_one()

    async def count_members(self, workspace_id: UUID) -> int:
        result = await self._session.execute(
            select(func.count())
            .select_from(WorkspaceMemberModel)
            .where(WorkspaceMemberModel.workspace_id == workspace_id)
        )
        return result.scalar_one()

    async def count_pending_invitations(self, workspace_id: UUID) -> int:
        result = await self._session.execute(
            select(func.count())
            .select_from(WorkspaceInvitationModel)
            .where(
                WorkspaceInvitationModel.workspace_id == workspace_id,
                WorkspaceInvitationModel.accepted_at.is_(None),
                WorkspaceInvitationModel.expires_at > datetime.now(UTC),
            )
        )
        return result.scalar_one()

    async def count_owned_workspaces(self, user_id: UUID) -> int:
        result = await self._session.execute(
            select(func.count()).select_from(WorkspaceModel).where(WorkspaceModel.owner_id == user_id)
        )
        return result.scalar_one()

    async def owner_has_pro_subscription(self, user_id: UUID) -> bool:
        """True if any workspace the user owns has an active or trialing pro plan."""
        result = await self._session.execute(
            select(SubscriptionModel.id)
            .join(WorkspaceModel, WorkspaceModel.id == SubscriptionModel.workspace_id)
            .where(
                WorkspaceModel.owner_id == user_id,
                SubscriptionModel.plan_id == "pro",
                SubscriptionModel.status.in_(ACTIVE_SUBSCRIPTION_STATUSES),
            )
            .limit(1)
        )
        return result.first() is not None
