"""Plan quota gates for tasks, members and owned workspaces.

All three gates fail open: if the limit lookup itself breaks, the failure is
logged and the request proceeds.
"""

from __future__ import annotations

from dataclasses import replace
from uuid import UUID

from fastapi import Request

from arena_pm_service.access.policy import run_gate
from arena_pm_service.access.resolver import parse_workspace_id, resolve_workspace_id
from arena_pm_service.auth.deps import CurrentUserDep
from arena_pm_service.auth.models import (
    FREE_PLAN_LIMITS,
    FREE_WORKSPACE_LIMIT,
    PRO_WORKSPACE_LIMIT,
    PlanLimits,
)
from arena_pm_service.db.deps import BillingRepoDep
from arena_pm_service.db.repositories.billing import BillingRepo
from arena_pm_service.errors import AppError


async def get_workspace_plan_limits(repo: BillingRepo, workspace_id: UUID) -> PlanLimits:
    """Limits of the workspace's active or trialing plan; free defaults otherwise."""
    limits = await repo.get_active_plan_limits(workspace_id)
    if limits is None:
        return replace(FREE_PLAN_LIMITS, features={})
    return limits


def _plan_label(plan_id: str) -> str:
    return "Free" if plan_id == "free" else plan_id


def task_limit_error(limits: PlanLimits, current: int) -> AppError:
    limit = limits.max_tasks_per_workspace
    return AppError.quota_exceeded(
        "PLAN_LIMIT_TASKS",
        f"Your workspace has reached the {limit}-task limit on the "
        f"{_plan_label(limits.plan_id)} plan. Upgrade to Pro for unlimited tasks.",
        limit=limit,
        current=current,
        plan_id=limits.plan_id,
    )


async def check_task_limit(request: Request, repo: BillingRepoDep) -> PlanLimits | None:
    """Reject new top-level tasks once the workspace is at its plan's task quota."""

    async def _check() -> PlanLimits | None:
        workspace_id = await resolve_workspace_id(request)
        if workspace_id is None:
            return None
        limits = await get_workspace_plan_limits(repo, workspace_id)
        limit = limits.max_tasks_per_workspace
        if limit is not None:
            current = await repo.count_top_level_tasks(workspace_id)
            if current >= limit:
                raise task_limit_error(limits, current)
        request.state.plan_limits = limits
        return limits

    return await run_gate("task_limit", _check)


async def check_member_limit(request: Request, repo: BillingRepoDep) -> PlanLimits | None:
    """Reject invitations once members plus pending invitations fill the plan's seats."""

    async def _check() -> PlanLimits | None:
        workspace_id = parse_workspace_id(request.path_params.get("id"))
        if workspace_id is None:
            workspace_id = await resolve_workspace_id(request)
        if workspace_id is None:
            return None
        limits = await get_workspace_plan_limits(repo, workspace_id)
        limit = limits.max_members
        if limit is not None:
            members = await repo.count_members(workspace_id)
            pending = await repo.count_pending_invitations(workspace_id)
            current = members + pending
            if current >= limit:
                raise AppError.quota_exceeded(
                    "PLAN_LIMIT_MEMBERS",
                    f"Your workspace has reached the {limit}-member limit on the "
                    f"{_plan_label(limits.plan_id)} plan. Upgrade to Pro for up to 50 members.",
                    limit=limit,
                    current=current,
                    plan_id=limits.plan_id,
                )
        request.state.plan_limits = limits
        return limits

    return await run_gate("member_limit", _check)


async def check_workspace_limit(current_user: CurrentUserDep, repo: BillingRepoDep) -> None:
    """Cap how many workspaces a user may own.

    Owners with any active pro subscription are not blocked here.
    """

    async def _check() -> None:
        current = await repo.count_owned_workspaces(current_user.user_id)
        has_pro = await repo.owner_has_pro_subscription(current_user.user_id)
        limit = PRO_WORKSPACE_LIMIT if has_pro else FREE_WORKSPACE_LIMIT
        if current >= limit and not has_pro:
            raise AppError.quota_exceeded(
                "PLAN_LIMIT_WORKSPACES",
                "Free plan allows 1 workspace. Upgrade to Pro for up to 10 workspaces.",
                limit=limit,
                current=current,
                plan_id="free",
            )

    await run_gate("workspace_limit", _check)
