"""Billing-status gate: blocks writes to workspaces whose subscription lapsed."""

from __future__ import annotations

from fastapi import Request

from arena_pm_service.access.policy import run_gate
from arena_pm_service.access.resolver import resolve_workspace_id
from arena_pm_service.auth.models import SubscriptionContext
from arena_pm_service.db.deps import BillingRepoDep
from arena_pm_service.errors import AppError


async def require_active_subscription(
    request: Request, repo: BillingRepoDep
) -> SubscriptionContext | None:
    """Return 402 for canceled or past-due subscriptions.

    Requests without a workspace are not billing-scoped and pass. The path
    ``id`` parameter is not consulted; on ``/workspaces/{id}`` routes the
    workspace comes from the context a role gate attached.
    """

    async def _check() -> SubscriptionContext | None:
        workspace_id = await resolve_workspace_id(request, include_path_id=False)
        if workspace_id is None:
            return None

        row = await repo.get_subscription(workspace_id)
        if row is None:
            subscription = SubscriptionContext(plan_id="free", status="active")
        else:
            status, plan_id, plan_name = row
            if status == "canceled":
                raise AppError.payment_required(
                    "SUBSCRIPTION_CANCELED",
                    "Your subscription has been canceled. "
                    "Please resubscribe to continue using this workspace.",
                )
            if status == "past_due":
                raise AppError.payment_required(
                    "PAYMENT_PAST_DUE",
                    "Your payment is past due. Please update your payment method to continue.",
                )
            subscription = SubscriptionContext(plan_id=plan_id, status=status, plan_name=plan_name)

        request.state.subscription = subscription
        return subscription

    return await run_gate("billing", _check)
