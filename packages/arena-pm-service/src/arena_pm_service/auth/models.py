"""Auth and access-context domain models."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

WORKSPACE_ROLES = ("admin", "member", "viewer")
ACTIVE_SUBSCRIPTION_STATUSES = ("active", "trialing")


@dataclass
class CurrentUser:
    user_id: UUID
    email: str
    role: str  # application role: "admin" | "member"


@dataclass
class WorkspaceContext:
    """Attached to the request once a role gate has passed."""

    id: UUID
    role: str  # "admin" | "member" | "viewer"


@dataclass
class PlanLimits:
    plan_id: str
    max_members: int | None
    max_tasks_per_workspace: int | None
    features: dict[str, Any] = field(default_factory=dict)


FREE_PLAN_LIMITS = PlanLimits(
    plan_id="free",
    max_members=3,
    max_tasks_per_workspace=50,
    features={},
)

# Workspaces a user may own without any pro subscription, and with one.
FREE_WORKSPACE_LIMIT = 1
PRO_WORKSPACE_LIMIT = 10


@dataclass
class SubscriptionContext:
    """Attached to the request once the billing gate has passed."""

    plan_id: str
    status: str
    plan_name: str | None = None


@dataclass
class EditPermissions:
    """Non-blocking view of what the caller may do in the targeted workspace."""

    can_edit: bool = False
    is_admin: bool = False
    is_viewer: bool = False


_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_RE.match(email))
