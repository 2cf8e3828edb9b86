"""Workspace role gates."""

from __future__ import annotations

from typing import Annotated

import structlog
from fastapi import Depends, Request

from arena_pm_service.access.policy import run_gate
from arena_pm_service.access.resolver import (
    require_workspace_id,
    resolve_workspace_id,
    verify_workspace_access,
)
from arena_pm_service.auth.deps import CurrentUserDep
from arena_pm_service.auth.models import EditPermissions, WorkspaceContext
from arena_pm_service.db.deps import WorkspacesRepoDep
from arena_pm_service.errors import AppError

logger = structlog.get_logger()


def require_workspace_role(*allowed_roles: str):
    """Dependency factory that admits only members holding one of ``allowed_roles``.

    On success the ``WorkspaceContext`` is attached to ``request.state.workspace``
    and returned to the endpoint.
    """

    async def _check(
        request: Request, current_user: CurrentUserDep, repo: WorkspacesRepoDep
    ) -> WorkspaceContext:
        workspace_id = await require_workspace_id(request)
        membership = await run_gate(
            "workspace_role",
            lambda: verify_workspace_access(repo, current_user.user_id, workspace_id),
        )
        if membership is None:
            raise AppError.forbidden("You do not have access to this workspace")
        if membership.role not in allowed_roles:
            raise AppError.forbidden(
                f"This action requires one of these roles: {', '.join(allowed_roles)}. "
                f"Your role: {membership.role}"
            )
        context = WorkspaceContext(id=workspace_id, role=membership.role)
        request.state.workspace = context
        return context

    return Depends(_check)


require_workspace_member = require_workspace_role("admin", "member", "viewer")
require_workspace_editor = require_workspace_role("admin", "member")
require_workspace_admin = require_workspace_role("admin")


WorkspaceMemberDep = Annotated[WorkspaceContext, require_workspace_member]
WorkspaceEditorDep = Annotated[WorkspaceContext, require_workspace_editor]
WorkspaceAdminDep = Annotated[WorkspaceContext, require_workspace_admin]


async def check_workspace_edit_permission(
    request: Request, current_user: CurrentUserDep, repo: WorkspacesRepoDep
) -> EditPermissions:
    """Report the caller's edit rights without ever rejecting the request."""
    try:
        workspace_id = await resolve_workspace_id(request)
        if workspace_id is None:
            return EditPermissions()
        membership = await verify_workspace_access(repo, current_user.user_id, workspace_id)
    except Exception as exc:
        logger.warning("edit_permission_check_failed", error=str(exc))
        return EditPermissions()
    if membership is None:
        return EditPermissions()
    return EditPermissions(
        can_edit=membership.role in ("admin", "member"),
        is_admin=membership.role == "admin",
        is_viewer=membership.role == "viewer",
    )
