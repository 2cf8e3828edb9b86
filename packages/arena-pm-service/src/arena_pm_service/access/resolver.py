"""Workspace membership lookup and workspace-id resolution for a request."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi import Request

from arena_pm_service.db.models import WorkspaceMemberModel
from arena_pm_service.db.repositories.workspaces import WorkspacesRepo
from arena_pm_service.errors import AppError


async def verify_workspace_access(
    repo: WorkspacesRepo, user_id: UUID, workspace_id: UUID
) -> WorkspaceMemberModel | None:
    """Return the user's membership in the workspace, or None if they are not a member."""
    return await repo.get_membership(workspace_id, user_id)


def parse_workspace_id(value: Any) -> UUID | None:
    if value is None or value == "":
        return None
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError as exc:
        raise AppError.bad_request("workspace_id must be a valid UUID") from exc


async def _body_workspace_id(request: Request) -> Any:
    body = await request.body()
    if not body:
        return None
    try:
        data = await request.json()
    except ValueError:
        return None
    if isinstance(data, dict):
        return data.get("workspace_id")
    return None


async def resolve_workspace_id(request: Request, include_path_id: bool = True) -> UUID | None:
    """Find the workspace a request targets.

    Sources in order: body ``workspace_id``, query ``workspace_id``, path
    ``workspaceId``, path ``id`` (unless ``include_path_id`` is False), then
    the workspace context a role gate already attached. The result is cached
    on ``request.state`` for the rest of the request.
    """
    cache: dict[bool, UUID | None] = getattr(request.state, "workspace_ids", None)
    if cache is None:
        cache = {}
        request.state.workspace_ids = cache
    if include_path_id in cache:
        return cache[include_path_id]

    candidates = [
        await _body_workspace_id(request),
        request.query_params.get("workspace_id"),
        request.path_params.get("workspaceId"),
    ]
    if include_path_id:
        candidates.append(request.path_params.get("id"))
    context = getattr(request.state, "workspace", None)
    if context is not None:
        candidates.append(context.id)

    workspace_id = None
    for value in candidates:
        workspace_id = parse_workspace_id(value)
        if workspace_id is not None:
            break

    cache[include_path_id] = workspace_id
    return workspace_id


async def require_workspace_id(request: Request) -> UUID:
    workspace_id = await resolve_workspace_id(request)
    if workspace_id is None:
        raise AppError.bad_request("workspace_id is required")
    return workspace_id
