"""Task creation, guarded by the full gate chain."""

from __future__ import annotations

from typing import Annotated
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from arena_pm_service.access.billing import require_active_subscription
from arena_pm_service.access.plan_limits import check_task_limit, task_limit_error
from arena_pm_service.access.roles import WorkspaceEditorDep, require_workspace_editor
from arena_pm_service.auth.deps import CurrentUserDep, get_current_user
from arena_pm_service.auth.models import PlanLimits
from arena_pm_service.db.deps import SessionDep, TasksRepoDep
from arena_pm_service.db.repositories.tasks import TaskLimitReached
from arena_pm_service.errors import AppError
from arena_pm_service.rest.schemas import Envelope, TaskData, TaskSchema

logger = structlog.get_logger()

router = APIRouter(prefix="/tasks", tags=["tasks"])

# None when the workspace has no task quota or the limit check failed open.
PlanLimitsDep = Annotated[PlanLimits | None, Depends(check_task_limit)]


class CreateTaskRequest(BaseModel):
    workspace_id: UUID | None = None
    title: str | None = None
    description: str | None = None
    parent_task_id: UUID | None = None
    category_id: UUID | None = None


@router.post(
    "",
    response_model=Envelope[TaskData],
    status_code=201,
    dependencies=[
        Depends(get_current_user),
        require_workspace_editor,
        Depends(check_task_limit),
        Depends(require_active_subscription),
    ],
)
async def create_task(
    body: CreateTaskRequest,
    workspace: WorkspaceEditorDep,
    limits: PlanLimitsDep,
    current_user: CurrentUserDep,
    tasks: TasksRepoDep,
    session: SessionDep,
) -> Envelope[TaskData]:
    title = (body.title or "").strip()
    if not title:
        raise AppError.bad_request("Task title is required")
    if len(title) > 500:
        raise AppError.bad_request("Task title must be 500 characters or less")

    if body.parent_task_id is not None:
        parent = await tasks.get_task(workspace.id, body.parent_task_id)
        if parent is None:
            raise AppError.not_found("Parent task not found")

    try:
        task = await tasks.create_within_limit(
            workspace_id=workspace.id,
            title=title,
            created_by=current_user.user_id,
            limit=limits.max_tasks_per_workspace if limits else None,
            parent_task_id=body.parent_task_id,
            category_id=body.category_id,
            description=body.description,
        )
        await session.commit()
    except TaskLimitReached as exc:
        await session.rollback()
        raise task_limit_error(limits, exc.current) from exc

    logger.info("task_created", workspace_id=str(workspace.id), task_id=str(task.id))
    return Envelope(
        message="Task created successfully", data=TaskData(task=TaskSchema.from_model(task))
    )
