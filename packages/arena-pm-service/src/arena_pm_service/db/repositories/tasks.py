"""Repository for task creation under the plan's task quota."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from arena_pm_service.db.models import TaskModel, WorkspaceModel


class TaskLimitReached(Exception):
    def __init__(self, limit: int, current: int) -> None:
        super().__init__(f"task limit {limit} reached ({current} tasks)")
        self.limit = limit
        self.current = current


class TasksRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_task(self, workspace_id: UUID, task_id: UUID) -> TaskModel | None:
        result = await self._session.execute(
            select(TaskModel).where(TaskModel.id == task_id, TaskModel.workspace_id == workspace_id)
        )
        return result.scalars().first()

    async def create_within_limit(
        self,
        workspace_id: UUID,
        title: str,
        created_by: UUID,
        limit: int | None = None,
        parent_task_id: UUID | None = None,
        category_id: UUID | None = None,
        description: str | None = None,
    ) -> TaskModel:
        """Insert a task, re-checking the top-level task quota under a workspace row lock.

        Concurrent creators in the same workspace serialize on the lock, so the
        count seen here cannot go stale before the insert commits. Subtasks do
        not count against the quota.
        """
        await self._session.execute(
            select(WorkspaceModel.id).where(WorkspaceModel.id == workspace_id).with_for_update()
        )
        if limit is not None and parent_task_id is None:
            result = await self._session.execute(
                select(func.count())
                .select_from(TaskModel)
                .where(TaskModel.workspace_id == workspace_id, TaskModel.parent_task_id.is_(None))
            )
            current = result.scalar_one()
            if current >= limit:
                raise TaskLimitReached(limit, current)

        task = TaskModel(
            workspace_id=workspace_id,
            title=title,
            description=description,
            parent_task_id=parent_task_id,
            category_id=category_id,
            created_by=created_by,
        )
        self._session.add(task)
        await self._session.flush()
        await self._session.refresh(task)
        return task
