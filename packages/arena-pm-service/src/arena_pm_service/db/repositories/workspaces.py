"""Repository for workspaces and their memberships."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from arena_pm_service.db.models import (
    CategoryModel,
    TaskModel,
    UserModel,
    WorkspaceMemberModel,
    WorkspaceModel,
)

STARTER_CATEGORIES = [
    ("To Do", "#6366f1"),
    ("In Progress", "#f59e0b"),
    ("Completed", "#10b981"),
]

# (title, category index, subtasks)
STARTER_TASKS = [
    ("Invite your team members", 0, ["Open workspace settings", "Send an invitation"]),
    ("Customize your categories", 0, []),
    ("Explore the board", 1, []),
    ("Create your first workspace", 2, []),
]


class WorkspacesRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_membership(
        self, workspace_id: UUID, user_id: UUID
    ) -> WorkspaceMemberModel | None:
        result = await self._session.execute(
            select(WorkspaceMemberModel).where(
                WorkspaceMemberModel.workspace_id == workspace_id,
                WorkspaceMemberModel.user_id == user_id,
            )
        )
        return result.scalars().first()

    async def get_workspace(self, workspace_id: UUID) -> WorkspaceModel | None:
        return await self._session.get(WorkspaceModel, workspace_id)

    async def list_for_user(self, user_id: UUID) -> list[tuple[WorkspaceModel, str, int]]:
        """Return (workspace, caller_role, member_count) for every workspace the user belongs to."""
        member_count = (
            select(func.count())
            .select_from(WorkspaceMemberModel)
            .where(WorkspaceMemberModel.workspace_id == WorkspaceModel.id)
            .scalar_subquery()
        )
        result = await self._session.execute(
            select(WorkspaceModel, WorkspaceMemberModel.role, member_count)
            .join(WorkspaceMemberModel, WorkspaceMemberModel.workspace_id == WorkspaceModel.id)
            .where(WorkspaceMemberModel.user_id == user_id)
            .order_by(WorkspaceModel.created_at.asc())
        )
        return [(ws, role, count) for ws, role, count in result.all()]

    async def create_workspace(self, name: str, owner_id: UUID) -> WorkspaceModel:
        """Create a workspace together with its owner's admin membership."""
        workspace = WorkspaceModel(name=name, owner_id=owner_id)
        self._session.add(workspace)
        await self._session.flush()
        self._session.add(
            WorkspaceMemberModel(workspace_id=workspace.id, user_id=owner_id, role="admin")
        )
        await self._session.flush()
        await self._session.refresh(workspace)
        return workspace

    async def seed_starter_content(self, workspace_id: UUID, user_id: UUID) -> None:
        categories = [
            CategoryModel(
                workspace_id=workspace_id,
                name=name,
                color=color,
                position=position,
                created_by=user_id,
            )
            for position, (name, color) in enumerate(STARTER_CATEGORIES)
        ]
        self._session.add_all(categories)
        await self._session.flush()

        for position, (title, category_index, subtasks) in enumerate(STARTER_TASKS):
            task = TaskModel(
                workspace_id=workspace_id,
                category_id=categories[category_index].id,
                title=title,
                position=position,
                created_by=user_id,
            )
            self._session.add(task)
            await self._session.flush()
            for sub_position, sub_title in enumerate(subtasks):
                self._session.add(
                    TaskModel(
                        workspace_id=workspace_id,
                        category_id=task.category_id,
                        parent_task_id=task.id,
                        title=sub_title,
                        position=sub_position,
                        created_by=user_id,
                    )
                )
        await self._session.flush()

    async def rename_workspace(self, workspace: WorkspaceModel, name: str) -> WorkspaceModel:
        workspace.name = name
        await self._session.flush()
        return workspace

    async def delete_workspace(self, workspace: WorkspaceModel) -> None:
        await self._session.delete(workspace)
        await self._session.flush()

    async def list_members(
        self, workspace_id: UUID
    ) -> list[tuple[WorkspaceMemberModel, UserModel]]:
        result = await self._session.execute(
            select(WorkspaceMemberModel, UserModel)
            .join(UserModel, UserModel.id == WorkspaceMemberModel.user_id)
            .where(WorkspaceMemberModel.workspace_id == workspace_id)
            .order_by(WorkspaceMemberModel.role, UserModel.name)
        )
        return [(member, user) for member, user in result.all()]

    async def get_member(
        self, workspace_id: UUID, member_id: UUID
    ) -> WorkspaceMemberModel | None:
        result = await self._session.execute(
            select(WorkspaceMemberModel).where(
                WorkspaceMemberModel.id == member_id,
                WorkspaceMemberModel.workspace_id == workspace_id,
            )
        )
        return result.scalars().first()

    async def add_member(
        self, workspace_id: UUID, user_id: UUID, role: str = "member"
    ) -> WorkspaceMemberModel:
        member = WorkspaceMemberModel(workspace_id=workspace_id, user_id=user_id, role=role)
        self._session.add(member)
        await self._session.flush()
        return member

    async def update_member_role(
        self, member: WorkspaceMemberModel, role: str
    ) -> WorkspaceMemberModel:
        member.role = role
        await self._session.flush()
        return member

    async def remove_member(self, member: WorkspaceMemberModel) -> None:
        await self._session.delete(member)
        await self._session.flush()
