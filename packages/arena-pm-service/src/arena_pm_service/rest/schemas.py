"""Pydantic response models for the REST API.

Responses use the ``{status, message, data}`` envelope with camelCase keys.
Request bodies are declared next to their routers.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class ApiSchema(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Envelope(BaseModel, Generic[T]):
    status: str = "success"
    message: str | None = None
    data: T | None = None


class UserSchema(ApiSchema):
    id: str
    email: str
    name: str
    role: str
    email_verified: bool = False
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, user: Any) -> UserSchema:
        return cls(
            id=str(user.id),
            email=user.email,
            name=user.name,
            role=user.role,
            email_verified=bool(user.email_verified),
            created_at=user.created_at,
        )


class WorkspaceSchema(ApiSchema):
    id: str
    name: str
    owner_id: str | None = None
    user_role: str | None = None
    member_count: int | None = None
    created_at: datetime | None = None

    @classmethod
    def from_model(
        cls, workspace: Any, user_role: str | None = None, member_count: int | None = None
    ) -> WorkspaceSchema:
        return cls(
            id=str(workspace.id),
            name=workspace.name,
            owner_id=str(workspace.owner_id) if workspace.owner_id else None,
            user_role=user_role,
            member_count=member_count,
            created_at=workspace.created_at,
        )


class PermissionsSchema(ApiSchema):
    can_edit: bool
    is_admin: bool
    is_viewer: bool


class MemberSchema(ApiSchema):
    id: str
    user_id: str
    name: str
    email: str
    role: str
    is_owner: bool = False
    joined_at: datetime | None = None


class InvitationSchema(ApiSchema):
    id: str
    email: str
    role: str
    invited_by_name: str | None = None
    workspace_name: str | None = None
    expires_at: datetime | None = None
    created_at: datetime | None = None


class InviteInfoSchema(ApiSchema):
    invite_status: str
    workspace_id: str | None = None
    workspace_name: str | None = None
    inviter_name: str | None = None
    invited_email: str | None = None
    role: str | None = None


class AcceptedInviteSchema(ApiSchema):
    workspace_id: str
    workspace_name: str
    role: str
    already_member: bool = False


class TaskSchema(ApiSchema):
    id: str
    workspace_id: str
    title: str
    parent_task_id: str | None = None
    category_id: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, task: Any) -> TaskSchema:
        return cls(
            id=str(task.id),
            workspace_id=str(task.workspace_id),
            title=task.title,
            parent_task_id=str(task.parent_task_id) if task.parent_task_id else None,
            category_id=str(task.category_id) if task.category_id else None,
            created_at=task.created_at,
        )


# ---------------------------------------------------------------------------
# Envelope payloads
# ---------------------------------------------------------------------------


class AuthData(ApiSchema):
    user: UserSchema
    workspace: WorkspaceSchema | None = None


class WorkspaceData(ApiSchema):
    workspace: WorkspaceSchema
    permissions: PermissionsSchema | None = None


class WorkspaceListData(ApiSchema):
    workspaces: list[WorkspaceSchema]


class MemberListData(ApiSchema):
    members: list[MemberSchema]


class MemberData(ApiSchema):
    member: MemberSchema


class InvitationData(ApiSchema):
    invitation: InvitationSchema


class InvitationListData(ApiSchema):
    invitations: list[InvitationSchema]


class TaskData(ApiSchema):
    task: TaskSchema
