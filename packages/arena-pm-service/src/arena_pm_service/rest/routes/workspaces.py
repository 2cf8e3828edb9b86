"""Workspace, membership and invitation endpoints."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Annotated
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError

from arena_pm_service.access.billing import require_active_subscription
from arena_pm_service.access.plan_limits import check_member_limit, check_workspace_limit
from arena_pm_service.access.roles import (
    WorkspaceAdminDep,
    WorkspaceMemberDep,
    check_workspace_edit_permission,
    require_workspace_admin,
)
from arena_pm_service.auth.deps import CurrentUserDep, get_current_user
from arena_pm_service.auth.models import WORKSPACE_ROLES, EditPermissions, is_valid_email
from arena_pm_service.auth.one_time import generate_invitation_token
from arena_pm_service.db.deps import (
    AuthRepoDep,
    BillingRepoDep,
    InvitationsRepoDep,
    NotifierDep,
    SessionDep,
    WorkspacesRepoDep,
)
from arena_pm_service.errors import AppError
from arena_pm_service.rest.schemas import (
    AcceptedInviteSchema,
    Envelope,
    InvitationData,
    InvitationListData,
    InvitationSchema,
    InviteInfoSchema,
    MemberData,
    MemberListData,
    MemberSchema,
    PermissionsSchema,
    WorkspaceData,
    WorkspaceListData,
    WorkspaceSchema,
)
from arena_pm_service.settings import settings

logger = structlog.get_logger()

router = APIRouter(prefix="/workspaces", tags=["workspaces"])

INVALID_ROLE = "Invalid role. Must be: admin, member, or viewer"
INVALID_INVITATION = "Invalid or expired invitation"

EditPermissionsDep = Annotated[EditPermissions, Depends(check_workspace_edit_permission)]


class WorkspaceRequest(BaseModel):
    name: str | None = None


class InviteRequest(BaseModel):
    email: str | None = None
    role: str = "member"


class MemberRoleRequest(BaseModel):
    role: str | None = None


def _required_name(body: WorkspaceRequest) -> str:
    name = (body.name or "").strip()
    if not name:
        raise AppError.bad_request("Workspace name is required")
    if len(name) > 100:
        raise AppError.bad_request("Workspace name must be 100 characters or less")
    return name


async def _workspace_or_404(workspaces, workspace_id: UUID):
    workspace = await workspaces.get_workspace(workspace_id)
    if workspace is None:
        raise AppError.not_found("Workspace not found")
    return workspace


# ---------------------------------------------------------------------------
# Public / token-addressed invitation endpoints
# ---------------------------------------------------------------------------


@router.get(
    "/invite-info/{token}",
    response_model=Envelope[InviteInfoSchema],
    response_model_exclude_none=True,
)
async def get_invite_info(token: str, invitations: InvitationsRepoDep) -> Envelope[InviteInfoSchema]:
    """Describe an invitation for the landing page. Read-only and unauthenticated."""
    invitation = await invitations.get_by_token(token)
    if invitation is None:
        raise AppError(
            "This invite link is invalid.", 404, extra={"inviteStatus": "invalid"}
        )

    workspace_name = invitation.workspace.name if invitation.workspace else None
    inviter_name = invitation.inviter.name if invitation.inviter else None
    if invitation.accepted_at is not None:
        info = InviteInfoSchema(
            invite_status="accepted",
            workspace_name=workspace_name,
            inviter_name=inviter_name,
            workspace_id=str(invitation.workspace_id),
        )
    elif invitation.expires_at <= datetime.now(UTC):
        info = InviteInfoSchema(
            invite_status="expired",
            workspace_name=workspace_name,
            inviter_name=inviter_name,
        )
    else:
        info = InviteInfoSchema(
            invite_status="valid",
            workspace_name=workspace_name,
            inviter_name=inviter_name,
            invited_email=invitation.email,
            role=invitation.role,
        )
    return Envelope(data=info)


@router.post(
    "/accept-invite/{token}",
    response_model=Envelope[AcceptedInviteSchema],
)
async def accept_invitation(
    token: str,
    current_user: CurrentUserDep,
    users: AuthRepoDep,
    workspaces: WorkspacesRepoDep,
    invitations: InvitationsRepoDep,
    session: SessionDep,
) -> Envelope[AcceptedInviteSchema]:
    """Join the invited workspace. Accepting twice is a no-op success."""
    invitation = await invitations.get_by_token(token, for_update=True)
    if invitation is None:
        raise AppError.bad_request(INVALID_INVITATION)

    user = await users.get_user_by_id(current_user.user_id)
    if user is None:
        raise AppError.not_found("User not found")
    if user.email.lower() != invitation.email.lower():
        raise AppError.forbidden("This invitation was sent to a different email address")
    if invitation.accepted_at is None and invitation.expires_at <= datetime.now(UTC):
        raise AppError.bad_request("This invitation has expired")

    workspace_name = invitation.workspace.name if invitation.workspace else ""
    accepted = AcceptedInviteSchema(
        workspace_id=str(invitation.workspace_id),
        workspace_name=workspace_name,
        role=invitation.role,
    )

    existing = await workspaces.get_membership(invitation.workspace_id, user.id)
    if existing is not None:
        accepted.role = existing.role
        accepted.already_member = True
        await session.rollback()
        return Envelope(message="You are already a member of this workspace", data=accepted)
    if invitation.accepted_at is not None:
        raise AppError.bad_request(INVALID_INVITATION)

    try:
        await workspaces.add_member(invitation.workspace_id, user.id, invitation.role)
        await invitations.mark_accepted(invitation)
        await session.commit()
    except IntegrityError:
        # A concurrent accept for the same user already inserted the membership.
        await session.rollback()
        accepted.already_member = True
        return Envelope(message="You are already a member of this workspace", data=accepted)

    logger.info(
        "invitation_accepted",
        workspace_id=str(invitation.workspace_id),
        user_id=str(user.id),
        role=invitation.role,
    )
    return Envelope(message=f'Successfully joined "{workspace_name}"', data=accepted)


# ---------------------------------------------------------------------------
# Workspaces
# ---------------------------------------------------------------------------


@router.get("", response_model=Envelope[WorkspaceListData])
async def list_workspaces(
    current_user: CurrentUserDep, workspaces: WorkspacesRepoDep
) -> Envelope[WorkspaceListData]:
    rows = await workspaces.list_for_user(current_user.user_id)
    return Envelope(
        data=WorkspaceListData(
            workspaces=[
                WorkspaceSchema.from_model(ws, user_role=role, member_count=count)
                for ws, role, count in rows
            ]
        )
    )


@router.post(
    "",
    response_model=Envelope[WorkspaceData],
    status_code=201,
    dependencies=[Depends(get_current_user), Depends(check_workspace_limit)],
)
async def create_workspace(
    body: WorkspaceRequest,
    current_user: CurrentUserDep,
    workspaces: WorkspacesRepoDep,
    billing: BillingRepoDep,
    session: SessionDep,
) -> Envelope[WorkspaceData]:
    name = _required_name(body)
    workspace = await workspaces.create_workspace(name, current_user.user_id)
    await billing.create_subscription(workspace.id, plan_id="free")
    await session.commit()
    logger.info("workspace_created", workspace_id=str(workspace.id), owner_id=str(current_user.user_id))
    return Envelope(
        message="Workspace created successfully",
        data=WorkspaceData(workspace=WorkspaceSchema.from_model(workspace, user_role="admin")),
    )


@router.get("/{id}", response_model=Envelope[WorkspaceData])
async def get_workspace(
    workspace: WorkspaceMemberDep,
    permissions: EditPermissionsDep,
    workspaces: WorkspacesRepoDep,
) -> Envelope[WorkspaceData]:
    row = await _workspace_or_404(workspaces, workspace.id)
    return Envelope(
        data=WorkspaceData(
            workspace=WorkspaceSchema.from_model(row, user_role=workspace.role),
            permissions=PermissionsSchema(
                can_edit=permissions.can_edit,
                is_admin=permissions.is_admin,
                is_viewer=permissions.is_viewer,
            ),
        )
    )


@router.put("/{id}", response_model=Envelope[WorkspaceData])
async def update_workspace(
    body: WorkspaceRequest,
    workspace: WorkspaceAdminDep,
    workspaces: WorkspacesRepoDep,
    session: SessionDep,
) -> Envelope[WorkspaceData]:
    name = _required_name(body)
    row = await _workspace_or_404(workspaces, workspace.id)
    await workspaces.rename_workspace(row, name)
    await session.commit()
    return Envelope(
        message="Workspace updated successfully",
        data=WorkspaceData(workspace=WorkspaceSchema.from_model(row, user_role=workspace.role)),
    )


@router.delete("/{id}", response_model=Envelope)
async def delete_workspace(
    workspace: WorkspaceMemberDep,
    current_user: CurrentUserDep,
    workspaces: WorkspacesRepoDep,
    session: SessionDep,
) -> Envelope:
    row = await _workspace_or_404(workspaces, workspace.id)
    if row.owner_id != current_user.user_id:
        raise AppError.forbidden("Only the workspace owner can delete the workspace")
    await workspaces.delete_workspace(row)
    await session.commit()
    logger.info("workspace_deleted", workspace_id=str(workspace.id))
    return Envelope(message="Workspace deleted successfully")


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------


@router.get("/{id}/members", response_model=Envelope[MemberListData])
async def list_members(
    workspace: WorkspaceMemberDep, workspaces: WorkspacesRepoDep
) -> Envelope[MemberListData]:
    row = await _workspace_or_404(workspaces, workspace.id)
    members = await workspaces.list_members(workspace.id)
    return Envelope(
        data=MemberListData(
            members=[
                MemberSchema(
                    id=str(member.id),
                    user_id=str(member.user_id),
                    name=user.name,
                    email=user.email,
                    role=member.role,
                    is_owner=member.user_id == row.owner_id,
                    joined_at=member.joined_at,
                )
                for member, user in members
            ]
        )
    )


@router.patch("/{id}/members/{member_id}", response_model=Envelope[MemberData])
async def update_member_role(
    member_id: UUID,
    body: MemberRoleRequest,
    workspace: WorkspaceAdminDep,
    users: AuthRepoDep,
    workspaces: WorkspacesRepoDep,
    session: SessionDep,
) -> Envelope[MemberData]:
    if body.role not in WORKSPACE_ROLES:
        raise AppError.bad_request(INVALID_ROLE)

    row = await _workspace_or_404(workspaces, workspace.id)
    member = await workspaces.get_member(workspace.id, member_id)
    if member is None:
        raise AppError.not_found("Member not found")
    if member.user_id == row.owner_id:
        raise AppError.bad_request("Cannot change workspace owner's role")

    await workspaces.update_member_role(member, body.role)
    await session.commit()
    user = await users.get_user_by_id(member.user_id)
    logger.info(
        "member_role_updated", workspace_id=str(workspace.id), member_id=str(member_id), role=body.role
    )
    return Envelope(
        message="Member role updated successfully",
        data=MemberData(
            member=MemberSchema(
                id=str(member.id),
                user_id=str(member.user_id),
                name=user.name if user else "",
                email=user.email if user else "",
                role=member.role,
                joined_at=member.joined_at,
            )
        ),
    )


@router.delete("/{id}/members/{member_id}", response_model=Envelope)
async def remove_member(
    member_id: UUID,
    workspace: WorkspaceMemberDep,
    current_user: CurrentUserDep,
    workspaces: WorkspacesRepoDep,
    session: SessionDep,
) -> Envelope:
    """Admins remove anyone but the owner; every member may remove themselves."""
    row = await _workspace_or_404(workspaces, workspace.id)
    member = await workspaces.get_member(workspace.id, member_id)
    if member is None:
        raise AppError.not_found("Member not found")
    if member.user_id == row.owner_id:
        raise AppError.bad_request(
            "Cannot remove workspace owner. Transfer ownership first or delete the workspace."
        )
    if member.user_id != current_user.user_id and workspace.role != "admin":
        raise AppError.forbidden("Only workspace admins can remove members")

    await workspaces.remove_member(member)
    await session.commit()
    logger.info("member_removed", workspace_id=str(workspace.id), member_id=str(member_id))
    return Envelope(message="Member removed successfully")


# ---------------------------------------------------------------------------
# Invitations
# ---------------------------------------------------------------------------


@router.post(
    "/{id}/invite",
    response_model=Envelope[InvitationData],
    status_code=201,
    dependencies=[
        Depends(get_current_user),
        require_workspace_admin,
        Depends(check_member_limit),
        Depends(require_active_subscription),
    ],
)
async def invite_to_workspace(
    body: InviteRequest,
    workspace: WorkspaceAdminDep,
    current_user: CurrentUserDep,
    users: AuthRepoDep,
    workspaces: WorkspacesRepoDep,
    invitations: InvitationsRepoDep,
    session: SessionDep,
    notifier: NotifierDep,
) -> Envelope[InvitationData]:
    if body.role not in WORKSPACE_ROLES:
        raise AppError.bad_request(INVALID_ROLE)
    email = (body.email or "").strip().lower()
    if not email:
        raise AppError.bad_request("Email is required")
    if not is_valid_email(email):
        raise AppError.bad_request("Invalid email format")

    existing_user = await users.get_user_by_email(email)
    if existing_user is not None:
        if await workspaces.get_membership(workspace.id, existing_user.id) is not None:
            raise AppError.bad_request("User is already a member of this workspace")
    if await invitations.get_pending_for_email(workspace.id, email) is not None:
        raise AppError.bad_request("An invitation is already pending for this email")

    row = await _workspace_or_404(workspaces, workspace.id)
    inviter = await users.get_user_by_id(current_user.user_id)
    inviter_name = inviter.name if inviter else current_user.email

    token = generate_invitation_token()
    invitation = await invitations.create(
        workspace_id=workspace.id,
        email=email,
        role=body.role,
        invited_by=current_user.user_id,
        token=token,
        expires_at=datetime.now(UTC) + timedelta(days=settings.invitation_expire_days),
    )
    await session.commit()
    logger.info("invitation_created", workspace_id=str(workspace.id), role=body.role)

    queued = await notifier.queue_workspace_invite(email, inviter_name, row.name, body.role, token)
    message = (
        f"Invitation sent to {email}"
        if queued
        else f"Invitation created for {email}. Email delivery is pending."
    )
    return Envelope(
        message=message,
        data=InvitationData(
            invitation=InvitationSchema(
                id=str(invitation.id),
                email=invitation.email,
                role=invitation.role,
                invited_by_name=inviter_name,
                workspace_name=row.name,
                expires_at=invitation.expires_at,
                created_at=invitation.created_at,
            )
        ),
    )


@router.get("/{id}/invitations", response_model=Envelope[InvitationListData])
async def list_invitations(
    workspace: WorkspaceAdminDep, invitations: InvitationsRepoDep
) -> Envelope[InvitationListData]:
    pending = await invitations.list_pending(workspace.id)
    return Envelope(
        data=InvitationListData(
            invitations=[
                InvitationSchema(
                    id=str(invitation.id),
                    email=invitation.email,
                    role=invitation.role,
                    invited_by_name=invitation.inviter.name if invitation.inviter else None,
                    expires_at=invitation.expires_at,
                    created_at=invitation.created_at,
                )
                for invitation in pending
            ]
        )
    )


@router.delete("/{id}/invitations/{invitation_id}", response_model=Envelope)
async def cancel_invitation(
    invitation_id: UUID,
    workspace: WorkspaceAdminDep,
    invitations: InvitationsRepoDep,
    session: SessionDep,
) -> Envelope:
    if not await invitations.delete(workspace.id, invitation_id):
        raise AppError.not_found("Invitation not found")
    await session.commit()
    logger.info("invitation_cancelled", workspace_id=str(workspace.id))
    return Envelope(message="Invitation cancelled")
