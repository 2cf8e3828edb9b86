"""In-memory fakes for the repositories and notifier.

All fake repos share one ``InMemoryStore`` so counts seen by the quota gates
reflect rows written through the workspace and invitation repos.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock, MagicMock

from fastapi import FastAPI
from sqlalchemy.exc import IntegrityError

from arena_pm_service.auth.jwt import create_access_token
from arena_pm_service.auth.models import ACTIVE_SUBSCRIPTION_STATUSES, PlanLimits
from arena_pm_service.auth.passwords import hash_password
from arena_pm_service.db.deps import (
    get_auth_repo,
    get_billing_repo,
    get_invitations_repo,
    get_notifier,
    get_session,
    get_tasks_repo,
    get_workspaces_repo,
)
from arena_pm_service.db.repositories.tasks import TaskLimitReached
from arena_pm_service.errors import register_error_handlers
from arena_pm_service.rest.routes.auth import router as auth_router
from arena_pm_service.rest.routes.health import router as health_router
from arena_pm_service.rest.routes.tasks import router as tasks_router
from arena_pm_service.rest.routes.workspaces import router as workspaces_router

PASSWORD = "Secret123"

PLANS = {
    "free": PlanLimits(plan_id="free", max_members=3, max_tasks_per_workspace=50),
    "pro": PlanLimits(plan_id="pro", max_members=50, max_tasks_per_workspace=None),
}
PLAN_NAMES = {"free": "Free", "pro": "Pro"}


def _now() -> datetime:
    return datetime.now(UTC)


def _row(**fields: Any) -> MagicMock:
    row = MagicMock()
    for key, value in fields.items():
        setattr(row, key, value)
    return row


class InMemoryStore:
    """Tables as plain Python containers, plus seeding helpers for tests."""

    def __init__(self) -> None:
        self.users: dict[uuid.UUID, Any] = {}
        self.workspaces: dict[uuid.UUID, Any] = {}
        self.members: list[Any] = []
        self.invitations: list[Any] = []
        self.subscriptions: dict[uuid.UUID, Any] = {}
        self.categories: list[Any] = []
        self.tasks: list[Any] = []

    # -- seeding ------------------------------------------------------------

    def add_user(
        self,
        email: str = "alice@example.com",
        name: str = "Alice",
        role: str = "member",
        password: str | None = None,
        email_verified: bool = True,
    ) -> Any:
        user = _row(
            id=uuid.uuid4(),
            email=email.lower(),
            name=name,
            role=role,
            password_hash=hash_password(password) if password else "$2b$12$notarealhash",
            email_verified=email_verified,
            email_verification_token=None,
            email_verification_expires_at=None,
            password_reset_token=None,
            password_reset_expires_at=None,
            tos_accepted_at=_now(),
            deleted_at=None,
            created_at=_now(),
        )
        self.users[user.id] = user
        return user

    def add_workspace(self, owner: Any, name: str = "Acme") -> Any:
        workspace = _row(id=uuid.uuid4(), name=name, owner_id=owner.id, created_at=_now())
        self.workspaces[workspace.id] = workspace
        self.add_member(workspace, owner, "admin")
        return workspace

    def add_member(self, workspace: Any, user: Any, role: str = "member") -> Any:
        member = _row(
            id=uuid.uuid4(),
            workspace_id=workspace.id,
            user_id=user.id,
            role=role,
            joined_at=_now(),
        )
        self.members.append(member)
        return member

    def add_invitation(
        self,
        workspace: Any,
        email: str,
        role: str = "member",
        invited_by: Any = None,
        expires_in: timedelta = timedelta(days=7),
        accepted: bool = False,
    ) -> Any:
        invitation = _row(
            id=uuid.uuid4(),
            workspace_id=workspace.id,
            email=email.lower(),
            role=role,
            invited_by=invited_by.id if invited_by else None,
            token=uuid.uuid4().hex + uuid.uuid4().hex,
            expires_at=_now() + expires_in,
            accepted_at=_now() if accepted else None,
            created_at=_now(),
        )
        self.invitations.append(invitation)
        return invitation

    def set_subscription(self, workspace: Any, plan_id: str = "pro", status: str = "active") -> Any:
        subscription = _row(
            id=uuid.uuid4(), workspace_id=workspace.id, plan_id=plan_id, status=status
        )
        self.subscriptions[workspace.id] = subscription
        return subscription

    def add_tasks(self, workspace: Any, count: int, parent: Any = None) -> list[Any]:
        created = []
        for i in range(count):
            task = _row(
                id=uuid.uuid4(),
                workspace_id=workspace.id,
                title=f"Task {i}",
                description=None,
                parent_task_id=parent.id if parent else None,
                category_id=None,
                created_by=None,
                created_at=_now(),
            )
            self.tasks.append(task)
            created.append(task)
        return created

    # -- queries shared by the fakes ---------------------------------------

    def membership(self, workspace_id: uuid.UUID, user_id: uuid.UUID) -> Any:
        return next(
            (m for m in self.members if m.workspace_id == workspace_id and m.user_id == user_id),
            None,
        )

    def top_level_tasks(self, workspace_id: uuid.UUID) -> int:
        return sum(
            1 for t in self.tasks if t.workspace_id == workspace_id and t.parent_task_id is None
        )


class FakeAuthRepo:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    async def count_users(self) -> int:
        return len(self._store.users)

    async def create_user(self, email, password, name, role="member", tos_accepted_at=None):
        user = self._store.add_user(
            email=email, name=name, role=role, password=password, email_verified=False
        )
        user.tos_accepted_at = tos_accepted_at
        return user

    async def get_user_by_email(self, email: str):
        return next(
            (
                u
                for u in self._store.users.values()
                if u.email == email.lower() and u.deleted_at is None
            ),
            None,
        )

    async def get_user_by_id(self, user_id):
        user = self._store.users.get(user_id)
        if user is None or user.deleted_at is not None:
            return None
        return user

    async def set_email_verification(self, user, token_hash, expires_at):
        user.email_verification_token = token_hash
        user.email_verification_expires_at = expires_at

    async def get_user_by_verification_token(self, token_hash):
        return next(
            (
                u
                for u in self._store.users.values()
                if u.email_verification_token == token_hash
                and u.email_verification_expires_at > _now()
            ),
            None,
        )

    async def mark_email_verified(self, user):
        user.email_verified = True
        user.email_verification_token = None
        user.email_verification_expires_at = None

    async def set_password_reset(self, user, token_hash, expires_at):
        user.password_reset_token = token_hash
        user.password_reset_expires_at = expires_at

    async def get_user_by_reset_token(self, token_hash):
        return next(
            (
                u
                for u in self._store.users.values()
                if u.password_reset_token == token_hash and u.password_reset_expires_at > _now()
            ),
            None,
        )

    async def update_password(self, user, password):
        user.password_hash = hash_password(password)
        user.password_reset_token = None
        user.password_reset_expires_at = None

    async def anonymize_user(self, user):
        user.email = f"deleted-{user.id}@deleted.invalid"
        user.name = "Deleted user"
        user.password_hash = "scrubbed"
        user.deleted_at = _now()


class FakeWorkspacesRepo:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    async def get_membership(self, workspace_id, user_id):
        return self._store.membership(workspace_id, user_id)

    async def get_workspace(self, workspace_id):
        return self._store.workspaces.get(workspace_id)

    async def list_for_user(self, user_id):
        rows = []
        for member in self._store.members:
            if member.user_id == user_id:
                count = sum(1 for m in self._store.members if m.workspace_id == member.workspace_id)
                rows.append((self._store.workspaces[member.workspace_id], member.role, count))
        return rows

    async def create_workspace(self, name, owner_id):
        return self._store.add_workspace(self._store.users[owner_id], name=name)

    async def seed_starter_content(self, workspace_id, user_id):
        workspace = self._store.workspaces[workspace_id]
        for name in ("To Do", "In Progress", "Completed"):
            self._store.categories.append(_row(id=uuid.uuid4(), workspace_id=workspace_id, name=name))
        first, *_ = self._store.add_tasks(workspace, 4)
        self._store.add_tasks(workspace, 2, parent=first)

    async def rename_workspace(self, workspace, name):
        workspace.name = name
        return workspace

    async def delete_workspace(self, workspace):
        self._store.workspaces.pop(workspace.id, None)
        self._store.members = [m for m in self._store.members if m.workspace_id != workspace.id]

    async def list_members(self, workspace_id):
        return [
            (m, self._store.users[m.user_id])
            for m in self._store.members
            if m.workspace_id == workspace_id
        ]

    async def get_member(self, workspace_id, member_id):
        return next(
            (m for m in self._store.members if m.id == member_id and m.workspace_id == workspace_id),
            None,
        )

    async def add_member(self, workspace_id, user_id, role="member"):
        if self._store.membership(workspace_id, user_id) is not None:
            raise IntegrityError("INSERT", {}, Exception("unique_workspace_member"))
        return self._store.add_member(
            self._store.workspaces[workspace_id], self._store.users[user_id], role
        )

    async def update_member_role(self, member, role):
        member.role = role
        return member

    async def remove_member(self, member):
        self._store.members.remove(member)


class FakeInvitationsRepo:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def _with_relations(self, invitation):
        invitation.workspace = self._store.workspaces.get(invitation.workspace_id)
        invitation.inviter = self._store.users.get(invitation.invited_by)
        return invitation

    async def get_by_token(self, token, for_update=False):
        invitation = next((i for i in self._store.invitations if i.token == token), None)
        return self._with_relations(invitation) if invitation else None

    async def get_pending_for_email(self, workspace_id, email):
        return next(
            (
                i
                for i in self._store.invitations
                if i.workspace_id == workspace_id
                and i.email == email.lower()
                and i.accepted_at is None
                and i.expires_at > _now()
            ),
            None,
        )

    async def create(self, workspace_id, email, role, invited_by, token, expires_at):
        invitation = _row(
            id=uuid.uuid4(),
            workspace_id=workspace_id,
            email=email.lower(),
            role=role,
            invited_by=invited_by,
            token=token,
            expires_at=expires_at,
            accepted_at=None,
            created_at=_now(),
        )
        self._store.invitations.append(invitation)
        return invitation

    async def list_pending(self, workspace_id):
        return [
            self._with_relations(i)
            for i in self._store.invitations
            if i.workspace_id == workspace_id and i.accepted_at is None and i.expires_at > _now()
        ]

    async def mark_accepted(self, invitation):
        invitation.accepted_at = _now()

    async def delete(self, workspace_id, invitation_id):
        for invitation in self._store.invitations:
            if invitation.id == invitation_id and invitation.workspace_id == workspace_id:
                self._store.invitations.remove(invitation)
                return True
        return False


class FakeBillingRepo:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    async def get_active_plan_limits(self, workspace_id):
        subscription = self._store.subscriptions.get(workspace_id)
        if subscription is None or subscription.status not in ACTIVE_SUBSCRIPTION_STATUSES:
            return None
        return PLANS[subscription.plan_id]

    async def get_subscription(self, workspace_id):
        subscription = self._store.subscriptions.get(workspace_id)
        if subscription is None:
            return None
        return subscription.status, subscription.plan_id, PLAN_NAMES[subscription.plan_id]

    async def create_subscription(self, workspace_id, plan_id="free"):
        return self._store.set_subscription(
            self._store.workspaces[workspace_id], plan_id=plan_id, status="active"
        )

    async def count_top_level_tasks(self, workspace_id):
        return self._store.top_level_tasks(workspace_id)

    async def count_members(self, workspace_id):
        return sum(1 for m in self._store.members if m.workspace_id == workspace_id)

    async def count_pending_invitations(self, workspace_id):
        return sum(
            1
            for i in self._store.invitations
            if i.workspace_id == workspace_id and i.accepted_at is None and i.expires_at > _now()
        )

    async def count_owned_workspaces(self, user_id):
        return sum(1 for w in self._store.workspaces.values() if w.owner_id == user_id)

    async def owner_has_pro_subscription(self, user_id):
        return any(
            s.plan_id == "pro"
            and s.status in ACTIVE_SUBSCRIPTION_STATUSES
            and self._store.workspaces[s.workspace_id].owner_id == user_id
            for s in self._store.subscriptions.values()
        )


class Failing:
    """Proxy whose named async methods raise, as if the datastore dropped out."""

    def __init__(self, repo: Any, *names: str) -> None:
        self._repo = repo
        self._names = set(names)

    def __getattr__(self, name):
        if name in self._names:

            async def _fail(*args, **kwargs):
                raise ConnectionError("database unavailable")

            return _fail
        return getattr(self._repo, name)


class Recording:
    """Proxy that appends ``(label, method, args, kwargs)`` to ``calls`` for every awaited call."""

    def __init__(self, repo: Any, label: str, calls: list) -> None:
        self._repo = repo
        self._label = label
        self._calls = calls

    def __getattr__(self, name):
        attr = getattr(self._repo, name)
        if not callable(attr):
            return attr

        async def _record(*args, **kwargs):
            self._calls.append((self._label, name, args, kwargs))
            return await attr(*args, **kwargs)

        return _record


def calls_touching(calls: list, value: Any) -> list[tuple[str, str]]:
    """(label, method) of each recorded call that was passed ``value``."""
    return [
        (label, name)
        for label, name, args, kwargs in calls
        if value in args or value in kwargs.values()
    ]


class FakeTasksRepo:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    async def get_task(self, workspace_id, task_id):
        return next(
            (t for t in self._store.tasks if t.id == task_id and t.workspace_id == workspace_id),
            None,
        )

    async def create_within_limit(
        self,
        workspace_id,
        title,
        created_by,
        limit=None,
        parent_task_id=None,
        category_id=None,
        description=None,
    ):
        if limit is not None and parent_task_id is None:
            current = self._store.top_level_tasks(workspace_id)
            if current >= limit:
                raise TaskLimitReached(limit, current)
        task = _row(
            id=uuid.uuid4(),
            workspace_id=workspace_id,
            title=title,
            description=description,
            parent_task_id=parent_task_id,
            category_id=category_id,
            created_by=created_by,
            created_at=_now(),
        )
        self._store.tasks.append(task)
        return task


class FakeNotifier:
    """Records queued emails; ``fail=True`` simulates a broken queue."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[tuple[str, tuple]] = []

    async def _record(self, template: str, *args) -> bool:
        if self.fail:
            return False
        self.sent.append((template, args))
        return True

    async def queue_verification_email(self, email, name, token):
        return await self._record("email_verification", email, name, token)

    async def queue_password_reset_email(self, email, name, token):
        return await self._record("password_reset", email, name, token)

    async def queue_welcome_email(self, email, name):
        return await self._record("welcome", email, name)

    async def queue_workspace_invite(self, email, inviter_name, workspace_name, role, token):
        return await self._record("workspace_invite", email, inviter_name, workspace_name, role, token)

    def tokens(self, template: str) -> list[str]:
        return [args[-1] for name, args in self.sent if name == template]


def make_test_app(
    store: InMemoryStore | None = None,
    notifier: FakeNotifier | None = None,
) -> FastAPI:
    """Build an app with the real routers and every DB dependency replaced by fakes."""
    store = store or InMemoryStore()
    notifier = notifier or FakeNotifier()

    app = FastAPI(title="test")
    register_error_handlers(app)
    app.include_router(health_router, tags=["health"])
    app.include_router(auth_router, prefix="/api/v1", tags=["auth"])
    app.include_router(workspaces_router, prefix="/api/v1", tags=["workspaces"])
    app.include_router(tasks_router, prefix="/api/v1", tags=["tasks"])

    fake_session = AsyncMock()
    fake_session.execute = AsyncMock()

    auth_repo = FakeAuthRepo(store)
    workspaces_repo = FakeWorkspacesRepo(store)
    invitations_repo = FakeInvitationsRepo(store)
    billing = FakeBillingRepo(store)
    tasks_repo = FakeTasksRepo(store)

    app.dependency_overrides[get_session] = lambda: fake_session
    app.dependency_overrides[get_auth_repo] = lambda: auth_repo
    app.dependency_overrides[get_workspaces_repo] = lambda: workspaces_repo
    app.dependency_overrides[get_invitations_repo] = lambda: invitations_repo
    app.dependency_overrides[get_billing_repo] = lambda: billing
    app.dependency_overrides[get_tasks_repo] = lambda: tasks_repo
    app.dependency_overrides[get_notifier] = lambda: notifier
    return app


def auth_headers(user: Any) -> dict[str, str]:
    token = create_access_token(user_id=user.id, email=user.email, role=user.role)
    return {"Authorization": f"Bearer {token}"}
