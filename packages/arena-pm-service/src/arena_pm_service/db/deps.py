"""FastAPI dependency injection for database sessions and repositories."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from arena_pm_service.db.engine import get_session_factory
from arena_pm_service.db.repositories.auth import AuthRepo
from arena_pm_service.db.repositories.billing import BillingRepo
from arena_pm_service.db.repositories.invitations import InvitationsRepo
from arena_pm_service.db.repositories.tasks import TasksRepo
from arena_pm_service.db.repositories.workspaces import WorkspacesRepo
from arena_pm_service.notifications import Notifier


async def get_session() -> AsyncIterator[AsyncSession]:
    """Yield an async DB session, auto-closing on exit."""
    factory = get_session_factory()
    async with factory() as session:
        yield session


SessionDep = Annotated[AsyncSession, Depends(get_session)]


def get_auth_repo(session: SessionDep) -> AuthRepo:
    return AuthRepo(session)


def get_workspaces_repo(session: SessionDep) -> WorkspacesRepo:
    return WorkspacesRepo(session)


def get_invitations_repo(session: SessionDep) -> InvitationsRepo:
    return InvitationsRepo(session)


def get_billing_repo(session: SessionDep) -> BillingRepo:
    return BillingRepo(session)


def get_tasks_repo(session: SessionDep) -> TasksRepo:
    return TasksRepo(session)


def get_notifier() -> Notifier:
    """Notifications write through their own session, outside the request transaction."""
    return Notifier(get_session_factory())


AuthRepoDep = Annotated[AuthRepo, Depends(get_auth_repo)]
WorkspacesRepoDep = Annotated[WorkspacesRepo, Depends(get_workspaces_repo)]
InvitationsRepoDep = Annotated[InvitationsRepo, Depends(get_invitations_repo)]
BillingRepoDep = Annotated[BillingRepo, Depends(get_billing_repo)]
TasksRepoDep = Annotated[TasksRepo, Depends(get_tasks_repo)]
NotifierDep = Annotated[Notifier, Depends(get_notifier)]
