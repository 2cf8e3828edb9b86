"""Schema creation and plan seed rows."""

from __future__ import annotations

import structlog
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncConnection

from arena_pm_service.db.models import Base, PlanModel

log = structlog.get_logger(__name__)

PLAN_SEED = [
    {
        "id": "free",
        "name": "Free",
        "price_per_seat_cents": 0,
        "max_members": 3,
        "max_tasks_per_workspace": 50,
        "features": {"email_reminders": False},
        "active": True,
    },
    {
        "id": "pro",
        "name": "Pro",
        "price_per_seat_cents": 300,
        "max_members": 50,
        "max_tasks_per_workspace": None,
        "features": {"email_reminders": True, "priority_support": False},
        "active": True,
    },
]


def plan_upsert():
    """INSERT .. ON CONFLICT (id) DO UPDATE for the built-in plans.

    Re-running migrations brings existing plan rows back in line with PLAN_SEED.
    """
    stmt = insert(PlanModel).values(PLAN_SEED)
    columns = [key for key in PLAN_SEED[0] if key != "id"]
    return stmt.on_conflict_do_update(
        index_elements=["id"],
        set_={column: stmt.excluded[column] for column in columns},
    )


async def run_migrations(conn: AsyncConnection) -> None:
    """Create missing tables and upsert the built-in plans."""
    await conn.run_sync(Base.metadata.create_all)
    await conn.execute(plan_upsert())
    log.info("migrations_applied", tables=len(Base.metadata.tables), plans=len(PLAN_SEED))
