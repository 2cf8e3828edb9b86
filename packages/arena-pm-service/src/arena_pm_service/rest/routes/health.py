"""Health check endpoints."""

from fastapi import APIRouter
from sqlalchemy import text

from arena_pm_service.db.deps import SessionDep
from arena_pm_service.errors import AppError

router = APIRouter()


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/health/ready")
async def ready(session: SessionDep) -> dict[str, str]:
    """Ready once the database answers."""
    try:
        await session.execute(text("SELECT 1"))
    except Exception as exc:
        raise AppError("Database unavailable", 503, internal_message=str(exc)) from exc
    return {"status": "ready"}
