"""Async SQLAlchemy engine and session factory."""

from __future__ import annotations

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from arena_pm_service.db.migrations import run_migrations
from arena_pm_service.settings import settings

logger = structlog.get_logger()

_engine = None
_session_factory = None


async def init_db() -> None:
    global _engine, _session_factory
    _engine = create_async_engine(
        settings.database_url, echo=False, pool_size=settings.db_pool_size, pool_pre_ping=True
    )
    _session_factory = async_sessionmaker(_engine, class_=AsyncSession, expire_on_commit=False)
    async with _engine.begin() as conn:
        await run_migrations(conn)
    logger.info("db_initialized", pool_size=settings.db_pool_size)


async def close_db() -> None:
    global _engine
    if _engine:
        await _engine.dispose()


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    if _session_factory is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _session_factory
