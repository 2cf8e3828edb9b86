"""FastAPI application factory."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from arena_pm_service.db.engine import close_db, init_db
from arena_pm_service.errors import register_error_handlers
from arena_pm_service.rest.routes.auth import router as auth_router
from arena_pm_service.rest.routes.health import router as health_router
from arena_pm_service.rest.routes.tasks import router as tasks_router
from arena_pm_service.rest.routes.workspaces import router as workspaces_router
from arena_pm_service.settings import settings


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    await init_db()
    yield
    await close_db()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Arena PM API",
        description="Authorization and quota layer for Arena PM workspaces",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Auth rides on cookies, so the client origin must be explicit.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.client_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)

    # Public routes
    app.include_router(health_router, tags=["health"])

    # Auth routes (register/login/refresh are public; the rest check the session inside the router)
    app.include_router(auth_router, prefix="/api/v1", tags=["auth"])

    # Workspace-scoped routes, gated per endpoint
    app.include_router(workspaces_router, prefix="/api/v1", tags=["workspaces"])
    app.include_router(tasks_router, prefix="/api/v1", tags=["tasks"])

    return app
