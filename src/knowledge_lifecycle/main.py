"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from knowledge_lifecycle import __version__
from knowledge_lifecycle.api.admin import router as admin_router
from knowledge_lifecycle.api.health import router as health_router
from knowledge_lifecycle.config import settings
from knowledge_lifecycle.service import KnowledgeLifecycleService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the default service unless one was injected, and run its jobs."""
    service: KnowledgeLifecycleService | None = getattr(app.state, "service", None)
    owned = service is None
    if owned:
        from knowledge_lifecycle.db.database import init_db

        await init_db()
        service = await KnowledgeLifecycleService.create_default()
        app.state.service = service
        await service.start()

    yield

    if owned:
        await service.stop()


def create_app(service: KnowledgeLifecycleService | None = None) -> FastAPI:
    """Create the application, optionally around an existing service."""
    app = FastAPI(
        title=settings.APP_NAME,
        description="Knowledge lifecycle engine: retention decisions, decay and store sync",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.service = service

    # CORS Configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(health_router)
    app.include_router(admin_router)

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint with basic application info."""
        return {
            "name": settings.APP_NAME,
            "version": __version__,
            "docs": "/docs",
        }

    return app


app = create_app()
