"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from catalog_sync_service import __version__
from catalog_sync_service.api.v1.router import api_router
from catalog_sync_service.config import get_settings
from catalog_sync_service.infrastructure.database.connection import dispose_engine
from catalog_sync_service.infrastructure.redis import close_redis
from catalog_sync_service.log_config import configure_logging
from catalog_sync_service.services.supervisor import SyncSupervisor

configure_logging()

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown events."""
    settings = get_settings()
    logger.info(
        "Starting Catalog Sync Service",
        app_env=settings.app_env,
        debug=settings.debug,
        job_registry_backend=settings.job_registry_backend,
    )

    yield

    await app.state.supervisor.shutdown()
    await close_redis()
    await dispose_engine()
    logger.info("Shutting down Catalog Sync Service")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Catalog Sync API",
        description="Multi-tenant catalog import and vector indexing pipeline",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.supervisor = SyncSupervisor()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix="/api/v1")

    return app


app = create_app()


def run() -> None:
    """Run the application using uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "catalog_sync_service.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
