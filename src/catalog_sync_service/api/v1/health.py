"""Health check endpoints."""

from datetime import datetime, timezone
from typing import Any

import structlog
from fastapi import APIRouter
from pydantic import BaseModel
from sqlalchemy import text

from catalog_sync_service import __version__
from catalog_sync_service.config import get_settings
from catalog_sync_service.infrastructure.database.connection import get_db_session
from catalog_sync_service.infrastructure.redis import redis_health_check

logger = structlog.get_logger()

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str
    environment: str
    timestamp: str
    dependencies: dict[str, Any]


class ReadinessResponse(BaseModel):
    """Readiness check response model."""

    ready: bool
    checks: dict[str, bool]


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Basic health check endpoint.

    Returns the service status, version and the configured job registry
    backend. Used by load balancers to determine if the service is running.
    """
    settings = get_settings()

    return HealthResponse(
        status="healthy",
        version=__version__,
        environment=settings.app_env,
        timestamp=datetime.now(timezone.utc).isoformat(),
        dependencies={
            "postgres": "configured",
            "redis": "configured" if settings.job_registry_backend == "redis" else "optional",
            "embedding_backend": settings.embedding_backend,
        },
    )


async def check_database() -> bool:
    try:
        async with get_db_session() as session:
            await session.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning("Database readiness check failed", error=str(e))
        return False


@router.get("/health/ready", response_model=ReadinessResponse)
async def readiness_check() -> ReadinessResponse:
    """
    Readiness check endpoint.

    Verifies the database is reachable, and Redis too when it backs the job
    registry. Used by Kubernetes readiness probes.
    """
    settings = get_settings()
    checks: dict[str, bool] = {"postgres": await check_database()}
    if settings.job_registry_backend == "redis":
        checks["redis"] = await redis_health_check()

    return ReadinessResponse(ready=all(checks.values()), checks=checks)


@router.get("/health/live")
async def liveness_check() -> dict[str, str]:
    """Returns 200 while the process is running."""
    return {"status": "alive"}
