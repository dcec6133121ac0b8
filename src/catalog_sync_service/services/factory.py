"""Wiring of the catalog sync service and its collaborators."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from functools import lru_cache

from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync_service.config import get_settings
from catalog_sync_service.infrastructure.database.connection import get_db_session
from catalog_sync_service.infrastructure.redis import get_redis_client
from catalog_sync_service.infrastructure.vector.embeddings import get_embedding_provider
from catalog_sync_service.services.catalog_store import CatalogStore
from catalog_sync_service.services.catalog_sync import CatalogSyncService
from catalog_sync_service.services.embedder import Embedder
from catalog_sync_service.services.job_registry import (
    InMemoryJobRegistry,
    RedisJobRegistry,
    SyncJobRegistry,
)
from catalog_sync_service.services.tenant_config import TenantConfigStore


@lru_cache
def get_job_registry() -> SyncJobRegistry:
    """Get the process-wide job registry for the configured backend."""
    settings = get_settings()
    if settings.job_registry_backend == "redis":
        return RedisJobRegistry(get_redis_client)
    return InMemoryJobRegistry()


def build_embedder() -> Embedder:
    settings = get_settings()
    dimension = settings.embedding_dimension if settings.embedding_backend == "openai" else None
    return Embedder(get_embedding_provider(settings), dimension=dimension)


def build_sync_service(
    session: AsyncSession, registry: SyncJobRegistry | None = None
) -> CatalogSyncService:
    return CatalogSyncService(
        store=CatalogStore(session),
        tenant_configs=TenantConfigStore(session),
        registry=registry or get_job_registry(),
        embedder=build_embedder(),
    )


@asynccontextmanager
async def sync_service_scope() -> AsyncIterator[CatalogSyncService]:
    """A sync service bound to its own database session."""
    async with get_db_session() as session:
        yield build_sync_service(session)
