"""Catalog synchronization tasks."""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import asdict
from typing import Any, TypeVar

import structlog
from celery import shared_task

from catalog_sync_service.infrastructure.database.connection import (
    dispose_engine,
    get_db_session,
)
from catalog_sync_service.infrastructure.redis import close_redis
from catalog_sync_service.services.errors import (
    AlreadyRunningError,
    CatalogSyncError,
    NotConfiguredError,
    SourceFetchError,
)
from catalog_sync_service.services.factory import sync_service_scope
from catalog_sync_service.services.progress import log_progress
from catalog_sync_service.services.tenant_config import TenantConfigStore

logger = structlog.get_logger()

T = TypeVar("T")


def run_async(job: Callable[[], Awaitable[T]]) -> T:
    """Run ``job`` in a fresh event loop, then drop loop-bound connections."""

    async def runner() -> T:
        try:
            return await job()
        finally:
            await dispose_engine()
            await close_redis()

    return asyncio.run(runner())


@shared_task(bind=True, max_retries=3, default_retry_delay=300)
def sync_tenant_catalog(
    self, tenant_id: str, auto_index: bool = True, batch_size: int | None = None
) -> dict[str, Any]:
    """
    Import a tenant's catalog and index the items that changed.

    Source outages are retried; a tenant without credentials or with a
    sync already running is skipped.

    Returns:
        dict: Sync result, or the reason the tenant was skipped
    """
    logger.info("Starting catalog sync task", tenant_id=tenant_id, auto_index=auto_index)

    async def job() -> dict[str, Any]:
        async with sync_service_scope() as service:
            result = await service.start_sync(
                tenant_id, auto_index=auto_index, batch_size=batch_size, on_progress=log_progress
            )
            return asdict(result)

    try:
        return run_async(job)
    except (AlreadyRunningError, NotConfiguredError) as e:
        logger.warning("Skipping catalog sync", tenant_id=tenant_id, reason=str(e))
        return {"tenant_id": tenant_id, "skipped": True, "reason": str(e)}
    except SourceFetchError as e:
        logger.warning("Commerce source failed, retrying", tenant_id=tenant_id, error=str(e))
        raise self.retry(exc=e)


@shared_task
def sync_all_tenants() -> dict[str, Any]:
    """Queue a catalog sync for every tenant with commerce credentials."""

    async def job() -> list[str]:
        async with get_db_session() as session:
            return await TenantConfigStore(session).list_commerce_tenants()

    tenant_ids = run_async(job)
    for tenant_id in tenant_ids:
        sync_tenant_catalog.delay(tenant_id)

    logger.info("Queued catalog syncs", tenants=len(tenant_ids))
    return {"tenants_queued": len(tenant_ids)}


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def reindex_tenant_catalog(
    self,
    tenant_id: str,
    item_ids: list[int] | None = None,
    batch_size: int | None = None,
) -> dict[str, Any]:
    """
    Re-embed and re-upsert a tenant's eligible items.

    Job-level pipeline errors, such as an unreachable job registry, are
    retried; item failures are recorded per item and never retried here.

    Args:
        tenant_id: Tenant to re-index
        item_ids: Internal ids to restrict the run to (all eligible items if omitted)
        batch_size: Items per progress step

    Returns:
        dict: Index summary, or the reason the tenant was skipped
    """
    logger.info("Starting re-index task", tenant_id=tenant_id, item_ids=item_ids)

    async def job() -> dict[str, Any]:
        async with sync_service_scope() as service:
            summary = await service.manual_reindex(
                tenant_id, item_ids=item_ids, batch_size=batch_size, on_progress=log_progress
            )
            return asdict(summary)

    try:
        return run_async(job)
    except (AlreadyRunningError, NotConfiguredError) as e:
        logger.warning("Skipping re-index", tenant_id=tenant_id, reason=str(e))
        return {"tenant_id": tenant_id, "skipped": True, "reason": str(e)}
    except CatalogSyncError as e:
        logger.warning("Re-index failed, retrying", tenant_id=tenant_id, error=str(e))
        raise self.retry(exc=e)


@shared_task
def retry_failed_items(tenant_id: str, phase: str = "all") -> dict[str, int]:
    """Reset a tenant's failed items to pending for the next run."""

    async def job() -> dict[str, int]:
        async with sync_service_scope() as service:
            return await service.retry_failed(tenant_id, phase)

    return run_async(job)
