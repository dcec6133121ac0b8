"""FastAPI dependencies."""

from collections.abc import AsyncIterator, Callable
from contextlib import AbstractAsyncContextManager

from fastapi import Request

from catalog_sync_service.services.catalog_sync import CatalogSyncService
from catalog_sync_service.services.factory import sync_service_scope
from catalog_sync_service.services.supervisor import SyncSupervisor

ServiceScope = Callable[[], AbstractAsyncContextManager[CatalogSyncService]]


async def get_sync_service() -> AsyncIterator[CatalogSyncService]:
    """Sync service bound to the request's database session."""
    async with sync_service_scope() as service:
        yield service


def get_service_scope() -> ServiceScope:
    """Factory for services that outlive the request, used by background jobs."""
    return sync_service_scope


def get_supervisor(request: Request) -> SyncSupervisor:
    return request.app.state.supervisor
