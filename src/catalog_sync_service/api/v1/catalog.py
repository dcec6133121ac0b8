"""Catalog sync API endpoints."""

from datetime import datetime
from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field

from catalog_sync_service.api.deps import (
    ServiceScope,
    get_service_scope,
    get_supervisor,
    get_sync_service,
)
from catalog_sync_service.infrastructure.database.models import (
    ImportStatus,
    IndexStatus,
    ItemStatus,
)
from catalog_sync_service.services.catalog_store import SyncPhase
from catalog_sync_service.services.catalog_sync import CatalogSyncService
from catalog_sync_service.services.errors import AlreadyRunningError, NotConfiguredError
from catalog_sync_service.services.job_registry import JobKind, SyncJobState
from catalog_sync_service.services.progress import JobStatus, log_progress
from catalog_sync_service.services.supervisor import SyncSupervisor

logger = structlog.get_logger()

router = APIRouter()


class CatalogItemResponse(BaseModel):
    """A catalog item with its import and index state."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    external_item_id: str
    title: str
    handle: str | None = None
    url: str | None = None
    image_url: str | None = None
    price: str
    category: str | None = None
    tags: list[str] = Field(default_factory=list)
    item_status: ItemStatus
    inventory_quantity: int
    inventory_tracked: bool
    import_status: ImportStatus
    import_last_sync_at: datetime | None = None
    import_attempts: int
    index_status: IndexStatus
    vector_id: str | None = None
    index_last_sync_at: datetime | None = None
    index_attempts: int
    last_error: str | None = None


class CatalogStatsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total: int
    import_synced: int
    indexed: int
    failed: int
    pending: int


class JobOutcomeResponse(BaseModel):
    state: str
    finished_at: datetime | None = None
    error: str | None = None


class JobStatusResponse(BaseModel):
    """Current state of a tenant's job slot."""

    tenant_id: str
    kind: JobKind
    job_id: str | None = None
    status: JobStatus
    progress: float
    message: str
    error: str | None = None
    started_at: datetime | None = None
    updated_at: datetime | None = None
    last_run: JobOutcomeResponse | None = None

    @classmethod
    def from_state(
        cls, state: SyncJobState, supervisor: SyncSupervisor | None = None
    ) -> "JobStatusResponse":
        idle = not state.job_id
        outcome = supervisor.outcome((state.tenant_id, state.kind.value)) if supervisor else None
        return cls(
            tenant_id=state.tenant_id,
            kind=state.kind,
            job_id=None if idle else state.job_id,
            status=state.status,
            progress=state.progress,
            message=state.message,
            error=state.error,
            started_at=None if idle else state.started_at,
            updated_at=None if idle else state.updated_at,
            last_run=(
                JobOutcomeResponse(
                    state=outcome.state, finished_at=outcome.finished_at, error=outcome.error
                )
                if outcome
                else None
            ),
        )


class DashboardResponse(BaseModel):
    items: list[CatalogItemResponse]
    stats: CatalogStatsResponse
    job: JobStatusResponse


class JobAcceptedResponse(BaseModel):
    tenant_id: str
    kind: JobKind
    job_id: str
    message: str


class ReindexRequest(BaseModel):
    item_ids: list[int] | None = Field(
        default=None, description="Internal item ids; all eligible items when omitted"
    )
    batch_size: int | None = Field(default=None, ge=1, le=100)


class RetryRequest(BaseModel):
    phase: SyncPhase = SyncPhase.ALL


class RetryResponse(BaseModel):
    tenant_id: str
    phase: SyncPhase
    reset: dict[str, int]


class StopResponse(BaseModel):
    tenant_id: str
    kind: JobKind
    stopped: bool


@router.get("/{tenant_id}", response_model=DashboardResponse)
async def get_catalog_dashboard(
    tenant_id: str,
    service: CatalogSyncService = Depends(get_sync_service),
    supervisor: SyncSupervisor = Depends(get_supervisor),
) -> DashboardResponse:
    """
    Get the tenant's active catalog items with sync statistics.

    Items are ordered by last update, newest first. ``job`` reflects the
    tenant's sync slot.
    """
    dashboard = await service.get_dashboard(tenant_id)
    state = await service.get_sync_status(tenant_id)
    return DashboardResponse(
        items=[CatalogItemResponse.model_validate(item) for item in dashboard.items],
        stats=CatalogStatsResponse.model_validate(dashboard.stats),
        job=JobStatusResponse.from_state(state, supervisor),
    )


@router.post(
    "/{tenant_id}/sync",
    response_model=JobAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def start_catalog_sync(
    tenant_id: str,
    auto_index: Annotated[bool, Query(description="Index changed items after import")] = True,
    batch_size: Annotated[int | None, Query(ge=1, le=100)] = None,
    service: CatalogSyncService = Depends(get_sync_service),
    scope: ServiceScope = Depends(get_service_scope),
    supervisor: SyncSupervisor = Depends(get_supervisor),
) -> JobAcceptedResponse:
    """
    Start a catalog sync in the background.

    Returns 400 when the tenant has no commerce credentials and 409 when a
    sync is already running. Poll ``/status`` for progress.
    """
    try:
        job = await service.claim_sync(tenant_id)
    except NotConfiguredError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except AlreadyRunningError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    async def run() -> object:
        async with scope() as background_service:
            return await background_service.run_sync(
                job, auto_index=auto_index, batch_size=batch_size, on_progress=log_progress
            )

    supervisor.submit((tenant_id, JobKind.SYNC.value), run)
    logger.info("Catalog sync accepted", tenant_id=tenant_id, job_id=job.job_id)
    return JobAcceptedResponse(
        tenant_id=tenant_id, kind=JobKind.SYNC, job_id=job.job_id, message="Sync started"
    )


@router.post(
    "/{tenant_id}/reindex",
    response_model=JobAcceptedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def start_reindex(
    tenant_id: str,
    request: ReindexRequest | None = None,
    service: CatalogSyncService = Depends(get_sync_service),
    scope: ServiceScope = Depends(get_service_scope),
    supervisor: SyncSupervisor = Depends(get_supervisor),
) -> JobAcceptedResponse:
    """Re-index the selected items, or every eligible item, in the background."""
    request = request or ReindexRequest()
    try:
        job = await service.claim_reindex(tenant_id)
    except NotConfiguredError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except AlreadyRunningError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    async def run() -> object:
        async with scope() as background_service:
            return await background_service.run_reindex(
                job,
                item_ids=request.item_ids,
                batch_size=request.batch_size,
                on_progress=log_progress,
            )

    supervisor.submit((tenant_id, JobKind.REINDEX.value), run)
    return JobAcceptedResponse(
        tenant_id=tenant_id, kind=JobKind.REINDEX, job_id=job.job_id, message="Re-index started"
    )


@router.post("/{tenant_id}/sync/stop", response_model=StopResponse)
async def stop_catalog_sync(
    tenant_id: str,
    kind: Annotated[JobKind, Query()] = JobKind.SYNC,
    service: CatalogSyncService = Depends(get_sync_service),
) -> StopResponse:
    """
    Drop the tenant's job entry.

    Work already in flight keeps running until it finishes on its own.
    """
    stopped = await service.stop_sync(tenant_id, kind)
    return StopResponse(tenant_id=tenant_id, kind=kind, stopped=stopped)


@router.get("/{tenant_id}/status", response_model=JobStatusResponse)
async def get_sync_status(
    tenant_id: str,
    kind: Annotated[JobKind, Query()] = JobKind.SYNC,
    service: CatalogSyncService = Depends(get_sync_service),
    supervisor: SyncSupervisor = Depends(get_supervisor),
) -> JobStatusResponse:
    state = await service.get_sync_status(tenant_id, kind)
    return JobStatusResponse.from_state(state, supervisor)


@router.post("/{tenant_id}/retry", response_model=RetryResponse)
async def retry_failed_items(
    tenant_id: str,
    request: RetryRequest,
    service: CatalogSyncService = Depends(get_sync_service),
) -> RetryResponse:
    """Reset failed items to pending; the next sync or re-index picks them up."""
    reset = await service.retry_failed(tenant_id, request.phase)
    return RetryResponse(tenant_id=tenant_id, phase=request.phase, reset=reset)
