"""Catalog sync orchestration.

Runs the import phase and then, when the tenant has a vector index
configured, the indexing phase, while keeping the tenant's job slot in the
registry up to date.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

import structlog

from catalog_sync_service.config import Settings, get_settings
from catalog_sync_service.infrastructure.commerce.shopify import ShopifyClient
from catalog_sync_service.infrastructure.database.models import ImportStatus, IndexStatus
from catalog_sync_service.infrastructure.vector.pinecone_index import (
    PineconeVectorIndex,
    VectorIndex,
)
from catalog_sync_service.services.catalog_import import CatalogImporter, CatalogSource
from catalog_sync_service.services.catalog_store import (
    CatalogItemRecord,
    CatalogStore,
    SyncPhase,
)
from catalog_sync_service.services.embedder import Embedder
from catalog_sync_service.services.errors import AlreadyRunningError
from catalog_sync_service.services.job_registry import JobKind, SyncJobRegistry, SyncJobState
from catalog_sync_service.services.progress import (
    FULL_WINDOW,
    IMPORT_WINDOW,
    INDEX_WINDOW,
    JobStatus,
    ProgressCallback,
    ProgressEvent,
    emit_progress,
)
from catalog_sync_service.services.tenant_config import TenantConfig, TenantConfigStore
from catalog_sync_service.services.vector_indexer import IndexSummary, VectorIndexer

logger = structlog.get_logger()

SourceFactory = Callable[[TenantConfig], CatalogSource]
VectorIndexFactory = Callable[[TenantConfig], VectorIndex]

IN_FLIGHT_INDEX_STATUSES = (IndexStatus.PENDING, IndexStatus.VECTORIZING, IndexStatus.UPSERTING)


def shopify_source(config: TenantConfig) -> CatalogSource:
    return ShopifyClient(config.commerce_domain, config.commerce_access_token)


def pinecone_index(config: TenantConfig) -> VectorIndex:
    return PineconeVectorIndex(
        api_key=config.vector_api_key,
        index_name=config.vector_index_name,
        host=config.vector_host,
        environment=config.vector_environment,
    )


@dataclass(frozen=True)
class SyncResult:
    tenant_id: str
    imported: int
    indexed: int


@dataclass(frozen=True)
class CatalogStats:
    total: int = 0
    import_synced: int = 0
    indexed: int = 0
    failed: int = 0
    pending: int = 0


@dataclass(frozen=True)
class CatalogDashboard:
    items: list[CatalogItemRecord] = field(default_factory=list)
    stats: CatalogStats = field(default_factory=CatalogStats)


class CatalogSyncService:
    """Entry points for syncing, re-indexing and inspecting a tenant's catalog."""

    def __init__(
        self,
        store: CatalogStore,
        tenant_configs: TenantConfigStore,
        registry: SyncJobRegistry,
        embedder: Embedder,
        source_factory: SourceFactory = shopify_source,
        vector_index_factory: VectorIndexFactory = pinecone_index,
        settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        self.store = store
        self.tenant_configs = tenant_configs
        self.registry = registry
        self.embedder = embedder
        self.source_factory = source_factory
        self.vector_index_factory = vector_index_factory

    # -------------------------------------------------------------------------
    # Full sync
    # -------------------------------------------------------------------------

    async def start_sync(
        self,
        tenant_id: str,
        *,
        auto_index: bool = True,
        batch_size: int | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> SyncResult:
        """Claim the tenant's sync slot and run the sync to completion."""
        job = await self.claim_sync(tenant_id)
        return await self.run_sync(
            job, auto_index=auto_index, batch_size=batch_size, on_progress=on_progress
        )

    async def claim_sync(self, tenant_id: str) -> SyncJobState:
        """Validate commerce credentials and take the sync slot.

        Raises ``NotConfiguredError`` or ``AlreadyRunningError``.
        """
        config = await self.tenant_configs.load(tenant_id)
        config.require_commerce()
        return await self._claim(tenant_id, JobKind.SYNC)

    async def run_sync(
        self,
        job: SyncJobState,
        *,
        auto_index: bool = True,
        batch_size: int | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> SyncResult:
        tenant_id = job.tenant_id
        report = self._reporter(job, on_progress)
        logger.info("Starting catalog sync", tenant_id=tenant_id, job_id=job.job_id)

        try:
            config = await self.tenant_configs.load(tenant_id)
            config.require_commerce()

            importer = CatalogImporter(self.store)
            source = self.source_factory(config)
            try:
                import_summary = await importer.import_catalog(
                    tenant_id, source, on_progress=report, window=IMPORT_WINDOW
                )
            finally:
                await _close(source)

            indexed = 0
            if auto_index and config.has_vector_index:
                index_summary = await self._indexer(config).index_pending(
                    tenant_id,
                    config.vector_namespace,
                    batch_size=batch_size or self.settings.sync_batch_size,
                    on_progress=report,
                    window=INDEX_WINDOW,
                )
                indexed = index_summary.indexed
            else:
                if auto_index:
                    logger.info("Vector index not configured, skipping indexing", tenant_id=tenant_id)
                await report(
                    ProgressEvent(
                        stage=JobStatus.COMPLETE, message="Catalog sync complete", progress=100
                    )
                )
        except Exception as e:
            logger.error("Catalog sync failed", tenant_id=tenant_id, error=str(e))
            await self.registry.fail(job, str(e))
            raise

        await self.registry.release(job)
        result = SyncResult(
            tenant_id=tenant_id, imported=import_summary.imported, indexed=indexed
        )
        logger.info(
            "Catalog sync completed",
            tenant_id=tenant_id,
            imported=result.imported,
            indexed=result.indexed,
        )
        return result

    # -------------------------------------------------------------------------
    # Manual re-index
    # -------------------------------------------------------------------------

    async def manual_reindex(
        self,
        tenant_id: str,
        item_ids: Sequence[int] | None = None,
        batch_size: int | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> IndexSummary:
        """Re-index the selected (or all eligible) items under the reindex slot."""
        job = await self.claim_reindex(tenant_id)
        return await self.run_reindex(
            job, item_ids=item_ids, batch_size=batch_size, on_progress=on_progress
        )

    async def claim_reindex(self, tenant_id: str) -> SyncJobState:
        config = await self.tenant_configs.load(tenant_id)
        config.require_vector_index()
        return await self._claim(tenant_id, JobKind.REINDEX)

    async def run_reindex(
        self,
        job: SyncJobState,
        *,
        item_ids: Sequence[int] | None = None,
        batch_size: int | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> IndexSummary:
        tenant_id = job.tenant_id
        report = self._reporter(job, on_progress)

        try:
            config = await self.tenant_configs.load(tenant_id)
            config.require_vector_index()

            reset = await self.store.reset_index_status(tenant_id, item_ids)
            candidates = await self.store.list_reindex_eligible(tenant_id, item_ids)
            logger.info(
                "Starting manual re-index",
                tenant_id=tenant_id,
                reset=reset,
                candidates=len(candidates),
            )
            summary = await self._indexer(config).index_pending(
                tenant_id,
                config.vector_namespace,
                batch_size=batch_size or self.settings.index_batch_size,
                candidates=candidates,
                on_progress=report,
                window=FULL_WINDOW,
            )
        except Exception as e:
            logger.error("Manual re-index failed", tenant_id=tenant_id, error=str(e))
            await self.registry.fail(job, str(e))
            raise

        await self.registry.release(job)
        return summary

    # -------------------------------------------------------------------------
    # Status, stop, retry, dashboard
    # -------------------------------------------------------------------------

    async def get_sync_status(
        self, tenant_id: str, kind: JobKind = JobKind.SYNC
    ) -> SyncJobState:
        return await self.registry.status(tenant_id, kind)

    async def stop_sync(self, tenant_id: str, kind: JobKind = JobKind.SYNC) -> bool:
        """Drop the job entry. Work already in flight is not interrupted."""
        removed = await self.registry.remove(tenant_id, kind)
        logger.info("Sync job entry removed", tenant_id=tenant_id, kind=kind.value, removed=removed)
        return removed

    async def retry_failed(self, tenant_id: str, phase: SyncPhase | str) -> dict[str, int]:
        """Reset failed items to pending; the next run picks them up."""
        return await self.store.reset_failed(tenant_id, SyncPhase(phase))

    async def get_dashboard(self, tenant_id: str) -> CatalogDashboard:
        items = await self.store.list_active(tenant_id)
        stats = CatalogStats(
            total=len(items),
            import_synced=sum(1 for i in items if i.import_status == ImportStatus.SYNCED),
            indexed=sum(1 for i in items if i.index_status == IndexStatus.INDEXED),
            failed=sum(
                1
                for i in items
                if i.import_status == ImportStatus.FAILED or i.index_status == IndexStatus.FAILED
            ),
            pending=sum(1 for i in items if i.index_status in IN_FLIGHT_INDEX_STATUSES),
        )
        return CatalogDashboard(items=items, stats=stats)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _claim(self, tenant_id: str, kind: JobKind) -> SyncJobState:
        job = await self.registry.claim(tenant_id, kind)
        if job is None:
            raise AlreadyRunningError(tenant_id, kind.value)
        logger.info("Job claimed", tenant_id=tenant_id, kind=kind.value, job_id=job.job_id)
        return job

    def _indexer(self, config: TenantConfig) -> VectorIndexer:
        return VectorIndexer(self.store, self.embedder, self.vector_index_factory(config))

    def _reporter(
        self, job: SyncJobState, on_progress: ProgressCallback | None
    ) -> Callable[[ProgressEvent], object]:
        async def report(event: ProgressEvent) -> None:
            await self.registry.update(job, event)
            await emit_progress(on_progress, event.stage, event.message, event.progress)

        return report


async def _close(source: object) -> None:
    aclose = getattr(source, "aclose", None)
    if aclose is not None:
        await aclose()
