"""Vector indexing: catalog store to vector index."""

from dataclasses import dataclass
from datetime import datetime, timezone

import structlog
from pydantic import BaseModel, Field

from catalog_sync_service.config import get_settings
from catalog_sync_service.infrastructure.database.models import IndexStatus
from catalog_sync_service.infrastructure.vector.pinecone_index import VectorIndex, VectorRecord
from catalog_sync_service.services.catalog_store import CatalogItemRecord, CatalogStore
from catalog_sync_service.services.change_detection import content_hash_for, needs_reindexing
from catalog_sync_service.services.embedder import Embedder
from catalog_sync_service.services.progress import (
    INDEX_WINDOW,
    JobStatus,
    ProgressCallback,
    ProgressWindow,
    emit_progress,
)

logger = structlog.get_logger()

NO_IMAGE_DESCRIPTION = "No image description available"


class VectorMetadata(BaseModel):
    """Metadata stored alongside each vector."""

    tenant_id: str
    external_item_id: str
    title: str
    handle: str | None = None
    price: str | None = None
    category: str | None = None
    tags: list[str] = Field(default_factory=list)
    url: str | None = None
    image_url: str | None = None
    image_description: str = NO_IMAGE_DESCRIPTION
    indexed_at: str

    @classmethod
    def for_record(
        cls, record: CatalogItemRecord, image_description: str | None
    ) -> "VectorMetadata":
        return cls(
            tenant_id=record.tenant_id,
            external_item_id=record.external_item_id,
            title=record.title,
            handle=record.handle,
            price=record.price,
            category=record.category,
            tags=list(record.tags),
            url=record.url,
            image_url=record.image_url,
            image_description=image_description or NO_IMAGE_DESCRIPTION,
            indexed_at=datetime.now(timezone.utc).isoformat(),
        )

    def to_payload(self) -> dict:
        return self.model_dump(exclude_none=True)


@dataclass(frozen=True)
class IndexSummary:
    candidates: int
    indexed: int
    skipped: int
    failed: int


class VectorIndexer:
    """Embeds catalog items and upserts them into a tenant's namespace.

    Items are processed one at a time; a failing item is recorded as
    ``failed`` and never stops the run.
    """

    def __init__(
        self,
        store: CatalogStore,
        embedder: Embedder,
        vector_index: VectorIndex,
        batch_size: int | None = None,
    ):
        self.store = store
        self.embedder = embedder
        self.vector_index = vector_index
        self.batch_size = batch_size or get_settings().index_batch_size

    async def index_pending(
        self,
        tenant_id: str,
        namespace: str,
        *,
        batch_size: int | None = None,
        candidates: list[CatalogItemRecord] | None = None,
        on_progress: ProgressCallback | None = None,
        window: ProgressWindow = INDEX_WINDOW,
    ) -> IndexSummary:
        if candidates is None:
            candidates = await self.store.list_index_candidates(tenant_id)
        total = len(candidates)

        if total == 0:
            logger.info("No items need indexing", tenant_id=tenant_id)
            await emit_progress(
                on_progress, JobStatus.COMPLETE, "No products need indexing", window.at(1.0)
            )
            return IndexSummary(candidates=0, indexed=0, skipped=0, failed=0)

        size = max(batch_size or self.batch_size, 1)
        logger.info(
            "Starting vector indexing",
            tenant_id=tenant_id,
            namespace=namespace,
            candidates=total,
            batch_size=size,
        )
        await emit_progress(
            on_progress,
            JobStatus.VECTORIZING,
            f"Vectorizing {total} products",
            window.at(0.0),
        )

        indexed = skipped = failed = done = 0
        for start in range(0, total, size):
            for candidate in candidates[start:start + size]:
                outcome = await self._index_item(namespace, candidate)
                if outcome == IndexStatus.INDEXED:
                    indexed += 1
                elif outcome == IndexStatus.FAILED:
                    failed += 1
                else:
                    skipped += 1
                done += 1

            await emit_progress(
                on_progress,
                JobStatus.UPSERTING,
                f"Indexed {done} of {total} products",
                window.at(done / total),
            )

        summary = IndexSummary(candidates=total, indexed=indexed, skipped=skipped, failed=failed)
        logger.info(
            "Vector indexing completed",
            tenant_id=tenant_id,
            indexed=indexed,
            skipped=skipped,
            failed=failed,
        )
        await emit_progress(
            on_progress,
            JobStatus.COMPLETE,
            f"Indexed {indexed} products ({failed} failed)",
            window.at(1.0),
        )
        return summary

    async def _index_item(
        self, namespace: str, candidate: CatalogItemRecord
    ) -> IndexStatus | None:
        """Index one item; returns the resulting status, or None when skipped."""
        try:
            record = await self.store.get(candidate.id)
            if record is None:
                return None
            if (
                record.index_status == IndexStatus.INDEXED
                and record.vector_id
                and not needs_reindexing(record)
            ):
                logger.debug(
                    "Item unchanged, skipping", external_item_id=record.external_item_id
                )
                return None

            await self.store.set_index_status(record.id, IndexStatus.VECTORIZING)
            result = await self.embedder.embed(record)

            await self.store.set_index_status(record.id, IndexStatus.UPSERTING)
            metadata = VectorMetadata.for_record(record, result.image_description)
            vector_id = record.external_item_id
            await self.vector_index.upsert(
                namespace,
                [VectorRecord(id=vector_id, values=result.vector, metadata=metadata.to_payload())],
            )

            await self.store.mark_indexed(record.id, vector_id, content_hash_for(record))
        except Exception as e:
            logger.error(
                "Error indexing item",
                tenant_id=candidate.tenant_id,
                external_item_id=candidate.external_item_id,
                error=str(e),
            )
            await self.store.mark_index_failed(candidate.id, str(e))
            return IndexStatus.FAILED

        return IndexStatus.INDEXED
