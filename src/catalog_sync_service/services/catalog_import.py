"""Catalog import: commerce source to catalog store."""

from dataclasses import dataclass
from typing import Protocol

import structlog

from catalog_sync_service.config import get_settings
from catalog_sync_service.infrastructure.commerce.schemas import SourceItem, SourcePage
from catalog_sync_service.services.catalog_store import CatalogItemRecord, CatalogStore
from catalog_sync_service.services.change_detection import content_hash_for
from catalog_sync_service.services.errors import ImportUpsertError
from catalog_sync_service.services.progress import (
    IMPORT_WINDOW,
    JobStatus,
    ProgressCallback,
    ProgressWindow,
    emit_progress,
)

logger = structlog.get_logger()

MAX_PAGE_SIZE = 250

# Fractions of the import window owned by the download and processing steps.
DOWNLOAD_FRACTION = 1 / 7
PROCESSING_FRACTION = 1.0


class CatalogSource(Protocol):
    """A paginated commerce source."""

    async def count_items(self) -> int: ...

    async def list_items(self, page_size: int, cursor: str | None = None) -> SourcePage: ...


@dataclass(frozen=True)
class ImportSummary:
    total: int
    imported: int
    failed: int


def source_item_fields(item: SourceItem) -> dict:
    """Columns written by an import, including the fresh content hash."""
    fields = item.model_dump(exclude={"external_item_id"})
    fields["content_hash"] = content_hash_for(item)
    return fields


class CatalogImporter:
    """Pulls every item from a source and upserts it into the store."""

    def __init__(
        self,
        store: CatalogStore,
        page_size: int | None = None,
        fail_fast: bool | None = None,
    ):
        settings = get_settings()
        self.store = store
        self.page_size = min(page_size or settings.commerce_page_size, MAX_PAGE_SIZE)
        self.fail_fast = settings.import_fail_fast if fail_fast is None else fail_fast

    async def upsert_record(self, tenant_id: str, item: SourceItem) -> CatalogItemRecord:
        """Create or update the item's record, marking it ``synced``."""
        return await self.store.upsert_imported(
            tenant_id, item.external_item_id, source_item_fields(item)
        )

    async def import_catalog(
        self,
        tenant_id: str,
        source: CatalogSource,
        on_progress: ProgressCallback | None = None,
        window: ProgressWindow = IMPORT_WINDOW,
    ) -> ImportSummary:
        """Import the tenant's whole catalog.

        Source errors abort the import. A failing item is recorded as an
        import failure and skipped, unless ``fail_fast`` is set, in which
        case ``ImportUpsertError`` stops the import.
        """
        await emit_progress(
            on_progress,
            JobStatus.DOWNLOADING,
            "Downloading products from the commerce source",
            window.at(DOWNLOAD_FRACTION),
        )

        total = await source.count_items()
        logger.info("Starting catalog import", tenant_id=tenant_id, total_items=total)

        processed = imported = failed = 0
        cursor: str | None = None
        while True:
            page = await source.list_items(self.page_size, cursor)

            for item in page.items:
                processed += 1
                try:
                    await self.upsert_record(tenant_id, item)
                    imported += 1
                except Exception as e:
                    if self.fail_fast:
                        raise ImportUpsertError(item.external_item_id, str(e)) from e
                    failed += 1
                    logger.error(
                        "Error importing item",
                        tenant_id=tenant_id,
                        external_item_id=item.external_item_id,
                        error=str(e),
                    )
                    await self.store.mark_import_failed(
                        tenant_id, item.external_item_id, str(e)
                    )

            fraction = processed / total if total else 1.0
            await emit_progress(
                on_progress,
                JobStatus.PROCESSING,
                f"Processed {processed} of {total} products",
                window.at(DOWNLOAD_FRACTION + (1 - DOWNLOAD_FRACTION) * min(fraction, 1.0)),
            )

            cursor = page.next_cursor
            if not cursor or not page.items:
                break

        await emit_progress(
            on_progress,
            JobStatus.PROCESSING,
            f"Imported {imported} products",
            window.at(PROCESSING_FRACTION),
        )

        summary = ImportSummary(total=processed, imported=imported, failed=failed)
        logger.info(
            "Catalog import completed",
            tenant_id=tenant_id,
            total=summary.total,
            imported=summary.imported,
            failed=summary.failed,
        )
        return summary
