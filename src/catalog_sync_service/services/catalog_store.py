"""Persistence of catalog item records.

Every write commits immediately so that per-item status changes are visible
to status polls (and to other workers) while a job is still running.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum as PyEnum
from typing import Any

import structlog
from sqlalchemy import and_, case, literal, or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync_service.infrastructure.database.models import (
    CatalogItem,
    ImportStatus,
    IndexStatus,
    ItemStatus,
)

logger = structlog.get_logger()

INDEX_CANDIDATE_STATUSES = (
    IndexStatus.NOT_CONFIGURED,
    IndexStatus.FAILED,
    IndexStatus.PENDING,
)


class SyncPhase(str, PyEnum):
    """Which state machine a bulk operation targets."""

    IMPORT = "import"
    INDEX = "index"
    ALL = "all"


@dataclass(frozen=True)
class CatalogItemRecord:
    """Snapshot of a stored catalog item."""

    id: int
    tenant_id: str
    external_item_id: str
    title: str = ""
    handle: str | None = None
    url: str | None = None
    image_url: str | None = None
    price: str = "0"
    category: str | None = None
    tags: tuple[str, ...] = field(default_factory=tuple)
    description: str | None = None
    item_status: ItemStatus = ItemStatus.DRAFT
    inventory_quantity: int = 0
    inventory_tracked: bool = False
    import_status: ImportStatus = ImportStatus.PENDING
    import_last_sync_at: datetime | None = None
    import_attempts: int = 0
    index_status: IndexStatus = IndexStatus.NOT_CONFIGURED
    vector_id: str | None = None
    index_last_sync_at: datetime | None = None
    index_attempts: int = 0
    content_hash: str | None = None
    last_error: str | None = None

    @classmethod
    def from_row(cls, row: CatalogItem) -> "CatalogItemRecord":
        return cls(
            id=row.id,
            tenant_id=row.tenant_id,
            external_item_id=row.external_item_id,
            title=row.title,
            handle=row.handle,
            url=row.url,
            image_url=row.image_url,
            price=row.price,
            category=row.category,
            tags=tuple(row.tags or ()),
            description=row.description,
            item_status=row.item_status,
            inventory_quantity=row.inventory_quantity,
            inventory_tracked=row.inventory_tracked,
            import_status=row.import_status,
            import_last_sync_at=row.import_last_sync_at,
            import_attempts=row.import_attempts,
            index_status=row.index_status,
            vector_id=row.vector_id,
            index_last_sync_at=row.index_last_sync_at,
            index_attempts=row.index_attempts,
            content_hash=row.content_hash,
            last_error=row.last_error,
        )


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CatalogStore:
    """SQLAlchemy-backed store for ``CatalogItem`` rows."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get(self, item_id: int) -> CatalogItemRecord | None:
        """Fetch the current state of one item, bypassing the identity map."""
        query = (
            select(CatalogItem)
            .where(CatalogItem.id == item_id)
            .execution_options(populate_existing=True)
        )
        row = (await self.session.execute(query)).scalar_one_or_none()
        return CatalogItemRecord.from_row(row) if row else None

    async def get_by_external_id(
        self, tenant_id: str, external_item_id: str
    ) -> CatalogItemRecord | None:
        query = (
            select(CatalogItem)
            .where(
                CatalogItem.tenant_id == tenant_id,
                CatalogItem.external_item_id == external_item_id,
            )
            .execution_options(populate_existing=True)
        )
        row = (await self.session.execute(query)).scalar_one_or_none()
        return CatalogItemRecord.from_row(row) if row else None

    async def list_index_candidates(self, tenant_id: str) -> list[CatalogItemRecord]:
        """Items imported successfully whose vector is missing, failed or pending."""
        return await self._list(
            CatalogItem.tenant_id == tenant_id,
            CatalogItem.import_status == ImportStatus.SYNCED,
            CatalogItem.index_status.in_(INDEX_CANDIDATE_STATUSES),
        )

    async def list_reindex_eligible(
        self, tenant_id: str, item_ids: Sequence[int] | None = None
    ) -> list[CatalogItemRecord]:
        """Active, sellable items: untracked inventory or a positive quantity."""
        return await self._list(*self._eligible_filter(tenant_id, item_ids))

    async def list_active(self, tenant_id: str) -> list[CatalogItemRecord]:
        return await self._list(
            CatalogItem.tenant_id == tenant_id,
            CatalogItem.item_status == ItemStatus.ACTIVE,
            order_by=CatalogItem.updated_at.desc(),
        )

    async def _list(self, *criteria: Any, order_by: Any = None) -> list[CatalogItemRecord]:
        query = (
            select(CatalogItem)
            .where(*criteria)
            .order_by(order_by if order_by is not None else CatalogItem.id)
            .execution_options(populate_existing=True)
        )
        rows = (await self.session.execute(query)).scalars().all()
        return [CatalogItemRecord.from_row(row) for row in rows]

    @staticmethod
    def _eligible_filter(tenant_id: str, item_ids: Sequence[int] | None) -> list[Any]:
        criteria = [
            CatalogItem.tenant_id == tenant_id,
            CatalogItem.import_status == ImportStatus.SYNCED,
            CatalogItem.item_status == ItemStatus.ACTIVE,
            or_(
                CatalogItem.inventory_tracked.is_(False),
                CatalogItem.inventory_quantity > 0,
            ),
        ]
        if item_ids:
            criteria.append(CatalogItem.id.in_(list(item_ids)))
        return criteria

    # -------------------------------------------------------------------------
    # Import state machine
    # -------------------------------------------------------------------------

    async def upsert_imported(
        self, tenant_id: str, external_item_id: str, fields: dict[str, Any]
    ) -> CatalogItemRecord:
        """Create or update an item keyed by (tenant, external id) in one statement.

        ``fields`` carries the mapped descriptive, lifecycle and inventory
        columns plus ``content_hash``. An ``indexed`` item whose fingerprint
        changes drops back to ``pending`` so the indexer re-embeds it.
        """
        now = _utcnow()
        insert = self._insert_construct()
        stmt = insert(CatalogItem).values(
            tenant_id=tenant_id,
            external_item_id=external_item_id,
            import_status=ImportStatus.SYNCED,
            import_last_sync_at=now,
            import_attempts=1,
            **fields,
        )
        excluded = stmt.excluded
        content_changed = or_(
            CatalogItem.content_hash.is_(None),
            CatalogItem.content_hash != excluded.content_hash,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["tenant_id", "external_item_id"],
            set_={
                **{name: excluded[name] for name in fields},
                "import_status": excluded.import_status,
                "import_last_sync_at": excluded.import_last_sync_at,
                "import_attempts": CatalogItem.import_attempts + 1,
                "index_status": case(
                    (
                        and_(CatalogItem.index_status == IndexStatus.INDEXED, content_changed),
                        literal(IndexStatus.PENDING, CatalogItem.__table__.c.index_status.type),
                    ),
                    else_=CatalogItem.index_status,
                ),
                "updated_at": now,
            },
        )
        await self._execute_and_commit(stmt)

        record = await self.get_by_external_id(tenant_id, external_item_id)
        if record is None:  # pragma: no cover - the upsert just wrote it
            raise RuntimeError(f"Upserted item {external_item_id} not found")
        return record

    async def mark_import_failed(
        self, tenant_id: str, external_item_id: str, error: str
    ) -> None:
        """Record an import failure, creating a placeholder row if needed."""
        now = _utcnow()
        insert = self._insert_construct()
        stmt = insert(CatalogItem).values(
            tenant_id=tenant_id,
            external_item_id=external_item_id,
            import_status=ImportStatus.FAILED,
            import_attempts=1,
            last_error=error,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["tenant_id", "external_item_id"],
            set_={
                "import_status": ImportStatus.FAILED,
                "import_attempts": CatalogItem.import_attempts + 1,
                "last_error": error,
                "updated_at": now,
            },
        )
        await self._execute_and_commit(stmt)

    # -------------------------------------------------------------------------
    # Index state machine
    # -------------------------------------------------------------------------

    async def set_index_status(self, item_id: int, status: IndexStatus) -> None:
        await self._update(item_id, index_status=status)

    async def mark_indexed(self, item_id: int, vector_id: str, content_hash: str) -> None:
        await self._update(
            item_id,
            index_status=IndexStatus.INDEXED,
            vector_id=vector_id,
            content_hash=content_hash,
            index_last_sync_at=_utcnow(),
            index_attempts=CatalogItem.index_attempts + 1,
        )

    async def mark_index_failed(self, item_id: int, error: str) -> None:
        await self._update(
            item_id,
            index_status=IndexStatus.FAILED,
            last_error=error,
            index_attempts=CatalogItem.index_attempts + 1,
        )

    async def reset_index_status(
        self, tenant_id: str, item_ids: Sequence[int] | None = None
    ) -> int:
        """Flag eligible items (all, or the given ids) as ``pending``."""
        stmt = (
            update(CatalogItem)
            .where(*self._eligible_filter(tenant_id, item_ids))
            .values(index_status=IndexStatus.PENDING)
            .execution_options(synchronize_session=False)
        )
        result = await self._execute_and_commit(stmt)
        return result.rowcount or 0

    # -------------------------------------------------------------------------
    # Retry
    # -------------------------------------------------------------------------

    async def reset_failed(self, tenant_id: str, phase: SyncPhase) -> dict[str, int]:
        """Move ``failed`` items back to ``pending`` and clear their last error."""
        reset = {"import": 0, "index": 0}
        if phase in (SyncPhase.IMPORT, SyncPhase.ALL):
            stmt = (
                update(CatalogItem)
                .where(
                    CatalogItem.tenant_id == tenant_id,
                    CatalogItem.import_status == ImportStatus.FAILED,
                )
                .values(import_status=ImportStatus.PENDING, last_error=None)
                .execution_options(synchronize_session=False)
            )
            reset["import"] = (await self._execute_and_commit(stmt)).rowcount or 0
        if phase in (SyncPhase.INDEX, SyncPhase.ALL):
            stmt = (
                update(CatalogItem)
                .where(
                    CatalogItem.tenant_id == tenant_id,
                    CatalogItem.index_status == IndexStatus.FAILED,
                )
                .values(index_status=IndexStatus.PENDING, last_error=None)
                .execution_options(synchronize_session=False)
            )
            reset["index"] = (await self._execute_and_commit(stmt)).rowcount or 0
        logger.info("Reset failed items", tenant_id=tenant_id, phase=phase.value, **reset)
        return reset

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _update(self, item_id: int, **values: Any) -> None:
        stmt = (
            update(CatalogItem)
            .where(CatalogItem.id == item_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self._execute_and_commit(stmt)

    async def _execute_and_commit(self, stmt: Any) -> Any:
        try:
            result = await self.session.execute(stmt)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return result

    def _insert_construct(self) -> Any:
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert
        if dialect == "sqlite":
            return sqlite.insert
        raise NotImplementedError(f"Upserts are not supported on {dialect}")
