"""SQLAlchemy models for the catalog sync pipeline."""

from datetime import datetime
from enum import Enum as PyEnum
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""


# =============================================================================
# Enums
# =============================================================================


class ItemStatus(str, PyEnum):
    """Publication state mirrored from the commerce source."""

    ACTIVE = "active"
    DRAFT = "draft"
    ARCHIVED = "archived"


class ImportStatus(str, PyEnum):
    """Lifecycle of an item with respect to the commerce source."""

    PENDING = "pending"
    SYNCED = "synced"
    FAILED = "failed"


class IndexStatus(str, PyEnum):
    """Lifecycle of an item with respect to the vector index."""

    NOT_CONFIGURED = "not_configured"
    PENDING = "pending"
    VECTORIZING = "vectorizing"
    UPSERTING = "upserting"
    INDEXED = "indexed"
    FAILED = "failed"


def _enum_column(enum_cls: type[PyEnum]) -> Enum:
    # Store the lowercase values rather than member names.
    return Enum(
        enum_cls,
        native_enum=False,
        length=32,
        values_callable=lambda members: [m.value for m in members],
    )


# =============================================================================
# Catalog Items
# =============================================================================


class CatalogItem(Base):
    """One catalog item per (tenant, external item id).

    Carries two independent state machines: import (commerce source → store)
    and index (store → vector index).
    """

    __tablename__ = "catalog_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String(255), nullable=False)
    external_item_id: Mapped[str] = mapped_column(String(255), nullable=False)

    title: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    handle: Mapped[Optional[str]] = mapped_column(String(500))
    url: Mapped[Optional[str]] = mapped_column(String(1000))
    image_url: Mapped[Optional[str]] = mapped_column(String(1000))
    price: Mapped[str] = mapped_column(String(32), nullable=False, default="0")
    category: Mapped[Optional[str]] = mapped_column(String(255))
    tags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    description: Mapped[Optional[str]] = mapped_column(Text)

    item_status: Mapped[ItemStatus] = mapped_column(
        _enum_column(ItemStatus), nullable=False, default=ItemStatus.DRAFT
    )
    inventory_quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    inventory_tracked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    import_status: Mapped[ImportStatus] = mapped_column(
        _enum_column(ImportStatus), nullable=False, default=ImportStatus.PENDING
    )
    import_last_sync_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    import_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    index_status: Mapped[IndexStatus] = mapped_column(
        _enum_column(IndexStatus), nullable=False, default=IndexStatus.NOT_CONFIGURED
    )
    vector_id: Mapped[Optional[str]] = mapped_column(String(255))
    index_last_sync_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    index_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    content_hash: Mapped[Optional[str]] = mapped_column(String(64))
    last_error: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "external_item_id", name="uq_catalog_items_tenant_external"),
        Index("ix_catalog_items_tenant_import_index", "tenant_id", "import_status", "index_status"),
        Index("ix_catalog_items_tenant_item_status", "tenant_id", "item_status"),
    )


# =============================================================================
# Tenant Integrations
# =============================================================================


class TenantIntegration(Base):
    """Per-tenant commerce and vector index credentials.

    Owned by the tenant settings surface; the pipeline only reads it.
    """

    __tablename__ = "tenant_integrations"

    tenant_id: Mapped[str] = mapped_column(String(255), primary_key=True)

    commerce_domain: Mapped[Optional[str]] = mapped_column(String(255))
    commerce_access_token: Mapped[Optional[str]] = mapped_column(String(255))

    vector_api_key: Mapped[Optional[str]] = mapped_column(String(255))
    vector_environment: Mapped[Optional[str]] = mapped_column(String(255))
    vector_namespace: Mapped[Optional[str]] = mapped_column(String(255))
    vector_index_name: Mapped[Optional[str]] = mapped_column(String(255))
    vector_host: Mapped[Optional[str]] = mapped_column(String(500))

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
