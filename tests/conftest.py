"""Pytest configuration and fixtures."""

from collections.abc import AsyncGenerator, Callable
from typing import Any

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from catalog_sync_service.config import Settings, get_settings
from catalog_sync_service.infrastructure.commerce.schemas import SourceItem, SourcePage
from catalog_sync_service.infrastructure.database.connection import get_async_session_factory
from catalog_sync_service.infrastructure.database.models import (
    Base,
    ItemStatus,
    TenantIntegration,
)
from catalog_sync_service.infrastructure.vector.pinecone_index import VectorRecord
from catalog_sync_service.main import create_app
from catalog_sync_service.services.catalog_store import CatalogStore
from catalog_sync_service.services.catalog_sync import CatalogSyncService
from catalog_sync_service.services.embedder import Embedder
from catalog_sync_service.services.errors import EmbeddingProviderError, VectorUpsertError
from catalog_sync_service.services.job_registry import InMemoryJobRegistry
from catalog_sync_service.services.progress import ProgressEvent
from catalog_sync_service.services.tenant_config import TenantConfigStore

TEXT_VECTOR = [1.0, 0.0, 0.0, 0.0]
IMAGE_VECTOR = [0.0, 1.0, 0.0, 0.0]
DESCRIPTION_PREFIX = "A photo of"


# =============================================================================
# Fakes
# =============================================================================


class FakeEmbeddingProvider:
    """Returns fixed vectors; image descriptions start with ``DESCRIPTION_PREFIX``."""

    def __init__(
        self,
        failing_texts: tuple[str, ...] = (),
        failing_images: tuple[str, ...] = (),
        image_dimension: int | None = None,
    ):
        self.failing_texts = failing_texts
        self.failing_images = failing_images
        self.image_dimension = image_dimension
        self.text_calls: list[str] = []
        self.image_calls: list[str] = []

    async def embed_text(self, text: str) -> list[float]:
        self.text_calls.append(text)
        if any(token in text for token in self.failing_texts):
            raise EmbeddingProviderError(f"cannot embed {text!r}")
        if text.startswith(DESCRIPTION_PREFIX):
            if self.image_dimension is not None:
                return [0.5] * self.image_dimension
            return list(IMAGE_VECTOR)
        return list(TEXT_VECTOR)

    async def describe_image(self, image_url: str) -> str:
        self.image_calls.append(image_url)
        if image_url in self.failing_images:
            raise EmbeddingProviderError(f"vision failed for {image_url}")
        return f"{DESCRIPTION_PREFIX} {image_url}"


class FakeVectorIndex:
    """Keeps upserted vectors per namespace; ids in ``failing_ids`` are rejected."""

    def __init__(self, failing_ids: tuple[str, ...] = ()):
        self.failing_ids = failing_ids
        self.namespaces: dict[str, dict[str, VectorRecord]] = {}
        self.upsert_calls = 0

    async def upsert(self, namespace: str, records: list[VectorRecord]) -> None:
        self.upsert_calls += 1
        for record in records:
            if record.id in self.failing_ids:
                raise VectorUpsertError(f"rejected {record.id}")
        bucket = self.namespaces.setdefault(namespace, {})
        for record in records:
            bucket[record.id] = record


class FakeSource:
    """Serves pre-built pages; the cursor is the index of the next page."""

    def __init__(self, pages: list[list[SourceItem]], error: Exception | None = None):
        self.pages = pages
        self.error = error
        self.requested_cursors: list[str | None] = []
        self.closed = False

    async def count_items(self) -> int:
        return sum(len(page) for page in self.pages)

    async def list_items(self, page_size: int, cursor: str | None = None) -> SourcePage:
        self.requested_cursors.append(cursor)
        if self.error is not None:
            raise self.error
        index = int(cursor) if cursor else 0
        next_cursor = str(index + 1) if index + 1 < len(self.pages) else None
        items = self.pages[index] if self.pages else []
        return SourcePage(items=items, next_cursor=next_cursor)

    async def aclose(self) -> None:
        self.closed = True


class ProgressRecorder:
    def __init__(self) -> None:
        self.events: list[ProgressEvent] = []

    def __call__(self, event: ProgressEvent) -> None:
        self.events.append(event)

    @property
    def progress(self) -> list[float]:
        return [event.progress for event in self.events]


def make_source_item(external_item_id: str, **overrides: Any) -> SourceItem:
    fields: dict[str, Any] = {
        "external_item_id": external_item_id,
        "title": f"Product {external_item_id}",
        "handle": f"product-{external_item_id}",
        "url": f"https://shop.example.com/products/product-{external_item_id}",
        "image_url": f"https://cdn.example.com/{external_item_id}.jpg",
        "price": "19.99",
        "category": "Shirts",
        "tags": ["cotton", "summer"],
        "description": "A comfortable shirt",
        "item_status": ItemStatus.ACTIVE,
        "inventory_quantity": 5,
        "inventory_tracked": True,
    }
    fields.update(overrides)
    return SourceItem(**fields)


# =============================================================================
# Settings and application
# =============================================================================


@pytest.fixture
def test_settings() -> Settings:
    """Get test settings with overrides."""
    return Settings(
        app_env="test",
        debug=True,
        postgres_host="localhost",
        postgres_port=5432,
        postgres_user="test",
        postgres_password="test",
        postgres_db="test_db",
        redis_host="localhost",
        redis_port=6379,
        openai_api_key="test-key",
        job_registry_backend="memory",
    )


@pytest.fixture
def app(test_settings: Settings) -> Any:
    """Create test application."""

    def get_test_settings() -> Settings:
        return test_settings

    app = create_app()
    app.dependency_overrides[get_settings] = get_test_settings
    return app


@pytest.fixture
def client(app: Any) -> TestClient:
    """Create synchronous test client."""
    return TestClient(app)


# =============================================================================
# Database
# =============================================================================


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite database shared by every session of a test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    factory = get_async_session_factory(engine)
    async with factory() as session:
        yield session


@pytest.fixture
def store(session: AsyncSession) -> CatalogStore:
    return CatalogStore(session)


@pytest.fixture
def add_tenant(session: AsyncSession) -> Callable[..., Any]:
    """Insert a tenant_integrations row; vector settings are optional."""

    async def _add(tenant_id: str = "tenant-1", with_vector_index: bool = True, **overrides: Any):
        fields: dict[str, Any] = {
            "tenant_id": tenant_id,
            "commerce_domain": "shop.example.com",
            "commerce_access_token": "shpat_test",
        }
        if with_vector_index:
            fields.update(
                vector_api_key="pc-key",
                vector_environment="us-east-1",
                vector_namespace=f"{tenant_id}-products",
                vector_index_name="catalog",
            )
        fields.update(overrides)
        session.add(TenantIntegration(**fields))
        await session.commit()

    return _add


# =============================================================================
# Pipeline
# =============================================================================


@pytest.fixture
def embedding_provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def vector_index() -> FakeVectorIndex:
    return FakeVectorIndex()


@pytest.fixture
def embedder(embedding_provider: FakeEmbeddingProvider) -> Embedder:
    return Embedder(embedding_provider, dimension=4)


@pytest.fixture
def source() -> FakeSource:
    return FakeSource([[make_source_item("1001"), make_source_item("1002")], [make_source_item("1003")]])


@pytest.fixture
def registry() -> InMemoryJobRegistry:
    return InMemoryJobRegistry(error_retention_seconds=10, max_runtime_seconds=3600)


@pytest.fixture
def sync_service(
    session: AsyncSession,
    registry: InMemoryJobRegistry,
    embedder: Embedder,
    source: FakeSource,
    vector_index: FakeVectorIndex,
) -> CatalogSyncService:
    return CatalogSyncService(
        store=CatalogStore(session),
        tenant_configs=TenantConfigStore(session),
        registry=registry,
        embedder=embedder,
        source_factory=lambda config: source,
        vector_index_factory=lambda config: vector_index,
    )


@pytest.fixture
def progress() -> ProgressRecorder:
    return ProgressRecorder()


@pytest.fixture
def make_item() -> Callable[..., SourceItem]:
    """Factory for normalized source items with sensible defaults."""
    return make_source_item


@pytest.fixture
def make_source() -> Callable[..., FakeSource]:
    return FakeSource


@pytest.fixture
def make_vector_index() -> Callable[..., FakeVectorIndex]:
    return FakeVectorIndex
