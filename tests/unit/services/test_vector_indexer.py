"""Unit tests for the vector indexer."""

import pytest

from catalog_sync_service.infrastructure.database.models import IndexStatus
from catalog_sync_service.services.catalog_import import source_item_fields
from catalog_sync_service.services.catalog_store import CatalogStore
from catalog_sync_service.services.change_detection import content_hash_for
from catalog_sync_service.services.progress import FULL_WINDOW, JobStatus
from catalog_sync_service.services.vector_indexer import NO_IMAGE_DESCRIPTION, VectorIndexer

NAMESPACE = "tenant-1-products"


@pytest.fixture
def imported(store: CatalogStore, make_item):
    async def _import(*external_ids: str, **overrides):
        records = []
        for external_id in external_ids:
            item = make_item(external_id, **overrides)
            records.append(
                await store.upsert_imported("tenant-1", external_id, source_item_fields(item))
            )
        return records

    return _import


@pytest.fixture
def indexer(store: CatalogStore, embedder, vector_index) -> VectorIndexer:
    return VectorIndexer(store, embedder, vector_index, batch_size=2)


class TestIndexPending:
    @pytest.mark.asyncio
    async def test_indexes_every_candidate(
        self, indexer: VectorIndexer, store: CatalogStore, vector_index, imported, progress
    ) -> None:
        await imported("1001", "1002", "1003")

        summary = await indexer.index_pending("tenant-1", NAMESPACE, on_progress=progress)

        assert (summary.candidates, summary.indexed, summary.failed, summary.skipped) == (3, 3, 0, 0)
        assert set(vector_index.namespaces[NAMESPACE]) == {"1001", "1002", "1003"}
        for record in await store.list_active("tenant-1"):
            assert record.index_status == IndexStatus.INDEXED
            assert record.vector_id == record.external_item_id
            assert record.content_hash == content_hash_for(record)
            assert record.index_attempts == 1
            assert record.index_last_sync_at is not None

    @pytest.mark.asyncio
    async def test_progress_stays_in_index_window(
        self, indexer: VectorIndexer, imported, progress
    ) -> None:
        await imported("1001", "1002", "1003")

        await indexer.index_pending("tenant-1", NAMESPACE, on_progress=progress)

        assert progress.events[0].stage == JobStatus.VECTORIZING
        assert progress.events[0].progress == 70
        upserting = [e.progress for e in progress.events if e.stage == JobStatus.UPSERTING]
        assert upserting == [90, 100]
        assert progress.events[-1].stage == JobStatus.COMPLETE
        assert progress.events[-1].progress == 100

    @pytest.mark.asyncio
    async def test_failing_item_is_isolated(
        self, store: CatalogStore, embedder, make_vector_index, imported
    ) -> None:
        vector_index = make_vector_index(failing_ids=("1002",))
        indexer = VectorIndexer(store, embedder, vector_index)
        await imported("1001", "1002", "1003")

        summary = await indexer.index_pending("tenant-1", NAMESPACE)

        assert (summary.indexed, summary.failed) == (2, 1)
        failed = await store.get_by_external_id("tenant-1", "1002")
        assert failed.index_status == IndexStatus.FAILED
        assert "rejected 1002" in failed.last_error
        assert failed.vector_id is None
        assert set(vector_index.namespaces[NAMESPACE]) == {"1001", "1003"}

    @pytest.mark.asyncio
    async def test_no_candidates_completes_window(self, indexer: VectorIndexer, progress) -> None:
        summary = await indexer.index_pending(
            "tenant-1", NAMESPACE, on_progress=progress, window=FULL_WINDOW
        )

        assert summary.candidates == 0
        assert len(progress.events) == 1
        assert progress.events[0].stage == JobStatus.COMPLETE
        assert progress.events[0].progress == 100

    @pytest.mark.asyncio
    async def test_unchanged_indexed_item_is_skipped(
        self, indexer: VectorIndexer, store: CatalogStore, vector_index, imported
    ) -> None:
        (record,) = await imported("1001")
        await store.mark_indexed(record.id, "1001", record.content_hash)
        current = await store.get(record.id)

        summary = await indexer.index_pending("tenant-1", NAMESPACE, candidates=[current])

        assert (summary.indexed, summary.skipped) == (0, 1)
        assert vector_index.upsert_calls == 0

    @pytest.mark.asyncio
    async def test_indexed_items_are_not_candidates(
        self, indexer: VectorIndexer, vector_index, imported
    ) -> None:
        await imported("1001")
        await indexer.index_pending("tenant-1", NAMESPACE)

        summary = await indexer.index_pending("tenant-1", NAMESPACE)

        assert summary.candidates == 0
        assert vector_index.upsert_calls == 1


class TestVectorMetadata:
    @pytest.mark.asyncio
    async def test_metadata_carries_item_fields(
        self, indexer: VectorIndexer, vector_index, imported
    ) -> None:
        await imported("1001")

        await indexer.index_pending("tenant-1", NAMESPACE)

        vector = vector_index.namespaces[NAMESPACE]["1001"]
        assert vector.values == [0.5, 0.5, 0.0, 0.0]
        assert vector.metadata["tenant_id"] == "tenant-1"
        assert vector.metadata["external_item_id"] == "1001"
        assert vector.metadata["tags"] == ["cotton", "summer"]
        assert vector.metadata["image_description"].startswith("A photo of")
        assert "indexed_at" in vector.metadata

    @pytest.mark.asyncio
    async def test_missing_image_uses_placeholder(
        self, indexer: VectorIndexer, vector_index, imported
    ) -> None:
        await imported("1001", image_url=None)

        await indexer.index_pending("tenant-1", NAMESPACE)

        vector = vector_index.namespaces[NAMESPACE]["1001"]
        assert vector.values == [1.0, 0.0, 0.0, 0.0]
        assert vector.metadata["image_description"] == NO_IMAGE_DESCRIPTION
        assert "image_url" not in vector.metadata


class UnreadableStore(CatalogStore):
    """Store whose re-fetch fails for one item id."""

    failing_id: int | None = None

    async def get(self, item_id: int):
        if item_id == self.failing_id:
            raise ConnectionError("store connection reset")
        return await super().get(item_id)


class TestItemIsolation:
    @pytest.mark.asyncio
    async def test_embedding_failure_is_isolated(
        self, indexer: VectorIndexer, store: CatalogStore, embedding_provider, vector_index, imported
    ) -> None:
        await imported("1001", "1002", "1003")
        embedding_provider.failing_texts = ("Product 1002",)

        summary = await indexer.index_pending("tenant-1", NAMESPACE)

        assert (summary.indexed, summary.failed) == (2, 1)
        failed = await store.get_by_external_id("tenant-1", "1002")
        assert failed.index_status == IndexStatus.FAILED
        assert failed.index_attempts == 1
        assert "cannot embed" in failed.last_error
        assert set(vector_index.namespaces[NAMESPACE]) == {"1001", "1003"}

    @pytest.mark.asyncio
    async def test_refetch_failure_is_isolated(
        self, session, embedder, vector_index, make_item
    ) -> None:
        store = UnreadableStore(session)
        records = [
            await store.upsert_imported("tenant-1", ext_id, source_item_fields(make_item(ext_id)))
            for ext_id in ("1001", "1002", "1003")
        ]
        store.failing_id = records[1].id
        indexer = VectorIndexer(store, embedder, vector_index)

        summary = await indexer.index_pending("tenant-1", NAMESPACE)

        assert (summary.indexed, summary.failed) == (2, 1)
        store.failing_id = None
        failed = await store.get(records[1].id)
        assert failed.index_status == IndexStatus.FAILED
        assert "store connection reset" in failed.last_error

    @pytest.mark.asyncio
    async def test_image_failure_still_indexes_with_text(
        self, indexer: VectorIndexer, store: CatalogStore, embedding_provider, vector_index, imported
    ) -> None:
        await imported("1001")
        embedding_provider.failing_images = ("https://cdn.example.com/1001.jpg",)

        summary = await indexer.index_pending("tenant-1", NAMESPACE)

        assert summary.indexed == 1
        record = await store.get_by_external_id("tenant-1", "1001")
        assert record.index_status == IndexStatus.INDEXED
        vector = vector_index.namespaces[NAMESPACE]["1001"]
        assert vector.values == [1.0, 0.0, 0.0, 0.0]
        assert vector.metadata["image_description"] == NO_IMAGE_DESCRIPTION


class TestMixedCatalog:
    @pytest.mark.asyncio
    async def test_two_pending_and_one_unchanged(
        self, indexer: VectorIndexer, store: CatalogStore, vector_index, imported, progress
    ) -> None:
        first, second, unchanged = await imported("1001", "1002", "1003")
        await store.set_index_status(first.id, IndexStatus.PENDING)
        await store.set_index_status(second.id, IndexStatus.PENDING)
        await store.mark_indexed(unchanged.id, "1003", unchanged.content_hash)
        before = await store.get(unchanged.id)

        summary = await indexer.index_pending(
            "tenant-1", NAMESPACE, batch_size=1, on_progress=progress
        )

        assert (summary.candidates, summary.indexed) == (2, 2)
        assert vector_index.upsert_calls == 2
        assert set(vector_index.namespaces[NAMESPACE]) == {"1001", "1002"}
        after = await store.get(unchanged.id)
        assert after.index_attempts == before.index_attempts
        assert after.index_last_sync_at == before.index_last_sync_at
        upserting = [e.progress for e in progress.events if e.stage == JobStatus.UPSERTING]
        assert upserting == [85, 100]
        assert progress.events[-1].progress == 100
