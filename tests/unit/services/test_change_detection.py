"""Unit tests for content fingerprinting and re-index decisions."""

from dataclasses import replace

from catalog_sync_service.infrastructure.database.models import IndexStatus
from catalog_sync_service.services.catalog_store import CatalogItemRecord
from catalog_sync_service.services.change_detection import (
    compute_content_hash,
    content_hash_for,
    needs_reindexing,
)


def make_record(**overrides) -> CatalogItemRecord:
    fields = {
        "id": 1,
        "tenant_id": "tenant-1",
        "external_item_id": "1001",
        "title": "Linen Shirt",
        "description": "Breathable linen",
        "category": "Shirts",
        "tags": ("linen", "summer"),
        "price": "49.00",
    }
    fields.update(overrides)
    return CatalogItemRecord(**fields)


class TestComputeContentHash:
    def test_deterministic(self) -> None:
        args = ("Shirt", "Soft", "Tops", ["a", "b"], "10.00")
        assert compute_content_hash(*args) == compute_content_hash(*args)

    def test_is_sha256_hex(self) -> None:
        digest = compute_content_hash("Shirt", None, None, [], "0")
        assert len(digest) == 64
        int(digest, 16)

    def test_each_field_changes_hash(self) -> None:
        base = compute_content_hash("Shirt", "Soft", "Tops", ["a"], "10.00")
        assert compute_content_hash("Shirt!", "Soft", "Tops", ["a"], "10.00") != base
        assert compute_content_hash("Shirt", "Softer", "Tops", ["a"], "10.00") != base
        assert compute_content_hash("Shirt", "Soft", "Pants", ["a"], "10.00") != base
        assert compute_content_hash("Shirt", "Soft", "Tops", ["b"], "10.00") != base
        assert compute_content_hash("Shirt", "Soft", "Tops", ["a"], "11.00") != base

    def test_tag_order_matters(self) -> None:
        assert compute_content_hash("S", "", "", ["a", "b"], "1") != compute_content_hash(
            "S", "", "", ["b", "a"], "1"
        )

    def test_missing_values_normalized(self) -> None:
        assert compute_content_hash("S", None, None, None, "1") == compute_content_hash(
            "S", "", "", [], "1"
        )

    def test_record_and_tuple_tags_agree(self) -> None:
        record = make_record()
        assert content_hash_for(record) == compute_content_hash(
            "Linen Shirt", "Breathable linen", "Shirts", ["linen", "summer"], "49.00"
        )


class TestNeedsReindexing:
    def test_not_indexed_needs_reindexing(self) -> None:
        for status in (
            IndexStatus.NOT_CONFIGURED,
            IndexStatus.PENDING,
            IndexStatus.VECTORIZING,
            IndexStatus.UPSERTING,
            IndexStatus.FAILED,
        ):
            record = make_record(index_status=status)
            assert needs_reindexing(replace(record, content_hash=content_hash_for(record)))

    def test_indexed_without_hash_needs_reindexing(self) -> None:
        assert needs_reindexing(make_record(index_status=IndexStatus.INDEXED, content_hash=None))

    def test_indexed_with_matching_hash_is_current(self) -> None:
        record = make_record(index_status=IndexStatus.INDEXED)
        current = make_record(index_status=IndexStatus.INDEXED, content_hash=content_hash_for(record))
        assert needs_reindexing(current) is False

    def test_indexed_with_stale_hash_needs_reindexing(self) -> None:
        stale = content_hash_for(make_record(title="Old title"))
        assert needs_reindexing(make_record(index_status=IndexStatus.INDEXED, content_hash=stale))

    def test_inventory_changes_do_not_matter(self) -> None:
        record = make_record(index_status=IndexStatus.INDEXED)
        digest = content_hash_for(record)
        changed = make_record(
            index_status=IndexStatus.INDEXED, content_hash=digest, inventory_quantity=0
        )
        assert needs_reindexing(changed) is False

    def test_does_not_mutate(self) -> None:
        record = make_record(index_status=IndexStatus.INDEXED, content_hash="abc")
        needs_reindexing(record)
        assert record.content_hash == "abc"
        assert record.index_status == IndexStatus.INDEXED
