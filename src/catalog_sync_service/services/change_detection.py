"""Content fingerprinting and re-index decisions.

Only the fields that end up in the embedding text take part in the
fingerprint, so inventory or publication changes never trigger a re-embed.
"""

import hashlib
import json
from collections.abc import Sequence
from typing import Protocol

from catalog_sync_service.infrastructure.database.models import IndexStatus


class EmbeddableContent(Protocol):
    """Anything carrying the fields that feed the embedding text."""

    title: str
    description: str | None
    category: str | None
    tags: Sequence[str]
    price: str


class IndexableRecord(EmbeddableContent, Protocol):
    index_status: IndexStatus
    content_hash: str | None


def compute_content_hash(
    title: str | None,
    description: str | None,
    category: str | None,
    tags: Sequence[str] | None,
    price: str | None,
) -> str:
    """Compute a stable SHA-256 fingerprint of the embedding-relevant fields."""
    payload = {
        "title": title or "",
        "description": description or "",
        "category": category or "",
        "tags": list(tags or []),
        "price": str(price) if price is not None else "",
    }
    serialized = json.dumps(payload, sort_keys=True, ensure_ascii=False)
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()


def content_hash_for(item: EmbeddableContent) -> str:
    """Fingerprint a record or a normalized source item."""
    return compute_content_hash(
        item.title, item.description, item.category, item.tags, item.price
    )


def needs_reindexing(record: IndexableRecord) -> bool:
    """Decide whether a record's vector must be (re)built.

    True when the record was never indexed (or its last attempt did not
    finish), when no fingerprint was stored, or when the stored fingerprint
    no longer matches the record's content. How long ago the record was
    indexed plays no part.
    """
    if record.index_status != IndexStatus.INDEXED:
        return True
    if not record.content_hash:
        return True
    return content_hash_for(record) != record.content_hash
