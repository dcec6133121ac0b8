#!/usr/bin/env python3
"""CLI script to sync one tenant's catalog and index the items that changed."""

import argparse
import asyncio

import structlog

from catalog_sync_service.infrastructure.database.connection import dispose_engine
from catalog_sync_service.infrastructure.redis import close_redis
from catalog_sync_service.log_config import configure_logging
from catalog_sync_service.services.factory import sync_service_scope
from catalog_sync_service.services.progress import log_progress

logger = structlog.get_logger()


async def main(tenant_id: str, auto_index: bool, batch_size: int | None) -> None:
    """Run a full sync in the foreground."""
    logger.info("Starting catalog sync", tenant_id=tenant_id, auto_index=auto_index)
    try:
        async with sync_service_scope() as service:
            result = await service.start_sync(
                tenant_id,
                auto_index=auto_index,
                batch_size=batch_size,
                on_progress=log_progress,
            )
    finally:
        await dispose_engine()
        await close_redis()
    logger.info("Catalog sync completed", imported=result.imported, indexed=result.indexed)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("tenant_id", help="Tenant whose catalog to sync")
    parser.add_argument("--no-index", action="store_true", help="Import only, skip vector indexing")
    parser.add_argument("--batch-size", type=int, default=None, help="Items per indexing batch")
    args = parser.parse_args()

    configure_logging()
    asyncio.run(main(args.tenant_id, not args.no_index, args.batch_size))
