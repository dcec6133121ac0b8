"""Redis client shared by the job registry and health checks."""

import redis.asyncio as aioredis
import structlog

from catalog_sync_service.config import get_settings

logger = structlog.get_logger()

_redis_client: aioredis.Redis | None = None


async def get_redis_client() -> aioredis.Redis | None:
    """Get or create the global async Redis client, or None if unreachable."""
    global _redis_client
    if _redis_client is None:
        settings = get_settings()
        try:
            _redis_client = aioredis.from_url(
                settings.redis_url,
                decode_responses=False,
                socket_connect_timeout=2,
                socket_timeout=2,
                retry_on_timeout=True,
            )
            await _redis_client.ping()
            logger.info("Redis connection established")
        except Exception as e:
            logger.warning("Redis unavailable", error=str(e))
            _redis_client = None
    return _redis_client


async def close_redis() -> None:
    """Close the Redis connection on shutdown or at the end of a worker task."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


async def redis_health_check() -> bool:
    client = await get_redis_client()
    if not client:
        return False
    try:
        return bool(await client.ping())
    except Exception:
        return False
