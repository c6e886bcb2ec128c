"""
Redis caching service for catalog listings.

CACHING STRATEGY
================

What we cache:
  - Unit listings per container (JSON-serialized)
  - Cache key pattern: "catalog:units:{container_id}"

Why:
  - The seat map is rendered on every visit to an event or lot page
  - Catalog rows never change after import, so entries cannot go stale
    except through a re-import

What we never cache:
  - Ledger snapshots and availability counts. They must reflect every
    committed transition; a cached snapshot would invite users to pick seats
    that are already held.

Invalidation strategy:
  - On container import: delete that container's key
  - TTL-based expiry as safety net

Redis is optional. When disabled or unreachable every helper degrades to a
cache miss and the database answers.
"""

import json
from typing import Optional

import redis.asyncio as redis
from booking_core.core.config import get_settings
from booking_core.core.logging import get_logger
from booking_core.core.metrics import record_cache_operation, redis_connection_errors

logger = get_logger(__name__)
settings = get_settings()

_redis_client: Optional[redis.Redis] = None


async def get_redis() -> Optional[redis.Redis]:
    """Get or create Redis connection. Returns None if Redis is disabled."""
    global _redis_client

    if not settings.REDIS_ENABLED:
        return None

    if _redis_client is None:
        try:
            _redis_client = redis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
            )
            # Test connection
            await _redis_client.ping()
            logger.info("redis_connected", url=settings.REDIS_URL)
        except Exception as e:
            redis_connection_errors.inc()
            logger.error("redis_connection_failed", error=str(e))
            _redis_client = None
            return None

    return _redis_client


async def close_redis() -> None:
    """Close Redis connection on shutdown."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


def _make_units_key(container_id: str) -> str:
    return f"catalog:units:{container_id}"


async def get_cached_units(container_id: str) -> Optional[list]:
    """Retrieve a cached unit listing."""
    client = await get_redis()
    if not client:
        return None

    key = _make_units_key(container_id)
    try:
        data = await client.get(key)
        if data:
            record_cache_operation("get", hit=True)
            logger.debug("cache_hit", key=key)
            return json.loads(data)
        record_cache_operation("get", hit=False)
        logger.debug("cache_miss", key=key)
    except Exception as e:
        logger.error("cache_get_error", key=key, error=str(e))

    return None


async def set_cached_units(container_id: str, data: list) -> None:
    """Cache a unit listing with TTL."""
    client = await get_redis()
    if not client:
        return

    key = _make_units_key(container_id)
    try:
        await client.setex(key, settings.REDIS_CACHE_TTL, json.dumps(data, default=str))
        logger.debug("cache_set", key=key, ttl=settings.REDIS_CACHE_TTL)
    except Exception as e:
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_units(container_id: str) -> None:
    client = await get_redis()
    if not client:
        return

    key = _make_units_key(container_id)
    try:
        await client.delete(key)
        logger.info("cache_invalidated", key=key)
    except Exception as e:
        logger.error("cache_invalidation_error", key=key, error=str(e))


async def get_cache_stats() -> dict:
    """Get Redis cache statistics for monitoring."""
    client = await get_redis()
    if not client:
        return {"status": "disabled"}

    try:
        info = await client.info("stats")
        keyspace = await client.info("keyspace")
        return {
            "status": "connected",
            "hits": info.get("keyspace_hits", 0),
            "misses": info.get("keyspace_misses", 0),
            "hit_rate": (
                round(
                    info.get("keyspace_hits", 0)
                    / max(info.get("keyspace_hits", 0) + info.get("keyspace_misses", 0), 1)
                    * 100,
                    2,
                )
            ),
            "keys": keyspace,
        }
    except Exception as e:
        return {"status": "error", "error": str(e)}
