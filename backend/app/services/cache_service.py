"""
Redis caching service for the public event listing.

CACHING STRATEGY
================

What we cache:
  - Public (approved-only) event listing responses, JSON-serialized
  - Cache key pattern: "events:list:page={page}&size={size}&upcoming={upcoming}"

Invalidation strategy:
  - On booking or cancellation: remaining_tickets changed
  - On event creation, edit, approval/decline or deletion
  - TTL-based expiry as safety net (REDIS_CACHE_TTL)

  All event list keys share the "events:list:" prefix so they can be found
  with SCAN and deleted together.

Why NOT cache individual events:
  - The booking service needs real-time ticket counts; it always reads the
    database, never the cache
  - Single-event reads are cheap primary-key lookups

Redis failures never fail a request: reads fall back to the database and
write/invalidate errors are logged.
"""

import json
from typing import Optional

from redis.exceptions import RedisError

from app.core.config import get_settings
from app.core.logging import get_logger
from app.core.metrics import record_cache_operation, redis_connection_errors
from app.infrastructure.redis_client import get_redis

logger = get_logger(__name__)
settings = get_settings()

EVENT_LIST_PREFIX = "events:list:"


def _make_event_list_key(page: int, page_size: int, upcoming_only: bool) -> str:
    return f"{EVENT_LIST_PREFIX}page={page}&size={page_size}&upcoming={upcoming_only}"


async def get_cached_events(page: int, page_size: int, upcoming_only: bool) -> Optional[dict]:
    """Retrieve cached event list response."""
    client = await get_redis()
    if not client:
        return None

    key = _make_event_list_key(page, page_size, upcoming_only)
    try:
        data = await client.get(key)
    except RedisError as e:
        redis_connection_errors.inc()
        logger.error("cache_get_error", key=key, error=str(e))
        return None

    record_cache_operation("get", hit=data is not None)
    if data:
        logger.debug("cache_hit", key=key)
        return json.loads(data)
    logger.debug("cache_miss", key=key)
    return None


async def set_cached_events(
    page: int,
    page_size: int,
    upcoming_only: bool,
    data: dict,
) -> None:
    """Cache event list response with TTL."""
    client = await get_redis()
    if not client:
        return

    key = _make_event_list_key(page, page_size, upcoming_only)
    try:
        await client.setex(key, settings.REDIS_CACHE_TTL, json.dumps(data, default=str))
        logger.debug("cache_set", key=key, ttl=settings.REDIS_CACHE_TTL)
    except RedisError as e:
        redis_connection_errors.inc()
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_event_cache() -> None:
    """
    Drop every cached listing page. Routes call this after committing;
    the TTL bounds how long a page cached mid-change can survive.
    """
    client = await get_redis()
    if not client:
        return

    try:
        keys = [key async for key in client.scan_iter(match=f"{EVENT_LIST_PREFIX}*", count=100)]
        if keys:
            await client.delete(*keys)
        logger.info("cache_invalidated", keys_deleted=len(keys))
    except RedisError as e:
        redis_connection_errors.inc()
        logger.error("cache_invalidation_error", error=str(e))


async def get_cache_stats() -> dict:
    """Get Redis cache statistics for monitoring."""
    client = await get_redis()
    if not client:
        return {"status": "disabled"}

    try:
        info = await client.info("stats")
    except RedisError as e:
        return {"status": "error", "error": str(e)}

    hits = info.get("keyspace_hits", 0)
    misses = info.get("keyspace_misses", 0)
    return {
        "status": "connected",
        "hits": hits,
        "misses": misses,
        "hit_rate": round(hits / max(hits + misses, 1) * 100, 2),
    }
