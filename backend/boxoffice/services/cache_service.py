"""
Redis caching service for event seat maps.

CACHING STRATEGY
================

What we cache:
  - The seat-map response of GET /events/{id}/seats (JSON-serialized)
  - Cache key pattern: "events:{event_id}:seats"

Why:
  - Seat maps are polled by every buyer sitting on the seat picker
  - A map is one row per seat; thousands of rows per read add up fast

Invalidation strategy:
  - Every seat-state change (hold, release, confirm, cancel, publish) deletes
    the event's key right after its transaction commits
  - A hold sweep that reclaimed anything drops every seat-map key
  - Short TTL (SEAT_MAP_CACHE_TTL) as safety net

Correctness never depends on this cache. Holds and bookings always read seat
rows from PostgreSQL; a stale map only means a buyer may pick a seat that
then fails with 409. Redis failures are logged and the request falls through
to the database (fail open).
"""

import json
import time
from typing import Iterable, Optional

import redis.asyncio as redis
from boxoffice.core.config import get_settings
from boxoffice.core.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()

SEAT_MAP_KEY_PATTERN = "events:*:seats"
# After a failed connect, skip Redis for this long instead of paying the
# connect timeout on every seat-map request
RECONNECT_BACKOFF_SECONDS = 30.0

_redis_client: Optional[redis.Redis] = None
_unavailable_until: float = 0.0


async def get_redis() -> Optional[redis.Redis]:
    """Shared client, or None if Redis is disabled or recently unreachable."""
    global _redis_client, _unavailable_until

    if not settings.REDIS_ENABLED:
        return None
    if _redis_client is not None:
        return _redis_client
    if time.monotonic() < _unavailable_until:
        return None

    client = redis.from_url(
        settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=2,
        socket_timeout=2,
    )
    try:
        await client.ping()
    except Exception as e:
        _unavailable_until = time.monotonic() + RECONNECT_BACKOFF_SECONDS
        logger.error("redis_connection_failed", error=str(e), retry_in=RECONNECT_BACKOFF_SECONDS)
        await client.aclose()
        return None

    logger.info("redis_connected", url=settings.REDIS_URL)
    _redis_client = client
    return _redis_client


async def close_redis() -> None:
    """Close Redis connection on shutdown."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


def _make_seat_map_key(event_id: int) -> str:
    return f"events:{event_id}:seats"


async def get_cached_seat_map(event_id: int) -> Optional[dict]:
    client = await get_redis()
    if not client:
        return None

    key = _make_seat_map_key(event_id)
    try:
        data = await client.get(key)
        if data:
            logger.debug("cache_hit", key=key)
            return json.loads(data)
        logger.debug("cache_miss", key=key)
    except Exception as e:
        logger.error("cache_get_error", key=key, error=str(e))

    return None


async def set_cached_seat_map(event_id: int, data: dict) -> None:
    client = await get_redis()
    if not client:
        return

    key = _make_seat_map_key(event_id)
    try:
        await client.setex(key, settings.SEAT_MAP_CACHE_TTL, json.dumps(data, default=str))
        logger.debug("cache_set", key=key, ttl=settings.SEAT_MAP_CACHE_TTL)
    except Exception as e:
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_seat_maps(event_ids: Iterable[int]) -> None:
    """Drop cached seat maps for the given events."""
    client = await get_redis()
    if not client:
        return

    keys = [_make_seat_map_key(event_id) for event_id in set(event_ids)]
    if not keys:
        return
    try:
        deleted = await client.delete(*keys)
        logger.debug("cache_invalidated", keys=keys, deleted=deleted)
    except Exception as e:
        logger.error("cache_invalidation_error", keys=keys, error=str(e))


async def invalidate_all_seat_maps() -> None:
    """Drop every cached seat map (used after sweeps, which span many events)."""
    client = await get_redis()
    if not client:
        return

    try:
        deleted = 0
        batch = []
        async for key in client.scan_iter(match=SEAT_MAP_KEY_PATTERN, count=100):
            batch.append(key)
            if len(batch) >= 100:
                deleted += await client.unlink(*batch)
                batch = []
        if batch:
            deleted += await client.unlink(*batch)
        logger.info("cache_invalidated", keys_deleted=deleted)
    except Exception as e:
        logger.error("cache_invalidation_error", error=str(e))


async def get_cache_stats() -> dict:
    """Get Redis cache statistics for monitoring."""
    if not settings.REDIS_ENABLED:
        return {"status": "disabled"}
    client = await get_redis()
    if not client:
        return {"status": "unavailable"}

    try:
        info = await client.info("stats")
        hits = info.get("keyspace_hits", 0)
        misses = info.get("keyspace_misses", 0)
        return {
            "status": "connected",
            "hits": hits,
            "misses": misses,
            "hit_rate": round(hits / max(hits + misses, 1) * 100, 2),
        }
    except Exception as e:
        return {"status": "error", "error": str(e)}
