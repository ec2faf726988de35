"""
SlotBook Redis cache.

Namespaced keys: slotbook:{namespace}:{key}
All values serialised as JSON.

Local dev:   redis://localhost:6379/0
Production:  set REDIS_URL in .env
Tests:       CACHE_ENABLED=false turns every call into a no-op
"""
from __future__ import annotations

import json
import logging
from typing import Any, Optional

from redis.asyncio import ConnectionPool, Redis

from slotbook.core.config import settings

logger = logging.getLogger(__name__)

# ── Single connection pool shared across the whole app ────────────────────────
_pool: Optional[ConnectionPool] = None


def _get_pool() -> ConnectionPool:
    global _pool
    if _pool is None:
        _pool = ConnectionPool.from_url(
            settings.REDIS_URL,
            max_connections=20,
            decode_responses=True,
        )
    return _pool


def get_redis() -> Redis:
    return Redis(connection_pool=_get_pool())


async def close_pool() -> None:
    global _pool
    if _pool is not None:
        await _pool.disconnect()
        _pool = None


# ── Generic async cache class ─────────────────────────────────────────────────

class RedisCache:
    """
    Async TTL cache backed by Redis.
    Never a source of truth: every failure degrades to a miss.
    """

    def __init__(self, namespace: str, default_ttl_seconds: int = 60):
        self.ns  = namespace
        self.ttl = default_ttl_seconds

    def _key(self, key: str) -> str:
        return f"slotbook:{self.ns}:{key}"

    async def get(self, key: str) -> Optional[Any]:
        if not settings.CACHE_ENABLED:
            return None
        try:
            r   = get_redis()
            raw = await r.get(self._key(key))
            if raw is None:
                logger.debug("[%s] MISS %s", self.ns, key[:60])
                return None
            logger.debug("[%s] HIT  %s", self.ns, key[:60])
            return json.loads(raw)
        except Exception as exc:
            logger.warning("[%s] get failed: %s", self.ns, exc)
            return None

    async def set(
        self,
        key: str,
        value: Any,
        ttl_seconds: Optional[int] = None,
    ) -> None:
        if not settings.CACHE_ENABLED:
            return
        try:
            r   = get_redis()
            ttl = ttl_seconds if ttl_seconds is not None else self.ttl
            await r.setex(self._key(key), ttl, json.dumps(value))
            logger.debug("[%s] SET  %s (ttl=%ds)", self.ns, key[:60], ttl)
        except Exception as exc:
            logger.warning("[%s] set failed: %s", self.ns, exc)

    async def clear_prefix(self, prefix: str) -> None:
        """Drop every key starting with ``prefix`` (e.g. one venue's projections)."""
        if not settings.CACHE_ENABLED:
            return
        try:
            r    = get_redis()
            keys = await r.keys(f"slotbook:{self.ns}:{prefix}*")
            if keys:
                await r.delete(*keys)
            logger.debug("[%s] Cleared %d keys for %s", self.ns, len(keys or []), prefix)
        except Exception as exc:
            logger.warning("[%s] clear failed: %s", self.ns, exc)

    async def clear(self) -> None:
        await self.clear_prefix("")

    async def stats(self) -> dict:
        if not settings.CACHE_ENABLED:
            return {"cache": self.ns, "enabled": False}
        try:
            r    = get_redis()
            keys = await r.keys(f"slotbook:{self.ns}:*")
            return {"cache": self.ns, "live_entries": len(keys)}
        except Exception as exc:
            return {"cache": self.ns, "error": str(exc)}


# ── Shared instances, import these everywhere ────────────────────────────────

calendar_cache     = RedisCache("calendar",     default_ttl_seconds=settings.CALENDAR_CACHE_TTL_SECONDS)
availability_cache = RedisCache("availability", default_ttl_seconds=settings.CALENDAR_CACHE_TTL_SECONDS)


def _generation_key(venue_id: str) -> str:
    return f"slotbook:generation:{venue_id}"


async def venue_generation(venue_id: str) -> Optional[int]:
    """
    Cache generation of one venue, part of every projection key.
    None when caching is off or Redis is unreachable; callers then skip the cache.
    """
    if not settings.CACHE_ENABLED:
        return None
    try:
        raw = await get_redis().get(_generation_key(venue_id))
        return int(raw or 0)
    except Exception as exc:
        logger.warning("[generation] get failed for %s: %s", venue_id, exc)
        return None


async def invalidate_venue(venue_id: str) -> None:
    """
    Forget every cached projection of one venue after a committed change.
    Bumping the generation first orphans any projection computed before the
    commit that is still on its way into the cache.
    """
    if settings.CACHE_ENABLED:
        try:
            await get_redis().incr(_generation_key(venue_id))
        except Exception as exc:
            logger.warning("[generation] bump failed for %s: %s", venue_id, exc)
    await calendar_cache.clear_prefix(f"{venue_id}:")
    await availability_cache.clear_prefix(f"{venue_id}:")
