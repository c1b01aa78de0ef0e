import json
import logging

import redis.asyncio as redis

from app.config import settings

logger = logging.getLogger(__name__)

TAGS_KEY = "tags:all"


class CacheManager:
    """
    Cache-aside manager backed by Redis.

    All public methods are safe to call even when Redis is unavailable:
    read operations return None and write operations are silently skipped,
    so the application degrades gracefully without raising exceptions to
    callers.
    """

    def __init__(self) -> None:
        self._redis: redis.Redis | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the connection pool.  Called once at application startup."""
        self._redis = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        try:
            await self._redis.ping()
            logger.info("Redis connected: %s", settings.REDIS_URL)
        except Exception as exc:  # pragma: no cover
            logger.warning("Redis ping failed, cache disabled: %s", exc)
            await self._redis.aclose()
            self._redis = None

    async def disconnect(self) -> None:
        """Close the connection pool.  Called once at application shutdown."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    # ------------------------------------------------------------------
    # Core cache operations
    # ------------------------------------------------------------------

    async def get(self, key: str) -> dict | list | None:
        """Return the cached value for *key*, or None on a miss / error."""
        if not self._redis:
            return None
        try:
            data = await self._redis.get(key)
            if data is not None:
                return json.loads(data)
            return None
        except Exception as exc:
            logger.debug("Cache GET error for key=%r: %s", key, exc)
            return None

    async def set(self, key: str, value: dict | list, ttl: int | None = None) -> None:
        """
        Persist *value* under *key* with an optional TTL (seconds).

        Serialisation errors and Redis failures are logged but never
        propagated; a cache write failure must never break a request.
        """
        if not self._redis:
            return
        try:
            await self._redis.set(key, json.dumps(value, default=str), ex=ttl)
        except Exception as exc:
            logger.debug("Cache SET error for key=%r: %s", key, exc)

    async def delete(self, key: str) -> None:
        if not self._redis:
            return
        try:
            await self._redis.delete(key)
        except Exception as exc:
            logger.debug("Cache DELETE error for key=%r: %s", key, exc)

    # ------------------------------------------------------------------
    # Domain-level invalidation helpers
    # ------------------------------------------------------------------

    async def invalidate_tags(self) -> None:
        """Drop the tag list; any article write may change which tags are in use."""
        await self.delete(TAGS_KEY)


# Module-level singleton shared across all request handlers.
cache = CacheManager()
