import json
import logging

import redis.asyncio as redis

from blogcms.config import settings

logger = logging.getLogger(__name__)


class CacheManager:
    """
    Cache-aside manager backed by Redis for the public, anonymous reads
    (published article lists and the tag list).

    All public methods are safe to call even when Redis is unavailable:
    read operations return None and write operations are skipped.
    """

    def __init__(self) -> None:
        self._redis: redis.Redis | None = None
        self._hits: int = 0
        self._misses: int = 0

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
            self._misses += 1
            return None
        try:
            data = await self._redis.get(key)
            if data is not None:
                self._hits += 1
                return json.loads(data)
            self._misses += 1
            return None
        except Exception as exc:
            logger.debug("Cache GET error for key=%r: %s", key, exc)
            self._misses += 1
            return None

    async def set(self, key: str, value: dict | list, ttl: int | None = None) -> None:
        if not self._redis:
            return
        try:
            await self._redis.set(key, json.dumps(value, default=str), ex=ttl)
        except Exception as exc:
            logger.debug("Cache SET error for key=%r: %s", key, exc)

    async def delete_pattern(self, pattern: str) -> None:
        """Delete all keys matching *pattern* using SCAN."""
        if not self._redis:
            return
        try:
            keys: list[str] = [key async for key in self._redis.scan_iter(match=pattern)]
            if keys:
                await self._redis.delete(*keys)
                logger.debug("Cache invalidated %d key(s) matching %r", len(keys), pattern)
        except Exception as exc:
            logger.debug("Cache DELETE_PATTERN error for pattern=%r: %s", pattern, exc)

    # ------------------------------------------------------------------
    # Domain-level invalidation helpers
    # ------------------------------------------------------------------

    async def invalidate_articles(self) -> None:
        """Purge every cached article list (feed, by-tag, by-author)."""
        await self.delete_pattern("articles:*")

    async def invalidate_tags(self) -> None:
        """Tag lists embed article counts and articles embed tags."""
        await self.delete_pattern("tags:*")
        await self.delete_pattern("articles:*")

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    @property
    def stats(self) -> dict:
        total = self._hits + self._misses
        return {
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / total * 100, 1) if total > 0 else 0.0,
        }


# Module-level singleton shared across all request handlers.
cache = CacheManager()
