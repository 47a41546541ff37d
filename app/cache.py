import json
import logging

import redis.asyncio as redis

from app.config import settings

logger = logging.getLogger(__name__)

POST_LISTINGS = "posts:list:*"
CATEGORY_KEYS = "categories:*"


class CacheManager:
    """
    Read-through cache for post listings and the category list.

    Redis is optional.  With no client (never connected, or the startup
    ping failed) every read is a miss and every write or purge does
    nothing, so callers never branch on cache availability.
    """

    def __init__(self) -> None:
        self._redis: redis.Redis | None = None
        self._hits = 0
        self._misses = 0

    async def connect(self) -> None:
        client = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        try:
            await client.ping()
        except Exception as exc:  # pragma: no cover
            logger.warning("Redis unreachable at %s, serving without cache: %s", settings.REDIS_URL, exc)
            await client.aclose()
            return
        self._redis = client
        logger.info("Redis connected: %s", settings.REDIS_URL)

    async def disconnect(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def get(self, key: str) -> dict | list | None:
        """Decoded JSON stored under *key*; None on a miss or a Redis error."""
        if self._redis:
            try:
                raw = await self._redis.get(key)
            except Exception as exc:
                logger.debug("Cache read failed for %r: %s", key, exc)
                raw = None
            if raw is not None:
                self._hits += 1
                return json.loads(raw)
        self._misses += 1
        return None

    async def set(self, key: str, value: dict | list, ttl: int | None = None) -> None:
        if not self._redis:
            return
        try:
            await self._redis.set(key, json.dumps(value, default=str), ex=ttl)
        except Exception as exc:
            logger.debug("Cache write failed for %r: %s", key, exc)

    async def delete_pattern(self, pattern: str) -> None:
        """Drop every key matching *pattern*, walking the keyspace with SCAN."""
        if not self._redis:
            return
        try:
            keys = [key async for key in self._redis.scan_iter(match=pattern)]
            if keys:
                await self._redis.delete(*keys)
                logger.debug("Purged %d cache key(s) for %r", len(keys), pattern)
        except Exception as exc:
            logger.debug("Cache purge failed for %r: %s", pattern, exc)

    async def invalidate_posts(self) -> None:
        """Post listings; single-post reads are not cached."""
        await self.delete_pattern(POST_LISTINGS)

    async def invalidate_categories(self) -> None:
        await self.delete_pattern(CATEGORY_KEYS)

    @property
    def stats(self) -> dict:
        total = self._hits + self._misses
        return {
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / total * 100, 1) if total > 0 else 0.0,
        }


cache = CacheManager()
