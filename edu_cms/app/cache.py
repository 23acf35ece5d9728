"""Cache backends - Redis and an always-miss fallback."""

import logging

import redis.asyncio as redis

from edu_cms.app.config import Settings
from edu_cms.app.db.repositories import CacheBackend

logger = logging.getLogger(__name__)


class RedisCacheBackend:
    """Redis-based CacheBackend using SET EX / GET / DEL."""

    def __init__(self, redis_client: redis.Redis) -> None:
        """Initialize backend.

        Args:
            redis_client: Async Redis client created with decode_responses=True
        """
        self._redis = redis_client

    async def get(self, key: str) -> str | None:
        """Get a cached value."""
        value = await self._redis.get(key)
        if value is None:
            return None
        return value if isinstance(value, str) else value.decode("utf-8")

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        """Store a value, with expiry when ttl_seconds is given."""
        if ttl_seconds:
            await self._redis.set(key, value, ex=ttl_seconds)
        else:
            await self._redis.set(key, value)

    async def delete(self, key: str) -> None:
        """Remove a key."""
        await self._redis.delete(key)

    async def delete_pattern(self, pattern: str) -> None:
        """Remove all keys matching a pattern (SCAN, not KEYS)."""
        async for key in self._redis.scan_iter(match=pattern):
            await self._redis.delete(key)

    async def close(self) -> None:
        """Close the underlying connection pool."""
        await self._redis.aclose()


class NullCacheBackend:
    """CacheBackend for environments without a cache: every read misses."""

    async def get(self, key: str) -> str | None:
        """Always a miss."""
        return None

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        """Discard the value."""

    async def delete(self, key: str) -> None:
        """Nothing to delete."""

    async def delete_pattern(self, pattern: str) -> None:
        """Nothing to delete."""


def create_cache_backend(settings: Settings) -> CacheBackend:
    """Pick a cache backend from settings.

    Returns:
        RedisCacheBackend when REDIS_URL is set, NullCacheBackend otherwise
    """
    if not settings.redis_url:
        logger.info("REDIS_URL not set; article cache disabled")
        return NullCacheBackend()

    client = redis.from_url(settings.redis_url, decode_responses=True)
    return RedisCacheBackend(client)
