"""Rate limiting utilities."""

import json
import math
from datetime import datetime

import redis.asyncio as redis

from edu_cms.app.config import Settings
from edu_cms.app.db.inmemory import InMemoryRateLimiter
from edu_cms.app.db.repositories import RateLimiter, RateLimitResult


def make_rate_limit_key(actor_id: str, bucket: str = "write") -> str:
    """Create rate limit key from actor and bucket.

    Args:
        actor_id: User performing the operation
        bucket: Bucket name (e.g., "write")

    Returns:
        Rate limit key
    """
    return f"{bucket}:{actor_id}"


class RedisRateLimiter:
    """Redis-based fixed-window rate limiter.

    Each key holds a JSON entry {"count", "resetAt"} with a TTL matching
    the remaining window, so an abandoned window expires on its own.
    """

    def __init__(self, redis_client: redis.Redis) -> None:
        """Initialize rate limiter.

        Args:
            redis_client: Async Redis client created with decode_responses=True
        """
        self._redis = redis_client

    async def check_rate_limit(
        self,
        key: str,
        max_requests: int,
        window_ms: int,
        now: datetime | None = None,
    ) -> RateLimitResult:
        """Count one request against key.

        Args:
            key: Rate limit key
            max_requests: Maximum requests per window
            window_ms: Window size in milliseconds
            now: Current timestamp (for testing)

        Returns:
            RateLimitResult
        """
        now_ms = int((now or datetime.now()).timestamp() * 1000)
        redis_key = f"ratelimit:{key}"

        raw = await self._redis.get(redis_key)
        entry = json.loads(raw) if raw else None

        if entry is None or now_ms > entry["resetAt"]:
            reset_at = now_ms + window_ms
            await self._redis.set(
                redis_key,
                json.dumps({"count": 1, "resetAt": reset_at}),
                ex=max(1, math.ceil(window_ms / 1000)),
            )
            return RateLimitResult(allowed=True, remaining=max_requests - 1, reset_at=reset_at)

        if entry["count"] >= max_requests:
            return RateLimitResult(allowed=False, remaining=0, reset_at=entry["resetAt"])

        entry["count"] += 1
        await self._redis.set(
            redis_key,
            json.dumps(entry),
            ex=max(1, math.ceil((entry["resetAt"] - now_ms) / 1000)),
        )
        return RateLimitResult(
            allowed=True, remaining=max_requests - entry["count"], reset_at=entry["resetAt"]
        )


def create_rate_limiter(settings: Settings) -> RateLimiter:
    """Pick a rate limiter from settings (Redis if configured)."""
    if settings.redis_url:
        return RedisRateLimiter(redis.from_url(settings.redis_url, decode_responses=True))
    return InMemoryRateLimiter()
