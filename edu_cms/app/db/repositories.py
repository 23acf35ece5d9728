"""Capability interfaces for the article store's collaborators."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol


class CacheBackend(Protocol):
    """Best-effort key/value cache with TTLs.

    Implementations may raise on connection problems; callers treat any
    exception as a miss.
    """

    async def get(self, key: str) -> str | None:
        """Get a cached value.

        Args:
            key: Cache key

        Returns:
            Stored string or None on miss
        """
        ...

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        """Store a value.

        Args:
            key: Cache key
            value: Serialized value
            ttl_seconds: Optional time-to-live
        """
        ...

    async def delete(self, key: str) -> None:
        """Remove a key (missing keys are ignored)."""
        ...

    async def delete_pattern(self, pattern: str) -> None:
        """Remove all keys matching a glob-style pattern."""
        ...


@dataclass
class RateLimitResult:
    """Outcome of a rate limit check."""

    allowed: bool
    remaining: int
    reset_at: int  # epoch milliseconds


class RateLimiter(Protocol):
    """Window counter consulted before mutating operations."""

    async def check_rate_limit(
        self,
        key: str,
        max_requests: int,
        window_ms: int,
        now: datetime | None = None,
    ) -> RateLimitResult:
        """Count one request against `key`.

        Args:
            key: Rate limit key
            max_requests: Maximum requests per window
            window_ms: Window size in milliseconds
            now: Current time (for testing)

        Returns:
            RateLimitResult; allowed=False once the window is exhausted
        """
        ...


@dataclass
class IndexedArticle:
    """Row of the secondary search index."""

    slug: str
    article_id: str
    author_id: str
    title: str
    published: bool
    status: str
    category: str | None
    version: int
    updated_at: datetime
    content_hash: str
    search_text: str


class SearchIndex(Protocol):
    """Secondary, searchable mirror of article metadata."""

    async def upsert(self, entry: IndexedArticle) -> None:
        """Insert or replace the row for entry.slug."""
        ...

    async def remove(self, slug: str) -> None:
        """Remove a row (missing rows are ignored)."""
        ...

    async def get(self, slug: str) -> IndexedArticle | None:
        """Get a row by slug."""
        ...

    async def search(self, query: str, limit: int = 10) -> list[IndexedArticle]:
        """Case-insensitive substring search over title and text.

        Args:
            query: Search text
            limit: Maximum number of results

        Returns:
            Matching rows, most recently updated first
        """
        ...

    async def all(self) -> list[IndexedArticle]:
        """All rows, most recently updated first."""
        ...


class SyncScheduler(Protocol):
    """Fire-and-forget submission of background sync work."""

    def schedule(self, job_type: str, payload: dict[str, Any] | None = None) -> str:
        """Queue a job without waiting for it.

        Args:
            job_type: Registered job type
            payload: Job data

        Returns:
            Job ID
        """
        ...
