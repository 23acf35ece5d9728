"""In-memory implementations of the collaborator interfaces."""

import fnmatch
from datetime import datetime, timedelta

from edu_cms.app.db.repositories import IndexedArticle, RateLimitResult


def _epoch_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


class InMemoryCacheBackend:
    """In-memory implementation of CacheBackend with lazy expiry."""

    def __init__(self) -> None:
        self._values: dict[str, tuple[str, datetime | None]] = {}

    async def get(self, key: str) -> str | None:
        """Get a cached value."""
        item = self._values.get(key)

        if item is None:
            return None

        value, expires_at = item

        # Check if expired
        if expires_at is not None and datetime.now() >= expires_at:
            del self._values[key]
            return None

        return value

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        """Store a value."""
        expires_at = datetime.now() + timedelta(seconds=ttl_seconds) if ttl_seconds else None
        self._values[key] = (value, expires_at)

    async def delete(self, key: str) -> None:
        """Remove a key."""
        self._values.pop(key, None)

    async def delete_pattern(self, pattern: str) -> None:
        """Remove all keys matching a glob pattern."""
        for key in [k for k in self._values if fnmatch.fnmatchcase(k, pattern)]:
            del self._values[key]

    def keys(self) -> list[str]:
        """Stored keys, including not-yet-collected expired ones."""
        return list(self._values)


class InMemoryRateLimiter:
    """In-memory implementation of RateLimiter using fixed windows."""

    def __init__(self) -> None:
        self._windows: dict[str, tuple[int, int]] = {}  # key -> (reset_at_ms, count)

    async def check_rate_limit(
        self,
        key: str,
        max_requests: int,
        window_ms: int,
        now: datetime | None = None,
    ) -> RateLimitResult:
        """Count one request against key."""
        now_ms = _epoch_ms(now or datetime.now())
        window = self._windows.get(key)

        if window is None or now_ms > window[0]:
            # First request or expired window
            reset_at = now_ms + window_ms
            self._windows[key] = (reset_at, 1)
            return RateLimitResult(allowed=True, remaining=max_requests - 1, reset_at=reset_at)

        reset_at, count = window

        if count >= max_requests:
            # Over quota, not counted
            return RateLimitResult(allowed=False, remaining=0, reset_at=reset_at)

        count += 1
        self._windows[key] = (reset_at, count)
        return RateLimitResult(allowed=True, remaining=max_requests - count, reset_at=reset_at)

    def clear(self, key: str) -> None:
        """Forget the window for a key."""
        self._windows.pop(key, None)


class InMemorySearchIndex:
    """In-memory implementation of SearchIndex."""

    def __init__(self) -> None:
        self._rows: dict[str, IndexedArticle] = {}

    async def upsert(self, entry: IndexedArticle) -> None:
        """Insert or replace a row."""
        self._rows[entry.slug] = entry

    async def remove(self, slug: str) -> None:
        """Remove a row."""
        self._rows.pop(slug, None)

    async def get(self, slug: str) -> IndexedArticle | None:
        """Get a row by slug."""
        return self._rows.get(slug)

    async def search(self, query: str, limit: int = 10) -> list[IndexedArticle]:
        """Substring search over title and search text."""
        needle = query.lower()
        matches = [
            row
            for row in self._rows.values()
            if needle in row.title.lower() or needle in row.search_text.lower()
        ]
        matches.sort(key=lambda r: r.updated_at, reverse=True)
        return matches[:limit]

    async def all(self) -> list[IndexedArticle]:
        """All rows, newest first."""
        return sorted(self._rows.values(), key=lambda r: r.updated_at, reverse=True)
