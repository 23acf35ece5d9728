"""Cache-aside layer for single documents and the full listing.

The filesystem is the source of truth. Every backend failure, including
an undecodable payload, is logged and reported as a miss; nothing here
ever raises into the repository.
"""

import logging

from pydantic import TypeAdapter, ValidationError

from edu_cms.app.db.repositories import CacheBackend
from edu_cms.app.models.articles import Document
from edu_cms.app.utils.metrics import metrics

logger = logging.getLogger(__name__)

DOCUMENT_KEY_PREFIX = "document:"
INDEX_KEY = "document-index"
DEFAULT_TTL_SECONDS = 60

_index_adapter = TypeAdapter(list[Document])


def document_key(slug: str) -> str:
    """Cache key for a single document."""
    return f"{DOCUMENT_KEY_PREFIX}{slug}"


class DocumentCache:
    """Document and index cache over a best-effort CacheBackend."""

    def __init__(self, backend: CacheBackend, ttl_seconds: int = DEFAULT_TTL_SECONDS) -> None:
        self._backend = backend
        self._ttl = ttl_seconds

    async def get_document(self, slug: str) -> Document | None:
        """Cached document, or None on miss or error."""
        raw = await self._get(document_key(slug), "document")
        if raw is None:
            return None
        try:
            return Document.model_validate_json(raw)
        except ValidationError as e:
            logger.warning("Discarding undecodable cache entry for %s: %s", slug, e)
            metrics.record_cache_lookup("document", "error")
            return None

    async def set_document(self, slug: str, document: Document, ttl_seconds: int | None = None) -> None:
        """Upsert a document entry."""
        await self._set(document_key(slug), document.model_dump_json(), ttl_seconds)

    async def invalidate_document(self, slug: str) -> None:
        """Drop a document entry."""
        await self._delete(document_key(slug))

    async def get_index(self) -> list[Document] | None:
        """Cached full listing, or None on miss or error."""
        raw = await self._get(INDEX_KEY, "index")
        if raw is None:
            return None
        try:
            return _index_adapter.validate_json(raw)
        except ValidationError as e:
            logger.warning("Discarding undecodable index cache entry: %s", e)
            metrics.record_cache_lookup("index", "error")
            return None

    async def set_index(self, documents: list[Document], ttl_seconds: int | None = None) -> None:
        """Store the full unfiltered listing."""
        await self._set(INDEX_KEY, _index_adapter.dump_json(documents).decode("utf-8"), ttl_seconds)

    async def invalidate_index(self) -> None:
        """Drop the listing entry."""
        await self._delete(INDEX_KEY)

    async def clear(self) -> None:
        """Drop every entry this layer owns."""
        await self._delete(INDEX_KEY)
        try:
            await self._backend.delete_pattern(f"{DOCUMENT_KEY_PREFIX}*")
        except Exception as e:
            logger.warning("Cache clear failed: %s", e)

    async def _get(self, key: str, kind: str) -> str | None:
        try:
            raw = await self._backend.get(key)
        except Exception as e:
            logger.warning("Cache get %s failed: %s", key, e)
            metrics.record_cache_lookup(kind, "error")
            return None

        metrics.record_cache_lookup(kind, "hit" if raw is not None else "miss")
        return raw

    async def _set(self, key: str, value: str, ttl_seconds: int | None) -> None:
        try:
            await self._backend.set(key, value, ttl_seconds or self._ttl)
        except Exception as e:
            logger.warning("Cache set %s failed: %s", key, e)

    async def _delete(self, key: str) -> None:
        try:
            await self._backend.delete(key)
        except Exception as e:
            logger.warning("Cache delete %s failed: %s", key, e)
