"""Unit tests for the document cache layer."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from edu_cms.app.articles.cache import INDEX_KEY, DocumentCache, document_key
from edu_cms.app.cache import NullCacheBackend
from edu_cms.app.db.inmemory import InMemoryCacheBackend
from edu_cms.app.models.articles import Document, DocumentMetadata

NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _document(slug: str = "intro") -> Document:
    return Document(
        id=f"article_{slug}",
        title="Intro",
        slug=slug,
        body="<p>Hello</p>",
        author_id="teacher-1",
        created_at=NOW,
        metadata=DocumentMetadata(word_count=1, reading_time=1, last_modified=NOW, version=1),
        updated_at=NOW,
    )


@pytest.mark.asyncio
async def test_document_round_trip_uses_expected_key() -> None:
    """Test document entries live under document:<slug>."""
    backend = InMemoryCacheBackend()
    cache = DocumentCache(backend)

    await cache.set_document("intro", _document())

    assert backend.keys() == [document_key("intro")]
    assert document_key("intro") == "document:intro"
    assert await cache.get_document("intro") == _document()


@pytest.mark.asyncio
async def test_index_round_trip_and_invalidation() -> None:
    """Test the listing entry."""
    backend = InMemoryCacheBackend()
    cache = DocumentCache(backend)

    await cache.set_index([_document("a"), _document("b")])
    cached = await cache.get_index()

    assert cached is not None
    assert [d.slug for d in cached] == ["a", "b"]
    assert INDEX_KEY in backend.keys()

    await cache.invalidate_index()
    assert await cache.get_index() is None


@pytest.mark.asyncio
async def test_clear_drops_documents_and_index() -> None:
    """Test clear removes everything the layer owns."""
    backend = InMemoryCacheBackend()
    cache = DocumentCache(backend)
    await cache.set_document("a", _document("a"))
    await cache.set_index([_document("a")])
    await backend.set("unrelated", "keep")

    await cache.clear()

    assert backend.keys() == ["unrelated"]


@pytest.mark.asyncio
async def test_backend_errors_are_treated_as_misses() -> None:
    """Test that a failing backend never raises into callers."""
    backend = AsyncMock()
    backend.get.side_effect = ConnectionError("redis down")
    backend.set.side_effect = ConnectionError("redis down")
    backend.delete.side_effect = ConnectionError("redis down")
    backend.delete_pattern.side_effect = ConnectionError("redis down")
    cache = DocumentCache(backend)

    assert await cache.get_document("intro") is None
    assert await cache.get_index() is None
    await cache.set_document("intro", _document())
    await cache.set_index([_document()])
    await cache.invalidate_document("intro")
    await cache.invalidate_index()
    await cache.clear()


@pytest.mark.asyncio
async def test_undecodable_entries_are_misses() -> None:
    """Test corrupt cached payloads are ignored."""
    backend = InMemoryCacheBackend()
    await backend.set(document_key("intro"), "not json")
    await backend.set(INDEX_KEY, '[{"slug": 1}]')
    cache = DocumentCache(backend)

    assert await cache.get_document("intro") is None
    assert await cache.get_index() is None


@pytest.mark.asyncio
async def test_ttl_is_passed_to_backend() -> None:
    """Test the configured TTL reaches the backend."""
    backend = AsyncMock()
    cache = DocumentCache(backend, ttl_seconds=30)

    await cache.set_document("intro", _document())

    backend.set.assert_awaited_once()
    assert backend.set.await_args.args[2] == 30


@pytest.mark.asyncio
async def test_null_backend_always_misses() -> None:
    """Test the disabled-cache backend."""
    cache = DocumentCache(NullCacheBackend())

    await cache.set_document("intro", _document())

    assert await cache.get_document("intro") is None
