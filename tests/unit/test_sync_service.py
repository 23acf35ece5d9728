"""Unit tests for the secondary-index sync service."""

from datetime import datetime, timedelta, timezone

import pytest

from edu_cms.app.db.inmemory import InMemorySearchIndex
from edu_cms.app.models.articles import Document, DocumentMetadata, ElementKind, StructureElement
from edu_cms.app.sync.jobs import BackgroundSyncWorker, SyncJobStatus, SyncJobType
from edu_cms.app.sync.service import (
    ArticleSyncService,
    content_hash,
    register_sync_handlers,
    to_index_entry,
)

NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _document(slug: str = "intro", version: int = 1, body: str = "<p>Hello</p>") -> Document:
    return Document(
        id=f"article_{slug}",
        title=f"Title {slug}",
        slug=slug,
        body=body,
        excerpt="Short intro",
        author_id="teacher-1",
        created_at=NOW,
        structure=[
            StructureElement(path="/paragraph/0", type=ElementKind.paragraph, text="Hello"),
            StructureElement(path="/list/0", type=ElementKind.list, items=["alpha", "beta"]),
        ],
        metadata=DocumentMetadata(word_count=1, reading_time=1, last_modified=NOW, version=version),
        updated_at=NOW + timedelta(minutes=version),
    )


def test_to_index_entry_projects_document() -> None:
    """Test the index row built from a document."""
    entry = to_index_entry(_document())

    assert entry.slug == "intro"
    assert entry.article_id == "article_intro"
    assert entry.status == "draft"
    assert entry.version == 1
    assert entry.content_hash == content_hash("<p>Hello</p>")
    assert "Short intro" in entry.search_text
    assert "alpha beta" in entry.search_text


@pytest.mark.asyncio
async def test_sync_and_verify() -> None:
    """Test a synced document verifies clean and drift is reported."""
    service = ArticleSyncService(InMemorySearchIndex())
    document = _document()

    missing = await service.verify_sync(document)
    assert not missing.synced

    await service.sync_document(document)
    assert (await service.verify_sync(document)).synced

    changed = _document(version=2, body="<p>Changed</p>")
    check = await service.verify_sync(changed)

    assert not check.synced
    assert any("Version mismatch" in d for d in check.differences)
    assert "Content hash mismatch" in check.differences


@pytest.mark.asyncio
async def test_remove_and_search() -> None:
    """Test removal and substring search."""
    index = InMemorySearchIndex()
    service = ArticleSyncService(index)
    await service.sync_document(_document("python-basics"))
    await service.sync_document(_document("rust-basics"))

    results = await service.search("python")
    assert [r.slug for r in results] == ["python-basics"]

    await service.remove_document("python-basics")
    assert await service.search("python") == []


@pytest.mark.asyncio
async def test_rebuild_counts_failures() -> None:
    """Test rebuild keeps going past individual failures."""

    class FlakyIndex(InMemorySearchIndex):
        async def upsert(self, entry):  # type: ignore[no-untyped-def]
            if entry.slug == "bad":
                raise RuntimeError("constraint violation")
            await super().upsert(entry)

    service = ArticleSyncService(FlakyIndex())

    result = await service.rebuild_index([_document("a"), _document("bad"), _document("b")])

    assert not result.success
    assert result.synced == 2
    assert result.errors == 1


@pytest.mark.asyncio
async def test_registered_handlers_drive_the_index() -> None:
    """Test UPSERT, DELETE and INDEX_REBUILD jobs through the worker."""
    index = InMemorySearchIndex()
    service = ArticleSyncService(index)
    worker = BackgroundSyncWorker()

    async def load_documents() -> list[Document]:
        return [_document("a"), _document("b")]

    register_sync_handlers(worker, service, load_documents)
    await worker.start()

    worker.schedule(SyncJobType.UPSERT, {"document": _document("c").model_dump(mode="json")})
    await worker.join()
    assert await index.get("c") is not None

    worker.schedule(SyncJobType.DELETE, {"slug": "c"})
    await worker.join()
    assert await index.get("c") is None

    rebuild_id = worker.schedule(SyncJobType.INDEX_REBUILD)
    await worker.join()
    await worker.stop()

    rebuild = worker.get_job(rebuild_id)
    assert rebuild is not None
    assert rebuild.status is SyncJobStatus.completed
    assert {row.slug for row in await index.all()} == {"a", "b"}
