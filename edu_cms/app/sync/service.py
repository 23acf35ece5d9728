"""Mirror of article metadata into the secondary search index."""

import hashlib
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from edu_cms.app.db.repositories import IndexedArticle, SearchIndex
from edu_cms.app.models.articles import Document
from edu_cms.app.sync.jobs import BackgroundSyncWorker, SyncJob, SyncJobType

logger = logging.getLogger(__name__)

SEARCH_TEXT_LIMIT = 2000


@dataclass
class RebuildResult:
    """Outcome of a full index rebuild."""

    success: bool
    synced: int
    errors: int


@dataclass
class SyncCheck:
    """Comparison of a document with its index row."""

    synced: bool
    differences: list[str] = field(default_factory=list)


def content_hash(body: str) -> str:
    """Stable hash of a body for change detection."""
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


def to_index_entry(document: Document) -> IndexedArticle:
    """Project a document onto an index row."""
    element_text = " ".join(
        " ".join(filter(None, [el.text, *(el.items or [])])) for el in document.structure
    )
    search_text = " ".join(filter(None, [document.excerpt, element_text]))

    return IndexedArticle(
        slug=document.slug,
        article_id=document.id,
        author_id=document.author_id,
        title=document.title,
        published=document.published,
        status=document.status.value,
        category=document.category,
        version=document.metadata.version,
        updated_at=document.updated_at,
        content_hash=content_hash(document.body),
        search_text=search_text[:SEARCH_TEXT_LIMIT],
    )


class ArticleSyncService:
    """Writes documents into a SearchIndex and checks they match."""

    def __init__(self, index: SearchIndex) -> None:
        self._index = index

    async def sync_document(self, document: Document) -> None:
        """Upsert one document's row."""
        await self._index.upsert(to_index_entry(document))
        logger.debug("Synced article metadata: %s", document.slug)

    async def remove_document(self, slug: str) -> None:
        """Drop one document's row."""
        await self._index.remove(slug)

    async def rebuild_index(self, documents: list[Document]) -> RebuildResult:
        """Upsert every document, counting failures instead of stopping."""
        synced = 0
        errors = 0

        for document in documents:
            try:
                await self.sync_document(document)
                synced += 1
            except Exception as e:
                logger.error("Failed to sync %s: %s", document.slug, e)
                errors += 1

        return RebuildResult(success=errors == 0, synced=synced, errors=errors)

    async def verify_sync(self, document: Document) -> SyncCheck:
        """Report differences between a document and its index row."""
        row = await self._index.get(document.slug)

        if row is None:
            return SyncCheck(synced=False, differences=["No metadata found in index"])

        differences: list[str] = []
        if row.version != document.metadata.version:
            differences.append(
                f"Version mismatch: index={row.version}, file={document.metadata.version}"
            )
        if row.updated_at != document.updated_at:
            differences.append(
                f"UpdatedAt mismatch: index={row.updated_at.isoformat()}, "
                f"file={document.updated_at.isoformat()}"
            )
        if row.published != document.published:
            differences.append(
                f"Published mismatch: index={row.published}, file={document.published}"
            )
        if row.content_hash != content_hash(document.body):
            differences.append("Content hash mismatch")

        return SyncCheck(synced=not differences, differences=differences)

    async def search(self, query: str, limit: int = 10) -> list[IndexedArticle]:
        """Search the index."""
        return await self._index.search(query, limit)


def register_sync_handlers(
    worker: BackgroundSyncWorker,
    service: ArticleSyncService,
    load_documents: Callable[[], Awaitable[list[Document]]],
) -> None:
    """Wire job types to the sync service.

    Args:
        worker: Worker pool receiving the handlers
        service: Sync service doing the index writes
        load_documents: Loader for INDEX_REBUILD (usually the repository listing)
    """

    async def handle_upsert(job: SyncJob) -> None:
        await service.sync_document(Document.model_validate(job.payload["document"]))

    async def handle_delete(job: SyncJob) -> None:
        await service.remove_document(job.payload["slug"])

    async def handle_rebuild(job: SyncJob) -> None:
        result = await service.rebuild_index(await load_documents())
        logger.info("Index rebuild: synced=%d errors=%d", result.synced, result.errors)
        if not result.success:
            raise RuntimeError(f"Index rebuild finished with {result.errors} errors")

    worker.register_handler(SyncJobType.UPSERT, handle_upsert)
    worker.register_handler(SyncJobType.DELETE, handle_delete)
    worker.register_handler(SyncJobType.INDEX_REBUILD, handle_rebuild)
