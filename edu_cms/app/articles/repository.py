"""File-based article repository.

Layout (owned exclusively by this class):
    <root>/<slug>.json                  current document
    <root>/history/<slug>/v<N>.json     immutable snapshot of version N

Mutations are serialized per slug by the lock manager; reads never lock
and always see a whole file thanks to atomic writes. Each mutation appends
its version snapshot before writing the canonical file. A crash between
those two steps leaves a snapshot with no matching current version; that
window is accepted rather than papered over with a second commit phase.

Every public operation returns an OperationResult (or a plain value for
reads) instead of raising for expected failures.
"""

import asyncio
import logging
import math
import time
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from edu_cms.app.articles.atomic import atomic_write
from edu_cms.app.articles.audit import AuditAction, log_article_action
from edu_cms.app.articles.cache import DocumentCache
from edu_cms.app.articles.extractor import count_words, extract_structure, reading_time
from edu_cms.app.articles.history import FileVersionStore
from edu_cms.app.articles.locks import SlugLockManager
from edu_cms.app.articles.security import MAX_CONTENT_BYTES, is_valid_slug, validate_document
from edu_cms.app.cache import NullCacheBackend
from edu_cms.app.db.repositories import RateLimiter, SyncScheduler
from edu_cms.app.models.articles import (
    Document,
    DocumentDraft,
    DocumentMetadata,
    DocumentPage,
    DocumentPatch,
    PageInfo,
    Pagination,
    SearchFilters,
    VersionSnapshot,
)
from edu_cms.app.models.results import ErrorCode, OperationResult
from edu_cms.app.ratelimit import make_rate_limit_key
from edu_cms.app.sync.jobs import NullSyncScheduler, SyncJobType
from edu_cms.app.utils.metrics import metrics

logger = logging.getLogger(__name__)

ANONYMOUS_ACTOR = "anonymous"

# Fields a patch may explicitly clear by sending null
_CLEARABLE_FIELDS = {"excerpt", "category", "source_url"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _matches(document: Document, filters: SearchFilters) -> bool:
    if filters.author_id is not None and document.author_id != filters.author_id:
        return False
    if filters.published is not None and document.published != filters.published:
        return False
    if filters.status is not None and document.status != filters.status:
        return False
    if filters.category is not None and document.category != filters.category:
        return False
    if filters.search:
        needle = filters.search.lower()
        if needle in document.title.lower() or needle in document.body.lower():
            return True
        return any(el.text and needle in el.text.lower() for el in document.structure)
    return True


def _has_filters(filters: SearchFilters | None) -> bool:
    return filters is not None and bool(filters.model_dump(exclude_none=True))


class ArticleRepository:
    """Create/read/update/delete/restore of file-based articles."""

    def __init__(
        self,
        root: str | Path,
        *,
        locks: SlugLockManager | None = None,
        cache: DocumentCache | None = None,
        history: FileVersionStore | None = None,
        rate_limiter: RateLimiter | None = None,
        sync: SyncScheduler | None = None,
        write_limit: int = 10,
        write_window_ms: int = 60_000,
        max_content_bytes: int = MAX_CONTENT_BYTES,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        """Initialize repository.

        Args:
            root: Articles directory
            locks: Per-slug lock manager (a private one by default)
            cache: Document cache (always-miss by default)
            history: Version store (<root>/history by default)
            rate_limiter: Consulted before mutations; None disables limiting
            sync: Background sync scheduler (discarding by default)
            write_limit: Mutations allowed per actor per window
            write_window_ms: Rate limit window in milliseconds
            max_content_bytes: Maximum body size
            clock: Source of timestamps (UTC)
        """
        self._root = Path(root)
        self._locks = locks or SlugLockManager()
        self._cache = cache or DocumentCache(NullCacheBackend())
        self._history = history or FileVersionStore(self._root / "history")
        self._rate_limiter = rate_limiter
        self._sync = sync or NullSyncScheduler()
        self._write_limit = write_limit
        self._write_window_ms = write_window_ms
        self._max_bytes = max_content_bytes
        self._clock = clock

    @property
    def root(self) -> Path:
        """Articles directory."""
        return self._root

    @property
    def locks(self) -> SlugLockManager:
        """Lock manager guarding mutations."""
        return self._locks

    async def init(self) -> None:
        """Create the articles and history directories."""
        await asyncio.to_thread(self._root.mkdir, parents=True, exist_ok=True)
        await asyncio.to_thread(self._history.directory.mkdir, parents=True, exist_ok=True)

    def document_path(self, slug: str) -> Path:
        """Canonical file of a slug."""
        return self._root / f"{slug}.json"

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def save(
        self, draft: DocumentDraft, *, actor_id: str | None = None
    ) -> OperationResult[Document]:
        """Create a document at version 1.

        Fails with CONFLICT if the slug already has a canonical file, so a
        racing create can never reset an existing version counter.
        """
        return await self._timed("save", self._save(draft, actor_id or draft.author_id))

    async def update(
        self, slug: str, patch: DocumentPatch, *, actor_id: str | None = None
    ) -> OperationResult[Document]:
        """Merge a patch over the current document as a new version."""
        return await self._timed("update", self._update(slug, patch, actor_id))

    async def delete(self, slug: str, *, actor_id: str | None = None) -> OperationResult[None]:
        """Remove a document and its whole history."""
        return await self._timed("delete", self._delete(slug, actor_id))

    async def restore_version(
        self, slug: str, version: int, *, actor_id: str | None = None
    ) -> OperationResult[Document]:
        """Write a snapshot's title and body back as a new version.

        The version counter keeps increasing: restoring v1 of a document at
        v3 produces v4.
        """
        if not is_valid_slug(slug):
            return OperationResult.fail(ErrorCode.VALIDATION_ERROR, "Invalid slug")

        snapshot = await self._history.get(slug, version)
        if snapshot is None:
            return OperationResult.fail(ErrorCode.NOT_FOUND, "Version not found")

        result = await self.update(
            slug, DocumentPatch(title=snapshot.title, body=snapshot.body), actor_id=actor_id
        )
        if result.success and result.data is not None:
            log_article_action(
                AuditAction.RESTORE,
                actor_id,
                slug,
                {"restored_version": version, "new_version": result.data.version},
            )
        return result

    async def _save(self, draft: DocumentDraft, actor_id: str) -> OperationResult[Document]:
        slug = draft.slug
        if not is_valid_slug(slug):
            log_article_action(AuditAction.VALIDATION_ERROR, actor_id, slug, {"errors": ["slug"]})
            return OperationResult.fail(
                ErrorCode.VALIDATION_ERROR,
                "Slug must contain only lowercase letters, numbers, and hyphens",
            )

        limited = await self._check_rate_limit(actor_id, slug)
        if limited is not None:
            return limited

        async def write() -> OperationResult[Document]:
            if await asyncio.to_thread(self.document_path(slug).exists):
                return OperationResult.fail(ErrorCode.CONFLICT, f"Article {slug} already exists")

            now = self._clock()
            word_count = count_words(draft.body)
            document = Document(
                **draft.model_dump(),
                structure=extract_structure(draft.body),
                metadata=DocumentMetadata(
                    word_count=word_count,
                    reading_time=reading_time(word_count),
                    last_modified=now,
                    version=1,
                ),
                updated_at=now,
            )

            errors = validate_document(document, self._max_bytes)
            if errors:
                log_article_action(AuditAction.VALIDATION_ERROR, actor_id, slug, {"errors": errors})
                return OperationResult.fail(ErrorCode.VALIDATION_ERROR, "; ".join(errors))

            try:
                await self._persist(document)
            except (OSError, ValueError) as e:
                logger.error("Write of %s failed: %s", slug, e)
                return OperationResult.fail(ErrorCode.WRITE_ERROR, str(e))

            await self._cache.invalidate_index()
            await self._cache.set_document(slug, document)
            log_article_action(
                AuditAction.CREATE, actor_id, slug, {"title": document.title, "version": 1}
            )
            return OperationResult.ok(document)

        return await self._run_locked(slug, write, SyncJobType.UPSERT)

    async def _update(
        self, slug: str, patch: DocumentPatch, actor_id: str | None
    ) -> OperationResult[Document]:
        if not is_valid_slug(slug):
            return OperationResult.fail(ErrorCode.VALIDATION_ERROR, "Invalid slug")

        limited = await self._check_rate_limit(actor_id or ANONYMOUS_ACTOR, slug)
        if limited is not None:
            return limited

        async def write() -> OperationResult[Document]:
            # Under the lock the file is authoritative; the cache may be stale
            try:
                existing = await asyncio.to_thread(self._read_document, slug)
            except (OSError, ValueError) as e:
                return OperationResult.fail(ErrorCode.UPDATE_ERROR, str(e))
            if existing is None:
                return OperationResult.fail(ErrorCode.NOT_FOUND, "Article not found")

            changes = {
                key: value
                for key, value in patch.model_dump(exclude_unset=True).items()
                if value is not None or key in _CLEARABLE_FIELDS
            }

            now = self._clock()
            if "body" in changes:
                structure = extract_structure(changes["body"])
                word_count = count_words(changes["body"])
            else:
                structure = existing.structure
                word_count = existing.metadata.word_count

            version = existing.metadata.version + 1
            document = existing.model_copy(
                update={
                    **changes,
                    "structure": structure,
                    "metadata": DocumentMetadata(
                        word_count=word_count,
                        reading_time=reading_time(word_count),
                        last_modified=now,
                        version=version,
                    ),
                    "updated_at": now,
                }
            )

            errors = validate_document(document, self._max_bytes)
            if errors:
                log_article_action(AuditAction.VALIDATION_ERROR, actor_id, slug, {"errors": errors})
                return OperationResult.fail(ErrorCode.VALIDATION_ERROR, "; ".join(errors))

            try:
                await self._persist(document)
            except (OSError, ValueError) as e:
                logger.error("Update of %s failed: %s", slug, e)
                return OperationResult.fail(ErrorCode.UPDATE_ERROR, str(e))

            await self._cache.invalidate_index()
            await self._cache.set_document(slug, document)
            log_article_action(
                AuditAction.UPDATE,
                actor_id,
                slug,
                {"old_version": existing.metadata.version, "new_version": version},
            )
            return OperationResult.ok(document)

        return await self._run_locked(slug, write, SyncJobType.UPSERT)

    async def _delete(self, slug: str, actor_id: str | None) -> OperationResult[None]:
        if not is_valid_slug(slug):
            return OperationResult.fail(ErrorCode.VALIDATION_ERROR, "Invalid slug")

        limited = await self._check_rate_limit(actor_id or ANONYMOUS_ACTOR, slug)
        if limited is not None:
            return limited

        async def remove() -> OperationResult[None]:
            path = self.document_path(slug)
            if not await asyncio.to_thread(path.exists):
                return OperationResult.fail(ErrorCode.NOT_FOUND, "Article not found")

            try:
                await asyncio.to_thread(path.unlink)
                await self._history.delete_all(slug)
            except OSError as e:
                logger.error("Delete of %s failed: %s", slug, e)
                return OperationResult.fail(ErrorCode.DELETE_ERROR, str(e))

            await self._cache.invalidate_index()
            await self._cache.invalidate_document(slug)
            log_article_action(AuditAction.DELETE, actor_id, slug)
            return OperationResult.ok(None)

        return await self._run_locked(slug, remove, SyncJobType.DELETE)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def exists(self, slug: str) -> bool:
        """Lock-free check for a canonical file."""
        if not is_valid_slug(slug):
            return False
        return await asyncio.to_thread(self.document_path(slug).is_file)

    async def find_by_slug(self, slug: str) -> Document | None:
        """Cache-aside read of one document. None if absent or unreadable."""
        if not is_valid_slug(slug):
            return None

        cached = await self._cache.get_document(slug)
        if cached is not None:
            return cached

        try:
            document = await asyncio.to_thread(self._read_document, slug)
        except (OSError, ValueError) as e:
            logger.warning("Unreadable article %s: %s", slug, e)
            return None

        if document is not None:
            await self._cache.set_document(slug, document)
        return document

    async def find_by_id(self, article_id: str) -> Document | None:
        """Linear scan by internal ID."""
        page = await self.find_all()
        return next((doc for doc in page.data if doc.id == article_id), None)

    async def find_by_author(self, author_id: str) -> list[Document]:
        """All documents of one author, newest first."""
        page = await self.find_all(SearchFilters(author_id=author_id))
        return page.data

    async def find_all(
        self,
        filters: SearchFilters | None = None,
        pagination: Pagination | None = None,
    ) -> DocumentPage:
        """List documents, most recently updated first.

        Only the unfiltered, unpaginated listing is served from and stored
        in the index cache. Filtered or paginated calls always start from
        the full on-disk set.
        """
        cacheable = not _has_filters(filters) and pagination is None

        if cacheable:
            cached = await self._cache.get_index()
            if cached is not None:
                return DocumentPage(
                    data=cached, pagination=PageInfo.build(1, len(cached), len(cached))
                )

        documents = await asyncio.to_thread(self._read_all)

        if filters is not None and _has_filters(filters):
            documents = [doc for doc in documents if _matches(doc, filters)]

        documents.sort(key=lambda doc: doc.updated_at, reverse=True)

        if cacheable:
            await self._cache.set_index(documents)

        total = len(documents)
        page = pagination.page if pagination else 1
        limit = pagination.limit if pagination else total
        start = (page - 1) * limit

        return DocumentPage(
            data=documents[start : start + limit],
            pagination=PageInfo.build(page, limit, total),
        )

    async def get_history(self, slug: str) -> OperationResult[list[VersionSnapshot]]:
        """Snapshots newest first; empty for unknown slugs."""
        if not is_valid_slug(slug):
            return OperationResult.ok([])
        return OperationResult.ok(await self._history.list(slug))

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def clear_cache(self) -> None:
        """Drop every cached document and the listing."""
        await self._cache.clear()

    def rebuild_search_index(self) -> str:
        """Schedule a full secondary-index rebuild. Returns the job ID."""
        return self._sync.schedule(SyncJobType.INDEX_REBUILD.value, {})

    async def list_documents(self) -> list[Document]:
        """Every document on disk, bypassing the cache."""
        documents = await asyncio.to_thread(self._read_all)
        documents.sort(key=lambda doc: doc.updated_at, reverse=True)
        return documents

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run_locked(
        self,
        slug: str,
        operation: Callable[[], Awaitable[OperationResult]],
        job_type: SyncJobType,
    ) -> OperationResult:
        """Run `operation` holding the slug lock, then schedule sync.

        Once the lock is granted the operation runs to completion even if
        the caller is cancelled; the lock is released when it finishes.
        """
        release = await self._locks.acquire(slug)

        async def critical() -> OperationResult:
            try:
                result = await operation()
            finally:
                release()
            if result.success:
                self._schedule_sync(slug, job_type, result.data)
            return result

        return await asyncio.shield(asyncio.ensure_future(critical()))

    def _schedule_sync(self, slug: str, job_type: SyncJobType, data: object) -> None:
        if job_type is SyncJobType.UPSERT and isinstance(data, Document):
            payload = {"document": data.model_dump(mode="json")}
        else:
            payload = {"slug": slug}

        try:
            self._sync.schedule(job_type.value, payload)
        except Exception as e:
            logger.error("Could not schedule %s sync for %s: %s", job_type.value, slug, e)

    async def _check_rate_limit(self, actor_id: str, slug: str) -> OperationResult | None:
        if self._rate_limiter is None:
            return None

        try:
            result = await self._rate_limiter.check_rate_limit(
                make_rate_limit_key(actor_id), self._write_limit, self._write_window_ms
            )
        except Exception as e:
            # Limiter store unavailable: allow the write
            logger.warning("Rate limiter unavailable: %s", e)
            return None

        if result.allowed:
            return None

        retry_in = max(1, math.ceil((result.reset_at - time.time() * 1000) / 1000))
        log_article_action(AuditAction.RATE_LIMITED, actor_id, slug)
        return OperationResult.fail(
            ErrorCode.RATE_LIMIT_EXCEEDED,
            f"Too many requests. Try again in {retry_in} seconds",
        )

    async def _persist(self, document: Document) -> None:
        snapshot = VersionSnapshot(
            version=document.metadata.version,
            created_at=document.updated_at,
            title=document.title,
            body=document.body,
        )
        await self._history.append(document.slug, snapshot)
        try:
            await asyncio.to_thread(
                atomic_write,
                self.document_path(document.slug),
                document.model_dump_json(indent=2).encode("utf-8"),
            )
        except Exception:
            # Snapshot and canonical file succeed or fail together
            try:
                await self._history.discard(document.slug, snapshot.version)
            except OSError as e:
                logger.warning(
                    "Orphan snapshot v%d of %s left behind: %s",
                    snapshot.version,
                    document.slug,
                    e,
                )
            raise

    def _read_document(self, slug: str) -> Document | None:
        try:
            raw = self.document_path(slug).read_bytes()
        except FileNotFoundError:
            return None
        return Document.model_validate_json(raw)

    def _read_all(self) -> list[Document]:
        if not self._root.is_dir():
            return []

        documents: list[Document] = []
        for path in self._root.glob("*.json"):
            try:
                documents.append(Document.model_validate_json(path.read_bytes()))
            except (OSError, ValidationError) as e:
                logger.warning("Skipping invalid article file %s: %s", path.name, e)
        return documents

    async def _timed(
        self, operation: str, call: Awaitable[OperationResult]
    ) -> OperationResult:
        started = time.perf_counter()
        result = await call
        outcome = "success" if result.success else result.error.code.value.lower()
        metrics.record_operation(operation, outcome, (time.perf_counter() - started) * 1000)
        return result
