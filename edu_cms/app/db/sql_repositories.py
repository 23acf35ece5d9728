"""SQL implementation of the SearchIndex interface."""

from datetime import datetime, timezone

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from edu_cms.app.db.models import ArticleIndexRow, Base
from edu_cms.app.db.repositories import IndexedArticle


def _as_utc(value: datetime) -> datetime:
    # SQLite drops tzinfo; stored values are always UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_record(row: ArticleIndexRow) -> IndexedArticle:
    return IndexedArticle(
        slug=row.slug,
        article_id=row.article_id,
        author_id=row.author_id,
        title=row.title,
        published=row.published,
        status=row.status,
        category=row.category,
        version=row.version,
        updated_at=_as_utc(row.updated_at),
        content_hash=row.content_hash,
        search_text=row.search_text,
    )


class SqlSearchIndex:
    """SQL implementation of SearchIndex (article_index table)."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine
        self._sessions = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def create_schema(self) -> None:
        """Create the index table if it does not exist."""
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def upsert(self, entry: IndexedArticle) -> None:
        """Insert or replace the row for entry.slug."""
        async with self._sessions() as session:
            await session.merge(
                ArticleIndexRow(
                    slug=entry.slug,
                    article_id=entry.article_id,
                    author_id=entry.author_id,
                    title=entry.title,
                    published=entry.published,
                    status=entry.status,
                    category=entry.category,
                    version=entry.version,
                    updated_at=_as_utc(entry.updated_at),
                    content_hash=entry.content_hash,
                    search_text=entry.search_text,
                )
            )
            await session.commit()

    async def remove(self, slug: str) -> None:
        """Remove a row."""
        async with self._sessions() as session:
            await session.execute(delete(ArticleIndexRow).where(ArticleIndexRow.slug == slug))
            await session.commit()

    async def get(self, slug: str) -> IndexedArticle | None:
        """Get a row by slug."""
        async with self._sessions() as session:
            row = await session.get(ArticleIndexRow, slug)
            return _to_record(row) if row is not None else None

    async def search(self, query: str, limit: int = 10) -> list[IndexedArticle]:
        """Case-insensitive substring search over title and search text."""
        needle = query.lower()
        stmt = (
            select(ArticleIndexRow)
            .where(
                or_(
                    func.lower(ArticleIndexRow.title).contains(needle, autoescape=True),
                    func.lower(ArticleIndexRow.search_text).contains(needle, autoescape=True),
                )
            )
            .order_by(ArticleIndexRow.updated_at.desc())
            .limit(limit)
        )
        async with self._sessions() as session:
            result = await session.execute(stmt)
            return [_to_record(row) for row in result.scalars()]

    async def all(self) -> list[IndexedArticle]:
        """All rows, newest first."""
        stmt = select(ArticleIndexRow).order_by(ArticleIndexRow.updated_at.desc())
        async with self._sessions() as session:
            result = await session.execute(stmt)
            return [_to_record(row) for row in result.scalars()]
