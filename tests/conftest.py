"""Shared pytest fixtures for all test suites."""

import os
from collections.abc import AsyncGenerator, Callable, Iterator
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

from edu_cms.app.articles.cache import DocumentCache
from edu_cms.app.articles.repository import ArticleRepository
from edu_cms.app.config import Settings
from edu_cms.app.db.inmemory import InMemoryCacheBackend, InMemoryRateLimiter
from edu_cms.app.db.models import Base
from edu_cms.app.main import create_app
from edu_cms.app.models.articles import DocumentDraft

BASE_TIME = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class StepClock:
    """Deterministic UTC clock that advances one second per call."""

    def __init__(self, start: datetime = BASE_TIME) -> None:
        self._now = start

    def __call__(self) -> datetime:
        self._now += timedelta(seconds=1)
        return self._now


def _draft(slug: str = "intro-to-python", **overrides: object) -> DocumentDraft:
    fields: dict[str, object] = {
        "id": f"article_{slug}",
        "title": "Intro to Python",
        "slug": slug,
        "body": "<h1>Intro</h1><p>Python is a programming language.</p>",
        "author_id": "teacher-1",
        "created_at": BASE_TIME,
    }
    fields.update(overrides)
    return DocumentDraft(**fields)


@pytest.fixture
def make_draft() -> Callable[..., DocumentDraft]:
    """Factory for valid drafts: make_draft(slug, **overrides)."""
    return _draft


@pytest.fixture
def articles_root(tmp_path: Path) -> Path:
    """Empty articles directory."""
    return tmp_path / "articles"


@pytest.fixture
def cache_backend() -> InMemoryCacheBackend:
    """In-memory cache backend shared with the repository fixture."""
    return InMemoryCacheBackend()


@pytest.fixture
def rate_limiter() -> InMemoryRateLimiter:
    """In-memory rate limiter."""
    return InMemoryRateLimiter()


@pytest_asyncio.fixture
async def repository(
    articles_root: Path,
    cache_backend: InMemoryCacheBackend,
    rate_limiter: InMemoryRateLimiter,
) -> ArticleRepository:
    """Initialized repository with in-memory cache and a generous rate limit."""
    repo = ArticleRepository(
        articles_root,
        cache=DocumentCache(cache_backend),
        rate_limiter=rate_limiter,
        write_limit=1000,
        clock=StepClock(),
    )
    await repo.init()
    return repo


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings pointing at a temporary store and a file-backed SQLite index."""
    return Settings(
        articles_dir=str(tmp_path / "articles"),
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'index.db'}",
        redis_url=None,
        write_rate_limit=1000,
    )


@pytest.fixture
def client(settings: Settings) -> Iterator[TestClient]:
    """Test client with the lifespan running."""
    with TestClient(create_app(settings)) as test_client:
        yield test_client


@pytest_asyncio.fixture
async def sqlite_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite engine with the index schema created."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'index.db'}",
        poolclass=NullPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def postgres_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create async engine for PostgreSQL integration tests.

    Requires DATABASE_URL to be set to a real PostgreSQL connection string.
    Tests using this fixture should be marked with @pytest.mark.postgres.
    """
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        pytest.skip("DATABASE_URL not set - skipping postgres test")

    if not database_url.startswith(("postgresql://", "postgresql+asyncpg://")):
        pytest.skip(f"DATABASE_URL is not PostgreSQL: {database_url}")

    # Convert to async driver if needed
    if database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)

    engine = create_async_engine(database_url, poolclass=NullPool, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()
