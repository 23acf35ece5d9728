"""FastAPI application - file-based article store."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from edu_cms.app.api.routes.articles import router as articles_router
from edu_cms.app.api.routes.health import router as health_router
from edu_cms.app.api.routes.metrics import router as metrics_router
from edu_cms.app.articles.cache import DocumentCache
from edu_cms.app.articles.repository import ArticleRepository
from edu_cms.app.cache import create_cache_backend
from edu_cms.app.config import Settings, get_settings
from edu_cms.app.db.engine import create_async_engine_from_settings
from edu_cms.app.db.sql_repositories import SqlSearchIndex
from edu_cms.app.models.results import ErrorCode
from edu_cms.app.ratelimit import create_rate_limiter
from edu_cms.app.sync.jobs import BackgroundSyncWorker
from edu_cms.app.sync.service import ArticleSyncService, register_sync_handlers
from edu_cms.app.utils.logging import configure_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the repository and its collaborators; tear them down on exit."""
    settings: Settings = app.state.settings
    configure_logging(settings.log_level)

    cache_backend = create_cache_backend(settings)
    engine = create_async_engine_from_settings(settings)
    index = SqlSearchIndex(engine)
    try:
        await index.create_schema()
    except Exception as e:
        # The index is secondary; articles stay available without it
        logger.error("Search index schema setup failed: %s", e)

    worker = BackgroundSyncWorker(
        concurrency=settings.sync_workers, max_finished=settings.sync_retained_jobs
    )
    repository = ArticleRepository(
        settings.articles_dir,
        cache=DocumentCache(cache_backend, ttl_seconds=settings.cache_ttl_seconds),
        rate_limiter=create_rate_limiter(settings),
        sync=worker,
        write_limit=settings.write_rate_limit,
        write_window_ms=settings.write_rate_window_ms,
        max_content_bytes=settings.max_content_bytes,
    )
    await repository.init()

    sync_service = ArticleSyncService(index)
    register_sync_handlers(worker, sync_service, repository.list_documents)
    await worker.start()

    app.state.repository = repository
    app.state.sync_worker = worker
    app.state.sync_service = sync_service
    app.state.index_engine = engine

    try:
        yield
    finally:
        await worker.stop()
        await engine.dispose()
        close = getattr(cache_backend, "close", None)
        if close is not None:
            await close()


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report request validation failures in the article error envelope."""
    messages = [
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "success": False,
            "errorCode": ErrorCode.VALIDATION_ERROR.value,
            "message": "; ".join(messages),
        },
    )


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create the application.

    Args:
        settings: Settings override (tests); defaults to get_settings()
    """
    app = FastAPI(title="Edu CMS Article Store", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings or get_settings()

    app.add_exception_handler(RequestValidationError, validation_error_handler)

    # Register routes
    app.include_router(health_router, tags=["health"])
    app.include_router(metrics_router, tags=["metrics"])
    app.include_router(articles_router)

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint."""
        return {"message": "Edu CMS Article Store", "version": "0.1.0"}

    return app


app = create_app()
