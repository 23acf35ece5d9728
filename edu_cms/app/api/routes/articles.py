"""File article endpoints - CRUD, structure paths, history and restore."""

import logging
import uuid
from datetime import datetime, timezone
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from edu_cms.app.api.auth import CurrentUser, Role, get_current_user
from edu_cms.app.articles.audit import AuditAction, log_article_action
from edu_cms.app.articles.repository import ArticleRepository
from edu_cms.app.articles.security import (
    MAX_CONTENT_BYTES,
    generate_slug,
    is_valid_slug,
    validate_article_input,
    validate_title,
    validate_url,
)
from edu_cms.app.models.articles import (
    Document,
    DocumentDraft,
    DocumentPatch,
    DocumentStatus,
    Pagination,
    SearchFilters,
)
from edu_cms.app.models.results import ErrorCode, OperationResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/file-articles", tags=["file-articles"])

STATUS_BY_CODE = {
    ErrorCode.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    ErrorCode.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorCode.RATE_LIMIT_EXCEEDED: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorCode.WRITE_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.UPDATE_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.DELETE_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class CreateArticleRequest(BaseModel):
    """Request body for POST /file-articles."""

    title: str = Field(..., min_length=1, max_length=300)
    body: str = Field(..., min_length=1)
    excerpt: str | None = Field(None, max_length=500)
    category: str | None = None
    tags: list[str] = Field(default_factory=list)
    source_url: str | None = None
    published: bool = False


class UpdateArticleRequest(BaseModel):
    """Request body for PUT /file-articles/{slug}. Omitted fields are kept."""

    title: str | None = Field(None, min_length=1, max_length=300)
    body: str | None = Field(None, min_length=1)
    excerpt: str | None = Field(None, max_length=500)
    category: str | None = None
    tags: list[str] | None = None
    source_url: str | None = None
    published: bool | None = None
    status: DocumentStatus | None = None


def get_repository(request: Request) -> ArticleRepository:
    """Repository built by the application lifespan."""
    return request.app.state.repository


def _max_content_bytes(request: Request) -> int:
    settings = getattr(request.app.state, "settings", None)
    return settings.max_content_bytes if settings is not None else MAX_CONTENT_BYTES


def error_response(code: ErrorCode, message: str) -> JSONResponse:
    """Error envelope with the status mapped from the error code."""
    return JSONResponse(
        status_code=STATUS_BY_CODE.get(code, status.HTTP_500_INTERNAL_SERVER_ERROR),
        content={"success": False, "errorCode": code.value, "message": message},
    )


def send_result(result: OperationResult, status_code: int = status.HTTP_200_OK) -> JSONResponse:
    """Translate an OperationResult into the response envelope."""
    if not result.success:
        return error_response(result.error.code, result.error.message)
    return JSONResponse(
        status_code=status_code,
        content={"success": True, "data": jsonable_encoder(result.data)},
    )


def _require_writer(user: CurrentUser) -> JSONResponse | None:
    if user.can_write:
        return None
    return error_response(ErrorCode.FORBIDDEN, "Insufficient permissions")


async def _load_owned(
    repository: ArticleRepository, slug: str, user: CurrentUser, action: str
) -> Document | JSONResponse:
    """Load a document the caller may modify, or the error response to send."""
    if not is_valid_slug(slug):
        return error_response(ErrorCode.VALIDATION_ERROR, "Invalid slug")

    existing = await repository.find_by_slug(slug)
    if existing is None:
        return error_response(ErrorCode.NOT_FOUND, "Article not found")

    if not user.owns(existing.author_id):
        log_article_action(
            AuditAction.PERMISSION_DENIED, user.id, slug, {"action": action, "reason": "not_owner"}
        )
        return error_response(ErrorCode.FORBIDDEN, "You can only modify your own articles")

    return existing


async def _load_visible(
    repository: ArticleRepository, slug: str, user: CurrentUser
) -> Document | JSONResponse:
    """Load a document the caller may read. Unpublished drafts of others look absent."""
    if not is_valid_slug(slug):
        return error_response(ErrorCode.VALIDATION_ERROR, "Invalid slug format")

    document = await repository.find_by_slug(slug)
    if document is None or not (document.published or user.owns(document.author_id)):
        return error_response(ErrorCode.NOT_FOUND, "Article not found")
    return document


@router.get("")
async def list_articles(
    repository: Annotated[ArticleRepository, Depends(get_repository)],
    user: Annotated[CurrentUser, Depends(get_current_user)],
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
    author_id: str | None = None,
    category: str | None = None,
    status_filter: Annotated[DocumentStatus | None, Query(alias="status")] = None,
    published: bool | None = None,
    search: Annotated[str | None, Query(max_length=100)] = None,
) -> JSONResponse:
    """List articles with filtering and pagination.

    Students only ever see published articles.
    """
    filters = SearchFilters(
        author_id=author_id,
        category=category,
        status=status_filter,
        published=True if user.role is Role.STUDENT else published,
        search=search,
    )

    result = await repository.find_all(filters, Pagination(page=page, limit=limit))

    logger.info(
        "Articles listed",
        extra={"structured": {"user_id": user.id, "count": len(result.data)}},
    )

    return JSONResponse(
        content={
            "success": True,
            "data": jsonable_encoder(result.data),
            "pagination": jsonable_encoder(result.pagination),
        }
    )


@router.get("/{slug}")
async def get_article(
    slug: str,
    repository: Annotated[ArticleRepository, Depends(get_repository)],
    user: Annotated[CurrentUser, Depends(get_current_user)],
) -> JSONResponse:
    """Get article by slug."""
    document = await _load_visible(repository, slug, user)
    if isinstance(document, JSONResponse):
        return document
    return send_result(OperationResult.ok(document))


@router.get("/{slug}/paths")
async def get_article_paths(
    slug: str,
    repository: Annotated[ArticleRepository, Depends(get_repository)],
    user: Annotated[CurrentUser, Depends(get_current_user)],
) -> JSONResponse:
    """Get the addressable structure elements of an article."""
    document = await _load_visible(repository, slug, user)
    if isinstance(document, JSONResponse):
        return document
    return send_result(OperationResult.ok(document.structure))


@router.get("/{slug}/history")
async def get_article_history(
    slug: str,
    repository: Annotated[ArticleRepository, Depends(get_repository)],
    user: Annotated[CurrentUser, Depends(get_current_user)],
) -> JSONResponse:
    """Get article version history, newest first."""
    denied = _require_writer(user)
    if denied is not None:
        return denied

    existing = await _load_owned(repository, slug, user, "HISTORY")
    if isinstance(existing, JSONResponse):
        return existing

    return send_result(await repository.get_history(slug))


@router.post("")
async def create_article(
    payload: CreateArticleRequest,
    request: Request,
    repository: Annotated[ArticleRepository, Depends(get_repository)],
    user: Annotated[CurrentUser, Depends(get_current_user)],
) -> JSONResponse:
    """Create a new article. The slug is derived from the title."""
    denied = _require_writer(user)
    if denied is not None:
        return denied

    validation = validate_article_input(
        title=payload.title,
        body=payload.body,
        author_id=user.id,
        excerpt=payload.excerpt,
        source_url=payload.source_url,
        max_bytes=_max_content_bytes(request),
    )
    if not validation.valid or validation.sanitized is None:
        log_article_action(AuditAction.VALIDATION_ERROR, user.id, "new", {"errors": validation.errors})
        return error_response(ErrorCode.VALIDATION_ERROR, "; ".join(validation.errors))

    clean = validation.sanitized
    slug = generate_slug(clean.title)

    if await repository.exists(slug):
        return error_response(ErrorCode.CONFLICT, "Article with this title already exists")

    draft = DocumentDraft(
        id=f"article_{uuid.uuid4().hex}",
        title=clean.title,
        slug=slug,
        body=clean.body,
        excerpt=clean.excerpt,
        category=payload.category,
        tags=payload.tags,
        source_url=clean.source_url,
        author_id=user.id,
        published=payload.published,
        status=DocumentStatus.published if payload.published else DocumentStatus.draft,
        created_at=datetime.now(timezone.utc),
    )

    result = await repository.save(draft, actor_id=user.id)
    return send_result(result, status_code=status.HTTP_201_CREATED)


@router.put("/{slug}")
async def update_article(
    slug: str,
    payload: UpdateArticleRequest,
    request: Request,
    repository: Annotated[ArticleRepository, Depends(get_repository)],
    user: Annotated[CurrentUser, Depends(get_current_user)],
) -> JSONResponse:
    """Update an article the caller owns (admins may update any)."""
    denied = _require_writer(user)
    if denied is not None:
        return denied

    existing = await _load_owned(repository, slug, user, "UPDATE")
    if isinstance(existing, JSONResponse):
        return existing

    changes: dict[str, Any] = payload.model_dump(exclude_unset=True)

    if payload.body is not None:
        validation = validate_article_input(
            title=payload.title or existing.title,
            body=payload.body,
            author_id=user.id,
            excerpt=payload.excerpt,
            source_url=payload.source_url,
            max_bytes=_max_content_bytes(request),
        )
        if not validation.valid or validation.sanitized is None:
            log_article_action(
                AuditAction.VALIDATION_ERROR, user.id, slug, {"errors": validation.errors}
            )
            return error_response(ErrorCode.VALIDATION_ERROR, "; ".join(validation.errors))
        changes["body"] = validation.sanitized.body
        if payload.title is not None:
            changes["title"] = validation.sanitized.title
    elif payload.title is not None:
        title_result = validate_title(payload.title)
        if not title_result.valid:
            return error_response(ErrorCode.VALIDATION_ERROR, "; ".join(title_result.errors))
        changes["title"] = title_result.sanitized

    if payload.body is None and payload.source_url:
        url_result = validate_url(payload.source_url)
        if not url_result.valid:
            return error_response(ErrorCode.VALIDATION_ERROR, "; ".join(url_result.errors))

    result = await repository.update(slug, DocumentPatch(**changes), actor_id=user.id)
    return send_result(result)


@router.delete("/{slug}")
async def delete_article(
    slug: str,
    repository: Annotated[ArticleRepository, Depends(get_repository)],
    user: Annotated[CurrentUser, Depends(get_current_user)],
) -> JSONResponse:
    """Delete an article and its history."""
    denied = _require_writer(user)
    if denied is not None:
        return denied

    existing = await _load_owned(repository, slug, user, "DELETE")
    if isinstance(existing, JSONResponse):
        return existing

    return send_result(await repository.delete(slug, actor_id=user.id))


@router.post("/{slug}/restore/{version}")
async def restore_article_version(
    slug: str,
    version: int,
    repository: Annotated[ArticleRepository, Depends(get_repository)],
    user: Annotated[CurrentUser, Depends(get_current_user)],
) -> JSONResponse:
    """Restore a previous version's title and body as a new version."""
    denied = _require_writer(user)
    if denied is not None:
        return denied

    existing = await _load_owned(repository, slug, user, "RESTORE")
    if isinstance(existing, JSONResponse):
        return existing

    if version < 1:
        return error_response(ErrorCode.VALIDATION_ERROR, "Invalid version number")

    return send_result(await repository.restore_version(slug, version, actor_id=user.id))
