"""Article domain models - documents, structure elements, snapshots."""

import math
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class DocumentStatus(str, Enum):
    """Lifecycle status of a document."""

    draft = "draft"
    published = "published"
    archived = "archived"


class ElementKind(str, Enum):
    """Kind of structural element extracted from a body."""

    heading = "heading"
    paragraph = "paragraph"
    link = "link"
    image = "image"
    list = "list"
    quote = "quote"
    code = "code"


class StructureElement(BaseModel):
    """Addressable structural element of a document body."""

    path: str  # Unique within the document
    type: ElementKind
    level: int | None = None
    text: str | None = None
    href: str | None = None
    src: str | None = None
    alt: str | None = None
    items: list[str] | None = None


class DocumentMetadata(BaseModel):
    """Derived metadata, recomputed on every write."""

    word_count: int = Field(..., ge=0)
    reading_time: int = Field(..., ge=0)  # minutes
    last_modified: datetime
    version: int = Field(..., ge=1)


class DocumentDraft(BaseModel):
    """Candidate document passed to save (no derived fields)."""

    id: str
    title: str
    slug: str
    body: str
    excerpt: str | None = None
    category: str | None = None
    tags: list[str] = Field(default_factory=list)
    source_url: str | None = None
    author_id: str
    published: bool = False
    status: DocumentStatus = DocumentStatus.draft
    created_at: datetime


class Document(DocumentDraft):
    """Canonical article as persisted at <root>/<slug>.json."""

    structure: list[StructureElement] = Field(default_factory=list)
    metadata: DocumentMetadata
    updated_at: datetime

    @property
    def version(self) -> int:
        """Current version number."""
        return self.metadata.version


class DocumentPatch(BaseModel):
    """Partial update. Only explicitly set fields are merged."""

    title: str | None = None
    body: str | None = None
    excerpt: str | None = None
    category: str | None = None
    tags: list[str] | None = None
    source_url: str | None = None
    published: bool | None = None
    status: DocumentStatus | None = None


class VersionSnapshot(BaseModel):
    """Immutable historical record of a document at one version."""

    model_config = {"frozen": True}

    version: int = Field(..., ge=1)
    created_at: datetime
    title: str
    body: str


class SearchFilters(BaseModel):
    """Listing filters. Unset fields do not filter."""

    author_id: str | None = None
    published: bool | None = None
    status: DocumentStatus | None = None
    category: str | None = None
    search: str | None = None


class Pagination(BaseModel):
    """Page request (1-based)."""

    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1)


class PageInfo(BaseModel):
    """Pagination block of a listing response."""

    page: int
    limit: int
    total: int
    total_pages: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "PageInfo":
        """Compute total_pages for a slice of `total` items."""
        total_pages = math.ceil(total / limit) if limit > 0 else 0
        return cls(page=page, limit=limit, total=total, total_pages=total_pages)


class DocumentPage(BaseModel):
    """A page of documents."""

    data: list[Document]
    pagination: PageInfo
