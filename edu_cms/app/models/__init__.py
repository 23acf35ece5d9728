"""Models package - re-exports for convenience."""

from edu_cms.app.models.articles import (
    Document,
    DocumentDraft,
    DocumentMetadata,
    DocumentPage,
    DocumentPatch,
    DocumentStatus,
    ElementKind,
    PageInfo,
    Pagination,
    SearchFilters,
    StructureElement,
    VersionSnapshot,
)
from edu_cms.app.models.results import ErrorCode, OperationError, OperationResult
