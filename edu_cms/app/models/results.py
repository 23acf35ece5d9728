"""Uniform operation result shape for repository calls."""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")


class ErrorCode(str, Enum):
    """Failure codes shared by the repository and the HTTP layer."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    FORBIDDEN = "FORBIDDEN"
    CONFLICT = "CONFLICT"
    WRITE_ERROR = "WRITE_ERROR"
    UPDATE_ERROR = "UPDATE_ERROR"
    DELETE_ERROR = "DELETE_ERROR"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"


@dataclass(frozen=True)
class OperationError:
    """Failure payload: a code plus a human-readable message."""

    code: ErrorCode
    message: str


@dataclass
class OperationResult(Generic[T]):
    """Either a success payload or an OperationError.

    Expected failures (validation, not-found, I/O) are returned in this
    shape instead of raised, so callers can map them uniformly.
    """

    success: bool
    data: T | None = None
    error: OperationError | None = None

    @classmethod
    def ok(cls, data: T | None = None) -> "OperationResult[T]":
        """Build a success result."""
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, code: ErrorCode, message: str) -> "OperationResult[T]":
        """Build a failure result."""
        return cls(success=False, error=OperationError(code=code, message=message))

    @property
    def code(self) -> ErrorCode | None:
        """Error code, or None on success."""
        return self.error.code if self.error else None
