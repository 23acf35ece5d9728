"""Minimal auth dependency.

Stub implementation that extracts user_id/role from a bearer token or uses
test defaults. Real JWT validation is out of scope for this service.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Annotated

from fastapi import Header, HTTPException, status


class Role(str, Enum):
    """User roles."""

    STUDENT = "STUDENT"
    TEACHER = "TEACHER"
    ADMIN = "ADMIN"


@dataclass(frozen=True)
class CurrentUser:
    """Authenticated caller."""

    id: str
    role: Role

    @property
    def is_admin(self) -> bool:
        """Whether the caller bypasses ownership checks."""
        return self.role is Role.ADMIN

    @property
    def can_write(self) -> bool:
        """Whether the caller may create or modify articles."""
        return self.role in (Role.TEACHER, Role.ADMIN)

    def owns(self, author_id: str) -> bool:
        """Owner-or-admin check."""
        return self.is_admin or author_id == self.id


DEFAULT_USER = CurrentUser(id="teacher-1", role=Role.TEACHER)


async def get_current_user(
    authorization: Annotated[str | None, Header()] = None,
) -> CurrentUser:
    """Extract the caller from the authorization header.

    Stub implementation that either:
    - Parses a simple "Bearer <user_id>:<role>" format for testing
    - Returns a test teacher if no header

    Args:
        authorization: Authorization header (e.g., "Bearer alice:TEACHER")

    Returns:
        CurrentUser with id and role

    Raises:
        HTTPException: If authorization is invalid
    """
    if not authorization:
        return DEFAULT_USER

    if not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = authorization[7:]  # Strip "Bearer "

    user_id, sep, role = token.partition(":")
    if not sep or not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token format (expected user_id:role)",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return CurrentUser(id=user_id, role=Role(role.upper()))
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Unknown role: {role}",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e
