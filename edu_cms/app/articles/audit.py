"""Structured audit logging for article actions."""

import logging
from enum import Enum
from typing import Any

logger = logging.getLogger("edu_cms.audit")


class AuditAction(str, Enum):
    """Audited article actions."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    RESTORE = "RESTORE"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    RATE_LIMITED = "RATE_LIMITED"


_MESSAGES = {
    AuditAction.CREATE: "Article created",
    AuditAction.UPDATE: "Article updated",
    AuditAction.DELETE: "Article deleted",
    AuditAction.RESTORE: "Article restored",
    AuditAction.VALIDATION_ERROR: "Validation failed for",
    AuditAction.PERMISSION_DENIED: "Permission denied for",
    AuditAction.RATE_LIMITED: "Rate limit exceeded for",
}

_WARN_ACTIONS = {
    AuditAction.VALIDATION_ERROR,
    AuditAction.PERMISSION_DENIED,
    AuditAction.RATE_LIMITED,
}


def log_article_action(
    action: AuditAction,
    user_id: str | None,
    slug: str,
    metadata: dict[str, Any] | None = None,
) -> None:
    """Log an article action with structured data.

    Denials and validation failures go out at WARNING, the rest at INFO.
    """
    log_data: dict[str, Any] = {
        "action": action.value,
        "user_id": user_id,
        "resource": slug,
    }

    if metadata:
        log_data["metadata"] = metadata

    log_msg = f"{_MESSAGES[action]}: {slug}"

    if action in _WARN_ACTIONS:
        logger.warning(log_msg, extra={"structured": log_data})
    else:
        logger.info(log_msg, extra={"structured": log_data})
