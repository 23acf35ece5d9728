"""Structured logging setup.

Modules attach machine-readable fields with
`logger.info(msg, extra={"structured": {...}})`; the formatter here renders
them as a JSON suffix so they survive plain-text log shipping.
"""

import json
import logging
from typing import Any

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class StructuredFormatter(logging.Formatter):
    """Formatter that appends the `structured` extra as JSON."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        structured: dict[str, Any] | None = getattr(record, "structured", None)
        if structured:
            message = f"{message} {json.dumps(structured, default=str, sort_keys=True)}"
        return message


def configure_logging(level: str = "INFO") -> None:
    """Install a structured handler on the edu_cms logger tree (idempotent)."""
    root = logging.getLogger("edu_cms")
    root.setLevel(level.upper())

    if any(isinstance(h.formatter, StructuredFormatter) for h in root.handlers):
        return

    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter(LOG_FORMAT))
    root.addHandler(handler)
