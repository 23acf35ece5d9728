"""Input validation and slug helpers for articles.

Everything here is a pure function. Callers run these checks before any
lock is taken or any file is touched. HTML bodies are cleaned with bleach
against an allow-list; script-bearing elements are removed with their
content first.
"""

import html
import logging
import re
import time
from dataclasses import dataclass, field
from urllib.parse import urlparse

import bleach
from bs4 import BeautifulSoup
from bs4.builder import ParserRejectedMarkup

from edu_cms.app.models.articles import Document

logger = logging.getLogger(__name__)

MAX_CONTENT_BYTES = 5 * 1024 * 1024
CONTENT_SIZE_WARNING_RATIO = 0.8
MAX_TITLE_LENGTH = 300
MAX_SLUG_LENGTH = 100
MAX_EXCERPT_LENGTH = 500

_SLUG_RE = re.compile(r"^[a-z0-9-]+$")
_TAG_RE = re.compile(r"<[^>]+>")

ALLOWED_TAGS = frozenset(
    "b i em strong p br ul ol li a h1 h2 h3 h4 h5 h6 blockquote code pre img span div"
    " table thead tbody tr th td sub sup hr figure figcaption".split()
)
ALLOWED_ATTRIBUTES = (
    "href target rel src alt class id width height border cellpadding cellspacing"
    " title colspan rowspan".split()
)
ALLOWED_PROTOCOLS = ["http", "https", "mailto"]

# Removed together with their content
FORBIDDEN_TAGS = ("script", "iframe", "object", "embed", "form", "input", "button", "link", "style")

_URL_NOISE_RE = re.compile(r"[\x00-\x20]")
_SCRIPT_URL_RE = re.compile(r"\b(javascript|vbscript|data):", re.IGNORECASE)
_EVENT_HANDLER_RE = re.compile(r"\bon\w+\s*=", re.IGNORECASE)


@dataclass
class SanitizationResult:
    """Outcome of a single validation step."""

    valid: bool
    sanitized: str | None = None
    errors: list[str] = field(default_factory=list)


@dataclass
class ArticleInput:
    """Validated and normalized create/update input."""

    title: str
    body: str
    slug: str
    author_id: str
    excerpt: str | None = None
    source_url: str | None = None


@dataclass
class ArticleInputValidation:
    """Combined validation outcome."""

    valid: bool
    errors: list[str]
    sanitized: ArticleInput | None = None


def is_valid_slug(slug: str) -> bool:
    """Check slug shape; rejects anything that could escape the store directory."""
    if not slug or not isinstance(slug, str):
        return False
    if ".." in slug or "/" in slug or "\\" in slug:
        return False
    return len(slug) <= MAX_SLUG_LENGTH and bool(_SLUG_RE.match(slug))


def sanitize_slug(text: str) -> str:
    """Turn arbitrary text into a slug."""
    slug = re.sub(r"[^a-z0-9-]", "-", text.lower())
    slug = re.sub(r"-+", "-", slug).strip("-")
    return slug[:MAX_SLUG_LENGTH].strip("-")


def _base36(number: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    out = ""
    while True:
        number, rem = divmod(number, 36)
        out = digits[rem] + out
        if number == 0:
            return out


def generate_slug(title: str, now_ms: int | None = None) -> str:
    """Slug for a new article: sanitized title plus a base-36 timestamp."""
    stamp = _base36(now_ms if now_ms is not None else int(time.time() * 1000))
    base = sanitize_slug(title)[: MAX_SLUG_LENGTH - len(stamp) - 1].strip("-") or "article"
    return f"{base}-{stamp}"


def validate_content_size(content: str, max_bytes: int = MAX_CONTENT_BYTES) -> SanitizationResult:
    """Check the UTF-8 size of a body against the limit.

    Bodies past 80% of the limit are accepted with a logged warning.
    """
    if not content or not isinstance(content, str):
        return SanitizationResult(valid=False, errors=["Content is required"])

    size = len(content.encode("utf-8"))
    if size > max_bytes:
        return SanitizationResult(
            valid=False,
            errors=[f"Content size ({size} bytes) exceeds maximum of {max_bytes} bytes"],
        )
    if size > max_bytes * CONTENT_SIZE_WARNING_RATIO:
        logger.warning("Content is approaching size limit: %d of %d bytes", size, max_bytes)
    return SanitizationResult(valid=True, sanitized=content)


def _has_dangerous_patterns(body: str) -> bool:
    # Browsers decode entities and ignore control characters inside a scheme
    decoded = _URL_NOISE_RE.sub("", html.unescape(body))
    return bool(
        _SCRIPT_URL_RE.search(body)
        or _SCRIPT_URL_RE.search(decoded)
        or _EVENT_HANDLER_RE.search(body)
    )


def _drop_forbidden_elements(body: str) -> str:
    soup = BeautifulSoup(body, "html.parser")
    for tag in soup.find_all(list(FORBIDDEN_TAGS)):
        tag.decompose()
    return str(soup)


def sanitize_html_content(body: str, max_bytes: int = MAX_CONTENT_BYTES) -> SanitizationResult:
    """Clean a body down to the allowed tags, attributes and URL schemes.

    Violations (oversize input, script URLs even when entity-encoded, inline
    handlers, unparseable markup) are reported as errors; the body is
    rejected when any are found.
    """
    size = validate_content_size(body, max_bytes)
    if not body or not isinstance(body, str):
        return size

    errors = list(size.errors)
    if _has_dangerous_patterns(body):
        errors.append("Content contains potentially dangerous patterns")

    try:
        stripped = _drop_forbidden_elements(body)
    except ParserRejectedMarkup as e:
        errors.append(f"Content could not be parsed: {e}")
        return SanitizationResult(valid=False, errors=errors)

    sanitized = bleach.clean(
        stripped,
        tags=ALLOWED_TAGS,
        attributes=ALLOWED_ATTRIBUTES,
        protocols=ALLOWED_PROTOCOLS,
        strip=True,
        strip_comments=True,
    )

    if not sanitized.strip():
        errors.append("Content was completely removed by sanitization - may contain unsafe content")

    if errors:
        return SanitizationResult(valid=False, errors=errors)
    return SanitizationResult(valid=True, sanitized=sanitized)


def validate_title(title: str) -> SanitizationResult:
    """Title must be non-empty plain text of bounded length."""
    if not title or not isinstance(title, str):
        return SanitizationResult(valid=False, errors=["Title is required"])

    trimmed = title.strip()
    if not trimmed:
        return SanitizationResult(valid=False, errors=["Title cannot be empty"])

    errors: list[str] = []
    if len(trimmed) > MAX_TITLE_LENGTH:
        errors.append(f"Title must be {MAX_TITLE_LENGTH} characters or less")
    if _TAG_RE.search(trimmed):
        errors.append("Title should not contain HTML tags")

    if errors:
        return SanitizationResult(valid=False, errors=errors)
    return SanitizationResult(valid=True, sanitized=trimmed)


def validate_excerpt(excerpt: str | None) -> SanitizationResult:
    """Optional excerpt of bounded length."""
    if not excerpt:
        return SanitizationResult(valid=True)

    trimmed = excerpt.strip()
    if len(trimmed) > MAX_EXCERPT_LENGTH:
        return SanitizationResult(
            valid=False, errors=[f"Excerpt must be {MAX_EXCERPT_LENGTH} characters or less"]
        )
    return SanitizationResult(valid=True, sanitized=trimmed)


def validate_url(url: str | None) -> SanitizationResult:
    """Optional absolute http(s) URL."""
    if not url:
        return SanitizationResult(valid=True)

    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https"):
        return SanitizationResult(valid=False, errors=["URL must use HTTP or HTTPS protocol"])
    if not parsed.netloc:
        return SanitizationResult(valid=False, errors=["Invalid URL format"])
    return SanitizationResult(valid=True, sanitized=url)


def validate_author_id(author_id: str) -> SanitizationResult:
    """Author IDs must not contain path separators."""
    if not author_id or not isinstance(author_id, str):
        return SanitizationResult(valid=False, errors=["Author ID is required"])
    if ".." in author_id or "/" in author_id or "\\" in author_id:
        return SanitizationResult(valid=False, errors=["Invalid author ID format"])
    return SanitizationResult(valid=True, sanitized=author_id)


def validate_article_input(
    *,
    title: str,
    body: str,
    author_id: str,
    excerpt: str | None = None,
    slug: str | None = None,
    source_url: str | None = None,
    max_bytes: int = MAX_CONTENT_BYTES,
) -> ArticleInputValidation:
    """Run every input check and collect all errors.

    The slug falls back to the title and is sanitized when not already
    valid.
    """
    errors: list[str] = []

    title_result = validate_title(title)
    body_result = sanitize_html_content(body, max_bytes=max_bytes)
    excerpt_result = validate_excerpt(excerpt)
    author_result = validate_author_id(author_id)
    url_result = validate_url(source_url)

    for result in (title_result, body_result, excerpt_result, author_result, url_result):
        errors.extend(result.errors)

    if errors:
        return ArticleInputValidation(valid=False, errors=errors)

    candidate_slug = slug or title
    if not is_valid_slug(candidate_slug):
        candidate_slug = sanitize_slug(candidate_slug)

    return ArticleInputValidation(
        valid=True,
        errors=[],
        sanitized=ArticleInput(
            title=title_result.sanitized or title,
            body=body_result.sanitized or body,
            slug=candidate_slug,
            author_id=author_id,
            excerpt=excerpt_result.sanitized,
            source_url=url_result.sanitized,
        ),
    )


def validate_document(document: Document, max_bytes: int = MAX_CONTENT_BYTES) -> list[str]:
    """Schema checks applied by the repository to an assembled document.

    Returns:
        Error messages; empty when the document is valid
    """
    errors: list[str] = []

    if not document.id:
        errors.append("Missing required field: id")
    if not document.author_id:
        errors.append("Missing required field: author_id")
    if not 1 <= len(document.title) <= MAX_TITLE_LENGTH:
        errors.append(f"Title must be between 1 and {MAX_TITLE_LENGTH} characters")
    if not document.body:
        errors.append("Missing required field: body")
    else:
        errors.extend(validate_content_size(document.body, max_bytes).errors)
    if not is_valid_slug(document.slug):
        errors.append("Slug must contain only lowercase letters, numbers, and hyphens")
    if document.author_id and not validate_author_id(document.author_id).valid:
        errors.append("Invalid author_id format")

    return errors
