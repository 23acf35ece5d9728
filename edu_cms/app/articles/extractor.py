"""Content structure extractor - deterministic body parsing.

Pure functions, no I/O. Bodies are parsed with BeautifulSoup on the lxml
backend, which recovers from malformed markup instead of raising: stray
closing tags and unknown declarations are dropped, unclosed elements end
where the parser closes them.
"""

import html
import logging
import math
import re

from bs4 import BeautifulSoup, Tag
from bs4.builder import ParserRejectedMarkup

from edu_cms.app.models.articles import ElementKind, StructureElement

logger = logging.getLogger(__name__)

WORDS_PER_MINUTE = 200
PARAGRAPH_TEXT_LIMIT = 100
PARSER = "lxml"

_TAG_RE = re.compile(r"<[^>]+>")
_NON_SLUG_RE = re.compile(r"[^a-z0-9]+")

_HEADING_TAGS = {"h1": 1, "h2": 2, "h3": 3, "h4": 4, "h5": 5, "h6": 6}
_CAPTURE_TAGS = {
    "p": ElementKind.paragraph,
    "a": ElementKind.link,
    "img": ElementKind.image,
    "code": ElementKind.code,
    "blockquote": ElementKind.quote,
    "ul": ElementKind.list,
    "ol": ElementKind.list,
    **{tag: ElementKind.heading for tag in _HEADING_TAGS},
}


def _normalize(text: str) -> str:
    return " ".join(text.split())


def slugify_heading(text: str) -> str:
    """Lowercase, hyphen-separated form of a heading's text."""
    slug = _NON_SLUG_RE.sub("-", text.lower()).strip("-")
    return slug or "section"


def count_words(body: str) -> int:
    """Count whitespace-separated words with markup removed."""
    return len(html.unescape(_TAG_RE.sub(" ", body)).split())


def reading_time(word_count: int) -> int:
    """Estimated reading time in whole minutes."""
    return math.ceil(word_count / WORDS_PER_MINUTE)


def _to_element(tag: Tag) -> StructureElement | None:
    kind = _CAPTURE_TAGS[tag.name]
    text = _normalize(tag.get_text())

    if kind is ElementKind.heading:
        if not text:
            return None
        return StructureElement(
            path="", type=kind, level=_HEADING_TAGS[tag.name], text=text
        )
    if kind is ElementKind.paragraph:
        if not text:
            return None
        return StructureElement(path="", type=kind, text=text[:PARAGRAPH_TEXT_LIMIT])
    if kind is ElementKind.link:
        href = tag.get("href")
        if not href:
            return None
        return StructureElement(path="", type=kind, href=str(href), text=text)
    if kind is ElementKind.image:
        src = tag.get("src")
        if not src:
            return None
        return StructureElement(path="", type=kind, src=str(src), alt=str(tag.get("alt", "")))
    if kind is ElementKind.code:
        return StructureElement(path="", type=kind, text=tag.get_text().strip())
    if kind is ElementKind.quote:
        return StructureElement(path="", type=kind, text=text)

    items = [_normalize(li.get_text()) for li in tag.find_all("li")]
    items = [item for item in items if item]
    if not items:
        return None
    return StructureElement(path="", type=kind, items=items)


def _assign_paths(elements: list[StructureElement]) -> list[StructureElement]:
    counters: dict[ElementKind, int] = {}
    used: set[str] = set()
    result: list[StructureElement] = []

    for element in elements:
        if element.type is ElementKind.heading:
            base = f"/heading-{element.level}/{slugify_heading(element.text or '')}"
            path, n = base, 1
            while path in used:
                n += 1
                path = f"{base}-{n}"
            used.add(path)
        else:
            index = counters.get(element.type, 0)
            counters[element.type] = index + 1
            path = f"/{element.type.value}/{index}"
        result.append(element.model_copy(update={"path": path}))

    return result


def extract_structure(body: str) -> list[StructureElement]:
    """Parse a body into an ordered list of addressable elements.

    Elements appear in the order their opening tags occur in the body.
    Paths are stable across re-extraction of unchanged content:
    `/heading-<level>/<slugified text>` for headings (with `-<n>` appended
    to repeats) and `/<kind>/<occurrence index>` for everything else.

    Args:
        body: Document markup; may be malformed

    Returns:
        Elements with unique paths
    """
    if not body or not body.strip():
        return []

    try:
        soup = BeautifulSoup(body, PARSER)
    except ParserRejectedMarkup as e:
        logger.warning("Body markup rejected by parser, no structure extracted: %s", e)
        return []

    elements = [_to_element(tag) for tag in soup.find_all(list(_CAPTURE_TAGS))]

    return _assign_paths([element for element in elements if element is not None])
