"""Tag normalisation and document header parsing.

Zotero stores tags with spaces (``machine learning``) while notes keep them
in their YAML front matter hyphenated (``machine-learning``).  Comparisons
always go through ``normalize_tag()`` so the two spellings are the same tag.

``parse_document_tags()`` reads the ``tags`` key of a note's front matter
with PyYAML and returns a typed ``TagParseResult``; callers never see a
partially matched header.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable

import yaml
from pydantic import BaseModel

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")
_FRONT_MATTER = re.compile(
    r"\A\ufeff?---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|\Z)", re.S
)


def normalize_tag(tag: str) -> str:
    """Canonical comparison form: lower case, hyphens as single spaces."""
    return _WHITESPACE.sub(" ", tag.replace("-", " ")).strip().lower()


def to_document_tag(tag: str) -> str:
    """Front matter spelling of a tag: whitespace runs become hyphens."""
    return _WHITESPACE.sub("-", tag.strip())


def to_remote_tag(tag: str) -> str:
    """Zotero spelling of a document tag: hyphens become spaces."""
    return tag.replace("-", " ")


def normalized_set(tags: Iterable[str]) -> set[str]:
    return {normalize_tag(t) for t in tags}


def tags_equal(a: Iterable[str], b: Iterable[str]) -> bool:
    """True when both collections name the same tags after normalisation."""
    return normalized_set(a) == normalized_set(b)


class TagParseResult(BaseModel):
    """Tags read from a document's front matter.

    Attributes:
        ok: False when a header exists but could not be parsed.
        tags: Tags in document order (empty when there are none).
        has_header: Whether the document starts with a front matter block.
        error: Parser message when ``ok`` is False.
    """

    ok: bool
    tags: tuple[str, ...] = ()
    has_header: bool = False
    error: str | None = None

    model_config = {"frozen": True}


def split_front_matter(content: str) -> tuple[str | None, str]:
    """Split *content* into ``(header_text, body)``.

    ``header_text`` is ``None`` when the document has no front matter.
    """
    match = _FRONT_MATTER.match(content)
    if not match:
        return None, content
    return match.group(1), content[match.end() :]


def parse_document_tags(content: str) -> TagParseResult:
    """Extract the ``tags`` list from a note's YAML front matter.

    Accepts a YAML list, a flow sequence, or a single comma/space separated
    string.  Tags are returned verbatim, so a Zotero tag such as ``#todo``
    compares equal to its front matter copy.
    """
    header, _ = split_front_matter(content)
    if header is None:
        return TagParseResult(ok=True)

    try:
        data = yaml.safe_load(header)
    except yaml.YAMLError as e:
        logger.warning("Unparseable front matter: %s", e)
        return TagParseResult(ok=False, has_header=True, error=str(e))

    if data is None:
        return TagParseResult(ok=True, has_header=True)
    if not isinstance(data, dict):
        return TagParseResult(
            ok=False,
            has_header=True,
            error=f"front matter is a {type(data).__name__}, not a mapping",
        )

    raw = data.get("tags")
    if raw is None:
        values: list[str] = []
    elif isinstance(raw, str):
        values = [v for v in re.split(r"[,\s]+", raw) if v]
    elif isinstance(raw, list):
        values = [str(v) for v in raw if v is not None and str(v).strip()]
    else:
        return TagParseResult(
            ok=False,
            has_header=True,
            error=f"tags is a {type(raw).__name__}, not a list",
        )

    tags = tuple(v.strip() for v in values)
    return TagParseResult(
        ok=True, tags=tuple(t for t in tags if t), has_header=True
    )
