"""Note filenames and annotation image paths.

A note's filename is chosen once, the first time its item is synced, and
then stored in the sync state; these helpers only produce the initial
choice.
"""

from __future__ import annotations

import json
import math
import re
from typing import Any, NamedTuple

# Characters not allowed in filenames on Windows/macOS/Linux, plus the ones
# that break wiki links.
_UNSAFE_CHARS = re.compile(r'[\\/:*?"<>|#^\[\]]')
_CITEKEY = re.compile(r"Citation Key:\s*(.+)", re.I)
_YEAR = re.compile(r"(\d{4})")


def extract_citekey(data: dict[str, Any]) -> str:
    """Citation key stored in the item's ``extra`` field, or ``""``."""
    match = _CITEKEY.search(data.get("extra") or "")
    return match.group(1).strip() if match else ""


def extract_year(date: str | None) -> str:
    match = _YEAR.search(date or "")
    return match.group(1) if match else ""


def first_author_last_name(data: dict[str, Any]) -> str:
    creators = data.get("creators") or []
    if not creators:
        return ""
    first = creators[0]
    return first.get("lastName") or first.get("name") or ""


def _capitalize_hyphenated(name: str) -> str:
    return "-".join(seg[:1].upper() + seg[1:] for seg in name.split("-"))


def citekey_fallback(data: dict[str, Any]) -> str:
    """``Author_Year`` built from the first creator, or ``""``."""
    author = first_author_last_name(data)
    if not author:
        return ""
    year = extract_year(data.get("date"))
    capitalized = _capitalize_hyphenated(author)
    return f"{capitalized}_{year}" if year else capitalized


def generate_filename(
    key: str, data: dict[str, Any], template: str = "{{citekey}}"
) -> str:
    """Initial filename (without extension) for a new note.

    ``{{citekey}}`` and ``{{title}}`` have dedicated fallbacks; other
    templates substitute ``citekey``, ``title``, ``key``, ``year`` and
    ``author`` placeholders.
    """
    if template == "{{citekey}}":
        author = first_author_last_name(data)
        year = extract_year(data.get("date"))
        title = data.get("title") or "Untitled"
        prefix = " ".join(p for p in (author, year) if p)
        filename = (
            extract_citekey(data)
            or citekey_fallback(data)
            or (f"{prefix} - {title}" if prefix else title)
        )
    elif template == "{{title}}":
        filename = data.get("title") or key
    else:
        filename = (
            template.replace("{{citekey}}", extract_citekey(data) or key)
            .replace("{{title}}", data.get("title") or "")
            .replace("{{key}}", key)
            .replace("{{year}}", extract_year(data.get("date")))
            .replace("{{author}}", first_author_last_name(data))
        )

    filename = _UNSAFE_CHARS.sub("", filename).strip()
    return filename or key


def ensure_unique_filename(desired: str, taken: set[str], key: str) -> str:
    """Append the item key when *desired* is already used by another item."""
    if desired not in taken:
        return desired
    return f"{desired} ({key})"


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


class AnnotationPosition(NamedTuple):
    page_index: int
    x: int
    y: int


def parse_annotation_position(raw: str | None) -> AnnotationPosition | None:
    """Top-left corner of the first rectangle of an annotation position.

    Returns ``None`` for missing or malformed position JSON.
    """
    if not raw:
        return None
    try:
        pos = json.loads(raw)
    except ValueError:
        return None
    if not isinstance(pos, dict):
        return None
    page_index = pos.get("pageIndex")
    rects = pos.get("rects")
    if not isinstance(page_index, int) or page_index < 0:
        return None
    if not isinstance(rects, list) or not rects:
        return None
    first = rects[0]
    if not isinstance(first, list) or len(first) < 2:
        return None
    return AnnotationPosition(
        page_index, _round_half_up(first[0]), _round_half_up(first[1])
    )


def build_annotation_image_path(
    folder: str, citekey: str, position: AnnotationPosition
) -> str:
    """``<folder>/<citekey>/image-<page>-x<x>-y<y>.png`` with 1-based pages."""
    page = position.page_index + 1
    return f"{folder}/{citekey}/image-{page}-x{position.x}-y{position.y}.png"
