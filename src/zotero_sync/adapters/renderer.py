"""Render Zotero items as Markdown literature notes.

``NoteRenderer`` produces the built-in layout:

0. YAML front matter (note type, citekey, authors, tags, ...)
1. The user's Comments zone (left empty; filled in from the old note)
2. An info callout with links, bibliography, collections and reading time
3. The abstract
4. A citations query block
5. Long Zotero child notes
6. Reading notes built from PDF annotations, grouped by highlight colour

``TemplateRenderer`` substitutes ``{{placeholder}}`` tokens in a user
template with the same building blocks.

Renderers are pure: the sync timestamp comes from ``RenderContext``.
"""

from __future__ import annotations

import logging
import math
import re
from datetime import datetime
from pathlib import Path
from typing import Any, NamedTuple, Sequence

import yaml

from ..config import Config
from ..converters import html_to_markdown, strip_html
from ..filenames import extract_year
from ..sync.assets import IMAGE_PLACEHOLDER
from ..sync.comments import COMMENTS_SECTION
from ..sync.models import RemoteRecord, RenderContext
from ..sync.tags import to_document_tag

logger = logging.getLogger(__name__)

READING_SPEED = 220  # words per minute
WORDS_PER_PAGE = 360
ABSTRACT_KEYWORDS = ("Objectives", "Background", "Methodology", "Results", "Conclusion")

_YAML_SPECIAL = re.compile(r"[:#\[\]{}&*!|>'\"%@`,\n]")
_YAML_RESOLVER = yaml.resolver.Resolver()
_YAML_STR = "tag:yaml.org,2002:str"
_PAGE_RANGE = re.compile(r"(\d+)\s*[-–]\s*(\d+)")
_LEADING_INT = re.compile(r"\s*(\d+)")
_FIRST_HEADING = re.compile(r"^(#+)\s*(.*)", re.M)
_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")


class ColorMapEntry(NamedTuple):
    color: str
    heading: str


DEFAULT_COLOR_MAP: tuple[ColorMapEntry, ...] = (
    ColorMapEntry("#ffd400", "\U0001f3af Key takeaways"),
    ColorMapEntry("#aaaaaa", "\u2705 Context and target population"),
    ColorMapEntry("#5fb236", "\U0001f4cc General methods and results"),
    ColorMapEntry("#ff6666", "\U0001f6a7 Limitations"),
    ColorMapEntry("#2ea8e5", "\U0001fa7a Diagnostiek"),
    ColorMapEntry("#f19837", "\U0001f48a Behandeling"),
)


def yaml_safe(value: str) -> str:
    """Quote *value* when YAML would not read it back as the same string.

    Covers indicator characters and scalars PyYAML resolves to another
    type (``null``, ``yes``, ``2024``).
    """
    if not value:
        return '""'
    if (
        _YAML_SPECIAL.search(value)
        or value.strip() != value
        or value[0] in "-?"
        or _YAML_RESOLVER.resolve(yaml.ScalarNode, value, (True, False))
        != _YAML_STR
    ):
        escaped = (
            value.replace("\\", "\\\\")
            .replace('"', '\\"')
            .replace("\n", "\\n")
        )
        return f'"{escaped}"'
    return value


def format_date(value: str | None) -> str:
    """``YYYY-MM-DD`` for ISO dates, else the year, else ``""``."""
    if not value:
        return ""
    try:
        return datetime.fromisoformat(value.strip()).date().isoformat()
    except ValueError:
        return extract_year(value)


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _word_count(text: str) -> int:
    return len(text.split())


def _creator_link(creator: dict[str, Any]) -> str:
    last, first, name = (
        creator.get("lastName"),
        creator.get("firstName"),
        creator.get("name"),
    )
    if last and first:
        return f"[[{last}, {first}]]"
    if name:
        return f"[[{name}]]"
    if last:
        return f"[[{last}]]"
    return "[[Unknown Author]]"


def _creator_plain(creator: dict[str, Any]) -> str:
    if creator.get("firstName") and creator.get("lastName"):
        return f"{creator['firstName']} {creator['lastName']}"
    return creator.get("name") or creator.get("lastName") or ""


def _note_type_link(item_type: str) -> str:
    if item_type == "book":
        return "[[Books]]"
    if item_type in ("journalArticle", "preprint"):
        return "[[Research papers.base|Research papers]]"
    if item_type in ("thesis", "bookSection"):
        return "[[Book Sections]]"
    split = re.sub(r"([a-z])([A-Z])", r"\1 \2", item_type)
    return f"[[{split[:1].upper()}{split[1:]}]]"


def _is_pdf(child: RemoteRecord) -> bool:
    return (
        child.item_type == "attachment"
        and child.data.get("contentType") == "application/pdf"
    )


def _sort_index(ann: RemoteRecord) -> str:
    return ann.data.get("annotationSortIndex") or ""


class NoteRenderer:
    """Built-in literature note layout.

    Args:
        config: Library identity (for ``zotero://`` links) and
            ``long_note_cutoff``.
        color_map: Highlight colour to Reading notes heading, in output
            order.
    """

    def __init__(
        self,
        config: Config,
        color_map: Sequence[ColorMapEntry] = DEFAULT_COLOR_MAP,
    ):
        self.config = config
        self.color_map = tuple(color_map)

    # -- links ------------------------------------------------------------

    def _group(self) -> str | None:
        if self.config.library_type == "group" and self.config.group_id:
            return self.config.group_id
        return None

    def desktop_uri(self, key: str) -> str:
        group = self._group()
        if group:
            return f"zotero://select/groups/{group}/items/{key}"
        return f"zotero://select/library/items/{key}"

    def pdf_uri(self, attachment_key: str, page: str = "") -> str:
        group = self._group()
        base = (
            f"zotero://open-pdf/groups/{group}/items/{attachment_key}"
            if group
            else f"zotero://open-pdf/library/items/{attachment_key}"
        )
        return f"{base}?page={page}" if page else base

    # -- sections ---------------------------------------------------------

    def render(
        self,
        record: RemoteRecord,
        children: Sequence[RemoteRecord],
        context: RenderContext,
    ) -> str:
        sections = [
            self.frontmatter(record, context),
            "\n" + COMMENTS_SECTION,
            self.article_info(record, children, context),
            self.abstract(record),
            self.literature_quote(context),
            self.zotero_notes(children),
            self.reading_notes(context),
        ]
        return "\n".join(sections)

    def frontmatter(self, record: RemoteRecord, context: RenderContext) -> str:
        d = record.data
        lines = ["---", "note type: ", f'- "{_note_type_link(record.item_type)}"']
        lines.append(f"citekey: {context.citekey}")
        lines.append(f"title: {yaml_safe(d.get('title') or '')}")

        creators = d.get("creators") or []
        if creators:
            lines.append("authors:")
            lines.extend(f'- "{_creator_link(c)}"' for c in creators)

        if d.get("publicationTitle"):
            lines.append(f"journal: {yaml_safe(d['publicationTitle'])}")
        if d.get("DOI"):
            lines.append(f"url: https://doi.org/{d['DOI']}")
        published = format_date(d.get("date"))
        if published:
            lines.append(f"published: {published}")
        added = format_date(d.get("dateAdded"))
        if added:
            lines.append(f"zotero: {added}")
        lines.append(f"zotero-uri: {self.desktop_uri(record.key)}")

        if context.tags:
            lines.append("tags: ")
            lines.extend(f"- {yaml_safe(to_document_tag(t))}" for t in context.tags)

        if context.synced_at:
            lines.append(f"last-synced: {context.synced_at}")
        lines.append(f"zotero-key: {record.key}")
        lines.append("---")
        return "\n".join(lines)

    def article_info(
        self,
        record: RemoteRecord,
        children: Sequence[RemoteRecord],
        context: RenderContext,
    ) -> str:
        d = record.data
        header = (
            f"> [!info]- Info \U0001f517 [**Zotero**]({self.desktop_uri(record.key)})"
        )
        if d.get("DOI"):
            header += f" | [**DOI**](https://doi.org/{d['DOI']})"
        for idx, att in enumerate(c for c in children if _is_pdf(c)):
            header += f" | [**PDF-{idx + 1}**]({self.pdf_uri(att.key)})"

        lines = [header, ">"]
        if context.bibliography:
            lines.append(f">**Bibliography**:: {context.bibliography}")
            lines.append(">")
        if context.collection_names:
            links = ", ".join(f"[[{n}]]" for n in context.collection_names)
            lines.append(f"> **Collections**:: {links}")

        first_page, page_count = self._pages(d)
        if first_page:
            authors = ", ".join(
                filter(None, (_creator_plain(c) for c in d.get("creators") or []))
            )
            lines += [
                ">",
                f"> **Authors**:: {authors}",
                "> ",
                f"> **Title**:: {d.get('title') or ''}",
                "> ",
                f"> **Journal**:: {d.get('publicationTitle') or ''}",
                "> ",
                f"> **Publication year**:: {extract_year(d.get('date'))}",
                "> ",
                f"> **First-page**:: {first_page}",
            ]

        if page_count > 0:
            hours = page_count * WORDS_PER_PAGE / READING_SPEED / 60
            lines.append("> ")
            lines.append(f"> **Page-count**:: {page_count}")
            if hours < 1:
                lines.append(
                    f"> **Reading-time**:: {_round_half_up(hours * 60)} minutes"
                )
            else:
                rounded = _round_half_up(hours * 1000) / 1000
                lines.append(f"> **Reading-time**:: {rounded:g} hours")

        return "\n".join(lines)

    @staticmethod
    def _pages(data: dict[str, Any]) -> tuple[str | None, int]:
        pages = data.get("pages")
        if pages:
            match = _PAGE_RANGE.search(pages)
            if match:
                return match.group(1), int(match.group(2)) - int(match.group(1))
            single = _LEADING_INT.match(pages)
            return None, int(single.group(1)) if single else 0
        num_pages = _LEADING_INT.match(str(data.get("numPages") or ""))
        return None, int(num_pages.group(1)) if num_pages else 0

    def abstract(self, record: RemoteRecord) -> str:
        raw = record.data.get("abstractNote")
        if not raw:
            return ""
        text = strip_html(raw)
        for keyword in ABSTRACT_KEYWORDS:
            text = re.sub(rf"\b{keyword}\b", f"**{keyword}**", text)
        body = text.replace("\n", "\n> ")
        return f"\n> [!abstract]-\n> {body}"

    def literature_quote(self, context: RenderContext) -> str:
        citekey = context.citekey
        return "\n".join(
            [
                "",
                "> [!literature_quote]- Citations",
                "> ",
                "> ```query",
                f'> content: "{citekey}" -file:{citekey}',
                "> ```",
            ]
        )

    def zotero_notes(self, children: Sequence[RemoteRecord]) -> str:
        cutoff = self.config.long_note_cutoff
        long_notes = [
            c
            for c in children
            if c.item_type == "note"
            and _word_count(strip_html(c.data.get("note") or "")) > cutoff
        ]
        if not long_notes:
            return ""

        lines = [
            "",
            f"> [!note]- Zotero notes ({len(long_notes)})",
            "> ",
            f"> Notes longer than {cutoff} words.",
        ]
        for idx, note in enumerate(long_notes):
            text = html_to_markdown(note.data.get("note") or "")
            heading = _FIRST_HEADING.search(text)
            if heading:
                title = heading.group(2).strip()
                body = text[: heading.start()] + text[heading.end() :].lstrip("\n")
            else:
                title = text[:30].strip() + ("..." if len(text) > 30 else "")
                body = text

            lines.append(
                f">> [!example]- Note {idx + 1} | [{title}]({self.desktop_uri(note.key)})"
            )
            lines.extend(f">> {line}" for line in body.split("\n"))
            if note.tags:
                lines.append(">>")
                lines.append(
                    ">> Tags: " + ", ".join(f"#{to_document_tag(t)}" for t in note.tags)
                )
            if idx < len(long_notes) - 1:
                lines.append(">")
        return "\n".join(lines)

    def _annotation_lines(
        self, ann: RemoteRecord, context: RenderContext, with_comments: bool
    ) -> list[str]:
        d = ann.data
        comment = (d.get("annotationComment") or "") if with_comments else ""
        text = " ".join((d.get("annotationText") or "").split())
        page = d.get("annotationPageLabel") or ""
        pdf = self.pdf_uri(d.get("parentItem") or "", page)
        citation = f"[(p. {page})]({pdf})"
        tag_string = (
            " " + ", ".join(f"#{to_document_tag(t)}" for t in ann.tags)
            if ann.tags
            else ""
        )

        if d.get("annotationType") == "image":
            image_path = context.annotation_images.get(ann.key)
            link = f"[Image (p. {page})]({pdf}&annotation={ann.key})"
            lines = [""] if with_comments else []
            if comment:
                lines += [f"###### {comment}", ""]
            if image_path:
                lines += [link, f"![[{image_path}]]"]
            else:
                lines.append(f"{IMAGE_PLACEHOLDER} {link}")
            if with_comments:
                lines.append("")
            return lines
        if comment and not text:
            return ["", f"###### {comment}", f" {citation}"]
        if comment and text:
            return ["", f"###### {comment}", f"- {text} {citation}{tag_string}"]
        if text:
            return [f"- {text} {citation}{tag_string}"]
        return []

    def reading_notes(self, context: RenderContext) -> str:
        lines = ["", "## Reading notes", ""]
        annotations = context.annotations
        if not annotations:
            return "\n".join(lines)

        if context.synced_at:
            stamp = datetime.fromisoformat(context.synced_at)
            lines.append(
                f"*Imported on [[{stamp.date().isoformat()}]] at {stamp:%H:%M}*"
            )

        for entry in self.color_map:
            grouped = sorted(
                (a for a in annotations if a.data.get("annotationColor") == entry.color),
                key=_sort_index,
            )
            if not grouped:
                continue
            lines += ["", f"### {entry.heading}", ""]
            for ann in grouped:
                lines += self._annotation_lines(ann, context, with_comments=True)

        known = {entry.color for entry in self.color_map}
        unmapped = sorted(
            (a for a in annotations if a.data.get("annotationColor") not in known),
            key=_sort_index,
        )
        if unmapped:
            lines += ["", "### Other annotations", ""]
            for ann in unmapped:
                lines += self._annotation_lines(ann, context, with_comments=False)

        return "\n".join(lines)

    # -- templates --------------------------------------------------------

    def placeholders(
        self,
        record: RemoteRecord,
        children: Sequence[RemoteRecord],
        context: RenderContext,
    ) -> dict[str, str]:
        """Values for every ``{{placeholder}}`` a template may use."""
        d = record.data
        creators = d.get("creators") or []
        pdfs = [c for c in children if _is_pdf(c)]
        doc_tags = [to_document_tag(t) for t in context.tags]
        if d.get("pages"):
            page_info = d["pages"]
        elif d.get("numPages"):
            page_info = f"{d['numPages']} pages"
        else:
            page_info = ""
        stamp = (
            datetime.fromisoformat(context.synced_at) if context.synced_at else None
        )

        return {
            "citekey": context.citekey,
            "title": yaml_safe(d.get("title") or ""),
            "journal": yaml_safe(d.get("publicationTitle") or ""),
            "doi": d.get("DOI") or "",
            "url": f"https://doi.org/{d['DOI']}" if d.get("DOI") else d.get("url") or "",
            "published": format_date(d.get("date")),
            "date_added": format_date(d.get("dateAdded")),
            "abstract": strip_html(d.get("abstractNote") or ""),
            "zotero_uri": self.desktop_uri(record.key),
            "desktop_uri": self.desktop_uri(record.key),
            "zotero_key": record.key,
            "item_type": record.item_type,
            "note_type_wikilink": _note_type_link(record.item_type),
            "last_synced": context.synced_at,
            "import_date": stamp.date().isoformat() if stamp else "",
            "import_time": f"{stamp:%H:%M}" if stamp else "",
            "comments_section": COMMENTS_SECTION,
            "frontmatter": self.frontmatter(record, context),
            "authors_wikilinks": ", ".join(_creator_link(c) for c in creators),
            "authors_plain": ", ".join(
                filter(None, (_creator_plain(c) for c in creators))
            ),
            "tags_yaml": "\n".join(f"- {yaml_safe(t)}" for t in doc_tags),
            "tags_inline": " ".join(f"#{t}" for t in doc_tags),
            "article_info_callout": self.article_info(record, children, context),
            "abstract_callout": self.abstract(record),
            "literature_quote_callout": self.literature_quote(context),
            "zotero_notes_callout": self.zotero_notes(children),
            "reading_notes": self.reading_notes(context).removeprefix(
                "\n## Reading notes\n"
            ),
            "pdf_links": " | ".join(
                f"[PDF-{i + 1}]({self.pdf_uri(att.key)})" for i, att in enumerate(pdfs)
            ),
            "bibliography": context.bibliography,
            "collections_wikilinks": ", ".join(
                f"[[{n}]]" for n in context.collection_names
            ),
            "page_info": page_info,
        }


class TemplateRenderer:
    """Fill a user template with ``NoteRenderer`` building blocks.

    Unknown ``{{placeholders}}`` are left in place.
    """

    def __init__(self, template: str, base: NoteRenderer):
        self.template = template
        self.base = base

    def render(
        self,
        record: RemoteRecord,
        children: Sequence[RemoteRecord],
        context: RenderContext,
    ) -> str:
        values = self.base.placeholders(record, children, context)
        return _PLACEHOLDER.sub(
            lambda m: values.get(m.group(1), m.group(0)), self.template
        )


def create_renderer(config: Config) -> NoteRenderer | TemplateRenderer:
    """Template renderer when ``template_path`` names a readable file.

    The path is relative to the vault root and ``.md`` is appended when
    missing.  A missing template falls back to the built-in layout.
    """
    base = NoteRenderer(config)
    if not config.template_path:
        return base

    path = Path(config.vault_root).expanduser() / config.template_path
    if path.suffix != ".md":
        path = path.with_name(path.name + ".md")
    try:
        template = path.read_text(encoding="utf-8")
    except OSError as e:
        logger.warning("Template file not found: %s (%s)", path, e)
        return base
    logger.info("Using note template %s", path)
    return TemplateRenderer(template, base)
