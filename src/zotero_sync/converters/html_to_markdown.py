"""Zotero note/abstract HTML to Markdown conversion using lxml."""

import logging
import re

from lxml import etree, html

logger = logging.getLogger(__name__)

_HEADINGS = {f"h{n}": n for n in range(1, 7)}
_BLANK_LINES = re.compile(r"\n{3,}")


class HtmlConverter:
    """Walk an HTML fragment and emit Markdown or plain text.

    Zotero notes are small HTML documents produced by its note editor:
    headings, paragraphs, emphasis, links, lists and line breaks.  Anything
    else contributes only its text.

    Args:
        markdown: Emit Markdown markup; when False only paragraph and line
            structure survive.
    """

    def __init__(self, markdown: bool = True):
        self.markdown = markdown

    def convert(self, source: str) -> str:
        if not source or not source.strip():
            return ""
        try:
            root = html.fragment_fromstring(source, create_parent="div")
        except (etree.ParserError, ValueError) as e:
            logger.debug("Could not parse HTML fragment: %s", e)
            return source.strip()
        text = self._children(root)
        return _BLANK_LINES.sub("\n\n", text).strip()

    def _children(self, el) -> str:
        parts = [el.text or ""]
        for child in el:
            if isinstance(child.tag, str):
                parts.append(self._element(child))
            parts.append(child.tail or "")
        return "".join(parts)

    def _element(self, el) -> str:
        tag = el.tag.lower()
        inner = self._children(el)

        if tag == "br":
            return "\n"
        if tag in ("p", "div"):
            return f"{inner}\n\n"
        if tag == "li":
            return f"- {inner.strip()}\n" if self.markdown else f"{inner.strip()}\n"
        if tag in ("ul", "ol"):
            return f"{inner}\n"
        if not self.markdown:
            if tag in _HEADINGS:
                return f"{inner.strip()}\n"
            return inner

        if tag in _HEADINGS:
            return f"{'#' * _HEADINGS[tag]} {inner.strip()}\n"
        if tag in ("strong", "b"):
            return f"**{inner}**"
        if tag in ("em", "i"):
            return f"*{inner}*"
        if tag == "code":
            return f"`{inner}`"
        if tag == "a":
            href = el.get("href")
            return f"[{inner}]({href})" if href else inner
        if tag == "blockquote":
            quoted = "\n".join(f"> {line}" for line in inner.strip().split("\n"))
            return f"{quoted}\n\n"
        return inner


def html_to_markdown(source: str) -> str:
    """Convert a Zotero note's HTML to Markdown."""
    return HtmlConverter(markdown=True).convert(source)


def strip_html(source: str) -> str:
    """Reduce HTML to plain text, keeping paragraph and line breaks."""
    return HtmlConverter(markdown=False).convert(source)
