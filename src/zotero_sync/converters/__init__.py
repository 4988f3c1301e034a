"""Conversion of Zotero HTML fields into note Markdown."""

from .html_to_markdown import HtmlConverter, html_to_markdown, strip_html

__all__ = [
    "HtmlConverter",
    "html_to_markdown",
    "strip_html",
]
