"""Zotero library to Markdown literature-note synchronisation."""

__version__ = "0.4.0"
