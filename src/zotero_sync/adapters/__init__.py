"""Concrete capabilities for the sync engine: Zotero, disk and Markdown."""

from .remote import ZoteroRemoteLibrary
from .renderer import NoteRenderer, TemplateRenderer, create_renderer
from .store import FileDocumentStore

__all__ = [
    "FileDocumentStore",
    "NoteRenderer",
    "TemplateRenderer",
    "ZoteroRemoteLibrary",
    "create_renderer",
]
