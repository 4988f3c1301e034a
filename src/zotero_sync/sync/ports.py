"""Capabilities the sync engine depends on.

The engine never talks HTTP or touches the filesystem itself.  It is
constructed with objects satisfying these protocols; the production
implementations live in ``zotero_sync.adapters`` and tests supply
in-memory fakes.

Every method that may block is ``async``: each call is a suspension point,
and the orchestrator awaits it before making its next decision.
"""

from __future__ import annotations

from typing import Callable, Protocol, Sequence, runtime_checkable

from .models import ChangedRecords, RemoteRecord, RenderContext, TagPushStatus

#: Progress callback receiving ``(records_done, total_eligible)``.
ProgressSink = Callable[[int, int], None]


@runtime_checkable
class RemoteLibrary(Protocol):
    """Read items from and push tags to the remote Zotero library."""

    async def prepare_cycle(self) -> None:
        """Warm per-cycle caches (collection names). May raise."""
        ...

    async def fetch_changed_records(
        self, tag_filter: str, since_version: int | None = None
    ) -> ChangedRecords:
        """List items carrying *tag_filter*, newest modified first."""
        ...

    async def fetch_record(self, key: str) -> RemoteRecord | None:
        """One item by key, ``None`` if it does not exist."""
        ...

    async def fetch_children(self, key: str) -> list[RemoteRecord]:
        """Direct children (attachments, notes) of an item."""
        ...

    async def fetch_annotations(self, attachment_key: str) -> list[RemoteRecord]:
        """Annotations on one PDF attachment."""
        ...

    async def fetch_bibliography(self, key: str) -> str:
        """Plain-text formatted citation, ``""`` when unavailable."""
        ...

    async def fetch_annotation_image(self, annotation_key: str) -> bytes | None:
        """PNG bytes of an image annotation, if the server has them."""
        ...

    def collection_names(self, record: RemoteRecord) -> list[str]:
        """Names of the collections *record* belongs to."""
        ...

    async def push_tags(
        self, key: str, tags: Sequence[str], expected_version: int
    ) -> TagPushStatus:
        """Replace the item's tags if it is still at *expected_version*."""
        ...


@runtime_checkable
class Renderer(Protocol):
    """Turn a record into note text.  Must be pure for identical inputs."""

    def render(
        self,
        record: RemoteRecord,
        children: Sequence[RemoteRecord],
        context: RenderContext,
    ) -> str: ...


@runtime_checkable
class DocumentStore(Protocol):
    """Read and write notes and assets by store-relative path."""

    async def read(self, path: str) -> str | None: ...

    async def write(self, path: str, text: str) -> None: ...

    async def exists(self, path: str) -> bool: ...

    async def write_bytes(self, path: str, data: bytes) -> None: ...
