"""``RemoteLibrary`` backed by the blocking ``ZoteroClient``."""

from __future__ import annotations

import logging
from typing import Any, Sequence

from ..core.async_utils import run_sync
from ..core.client import ZoteroClient
from ..sync.models import ChangedRecords, RemoteRecord, TagPushStatus

logger = logging.getLogger(__name__)


def _records(raw_items: list[dict[str, Any]]) -> list[RemoteRecord]:
    records = []
    for raw in raw_items:
        try:
            records.append(RemoteRecord.from_api(raw))
        except ValueError as e:
            logger.warning("Ignoring malformed Zotero item: %s", e)
    return records


class ZoteroRemoteLibrary:
    """Adapt ``ZoteroClient`` to the async ``RemoteLibrary`` protocol.

    Each call runs the blocking client in a worker thread via
    ``run_sync()``.
    """

    def __init__(self, client: ZoteroClient):
        self.client = client

    async def prepare_cycle(self) -> None:
        """Reload collection names for this cycle."""
        self.client.clear_collection_cache()
        collections = await run_sync(self.client.fetch_collections)
        logger.debug("Loaded %d collections", len(collections))

    async def fetch_changed_records(
        self, tag_filter: str, since_version: int | None = None
    ) -> ChangedRecords:
        items, library_version = await run_sync(
            self.client.fetch_items_by_tag, tag_filter, since_version
        )
        return ChangedRecords(
            records=tuple(_records(items)),
            library_version=library_version,
            not_modified=bool(since_version) and not items,
        )

    async def fetch_record(self, key: str) -> RemoteRecord | None:
        raw = await run_sync(self.client.fetch_item, key)
        return RemoteRecord.from_api(raw) if raw else None

    async def fetch_children(self, key: str) -> list[RemoteRecord]:
        return _records(await run_sync(self.client.fetch_item_children, key))

    async def fetch_annotations(self, attachment_key: str) -> list[RemoteRecord]:
        return _records(await run_sync(self.client.fetch_annotations, attachment_key))

    async def fetch_bibliography(self, key: str) -> str:
        return await run_sync(self.client.fetch_bibliography, key)

    async def fetch_annotation_image(self, annotation_key: str) -> bytes | None:
        return await run_sync(self.client.fetch_annotation_image, annotation_key)

    def collection_names(self, record: RemoteRecord) -> list[str]:
        names = []
        for key in record.data.get("collections") or []:
            name = self.client.get_collection_name(key)
            if name:
                names.append(name)
        return names

    async def push_tags(
        self, key: str, tags: Sequence[str], expected_version: int
    ) -> TagPushStatus:
        return await run_sync(
            self.client.patch_item_tags, key, list(tags), expected_version
        )
