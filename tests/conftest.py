"""Shared pytest fixtures for zotero-sync tests."""

from __future__ import annotations

import asyncio
from typing import Any, Sequence
from unittest.mock import MagicMock

import pytest
from dotenv import load_dotenv

from zotero_sync.config import Config
from zotero_sync.sync.comments import COMMENTS_SECTION
from zotero_sync.sync.engine import SyncOrchestrator
from zotero_sync.sync.models import (
    ChangedRecords,
    RemoteRecord,
    RenderContext,
    TagPushStatus,
)
from zotero_sync.sync.state import SyncState

load_dotenv()

SYNC_TAG = "obsidian"


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests that require a live Zotero account",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "live: mark test as requiring a live Zotero account"
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def make_record(
    key: str,
    version: int,
    tags: Sequence[str] = (SYNC_TAG,),
    item_type: str = "journalArticle",
    parent_key: str | None = None,
    **data: Any,
) -> RemoteRecord:
    """Build a RemoteRecord with a plausible data payload."""
    payload = {
        "key": key,
        "itemType": item_type,
        "title": f"Title of {key}",
        "extra": f"Citation Key: cite{key}",
    }
    payload.update(data)
    return RemoteRecord(
        key=key,
        version=version,
        item_type=item_type,
        tags=tuple(tags),
        parent_key=parent_key,
        data=payload,
    )


# ---------------------------------------------------------------------------
# In-memory capabilities
# ---------------------------------------------------------------------------


class FakeRemoteLibrary:
    """In-memory RemoteLibrary.

    ``library_version`` of 0 means the server reports no version, so every
    cycle lists the whole tagged set.  When set, listings honour ``since``.
    """

    def __init__(
        self,
        records: Sequence[RemoteRecord] = (),
        library_version: int = 0,
        push_status: TagPushStatus = TagPushStatus.SUCCESS,
    ) -> None:
        self.records = list(records)
        self.library_version = library_version
        self.push_status = push_status
        self.children: dict[str, list[RemoteRecord]] = {}
        self.annotations: dict[str, list[RemoteRecord]] = {}
        self.images: dict[str, bytes] = {}
        self.collections: dict[str, str] = {}
        self.bibliography = ""
        self.listing_error: Exception | None = None
        self.listing_gate: asyncio.Event | None = None
        self.listing_started = asyncio.Event()

        self.listing_calls: list[int | None] = []
        self.children_calls: list[str] = []
        self.push_calls: list[tuple[str, list[str], int]] = []
        self.prepare_calls = 0

    async def prepare_cycle(self) -> None:
        self.prepare_calls += 1

    async def fetch_changed_records(
        self, tag_filter: str, since_version: int | None = None
    ) -> ChangedRecords:
        self.listing_calls.append(since_version)
        self.listing_started.set()
        if self.listing_gate is not None:
            await self.listing_gate.wait()
        if self.listing_error is not None:
            raise self.listing_error

        records = [r for r in self.records if tag_filter in r.tags]
        if since_version:
            records = [r for r in records if r.version > since_version]
        return ChangedRecords(
            records=tuple(records),
            library_version=self.library_version,
            not_modified=bool(since_version) and not records,
        )

    async def fetch_record(self, key: str) -> RemoteRecord | None:
        return next((r for r in self.records if r.key == key), None)

    async def fetch_children(self, key: str) -> list[RemoteRecord]:
        self.children_calls.append(key)
        return list(self.children.get(key, []))

    async def fetch_annotations(self, attachment_key: str) -> list[RemoteRecord]:
        return list(self.annotations.get(attachment_key, []))

    async def fetch_bibliography(self, key: str) -> str:
        return self.bibliography

    async def fetch_annotation_image(self, annotation_key: str) -> bytes | None:
        return self.images.get(annotation_key)

    def collection_names(self, record: RemoteRecord) -> list[str]:
        return [
            self.collections[k]
            for k in record.data.get("collections") or []
            if k in self.collections
        ]

    async def push_tags(
        self, key: str, tags: Sequence[str], expected_version: int
    ) -> TagPushStatus:
        self.push_calls.append((key, list(tags), expected_version))
        return self.push_status


class FakeDocumentStore:
    """Dict-backed DocumentStore; ``fail_writes`` makes every write raise."""

    def __init__(self, fail_writes: bool = False) -> None:
        self.documents: dict[str, str] = {}
        self.blobs: dict[str, bytes] = {}
        self.fail_writes = fail_writes
        self.writes: list[str] = []

    async def read(self, path: str) -> str | None:
        return self.documents.get(path)

    async def write(self, path: str, text: str) -> None:
        if self.fail_writes:
            raise OSError(f"disk full writing {path}")
        self.writes.append(path)
        self.documents[path] = text

    async def exists(self, path: str) -> bool:
        return path in self.documents or path in self.blobs

    async def write_bytes(self, path: str, data: bytes) -> None:
        if self.fail_writes:
            raise OSError(f"disk full writing {path}")
        self.blobs[path] = data


class FakeRenderer:
    """Deterministic renderer emitting front matter tags and a Comments zone."""

    def __init__(self, fail_keys: Sequence[str] = ()) -> None:
        self.fail_keys = set(fail_keys)
        self.contexts: list[RenderContext] = []

    def render(
        self,
        record: RemoteRecord,
        children: Sequence[RemoteRecord],
        context: RenderContext,
    ) -> str:
        if record.key in self.fail_keys:
            raise RuntimeError("template exploded")
        self.contexts.append(context)
        if context.tags:
            header = "---\ntags:\n" + "\n".join(f"- {t}" for t in context.tags)
        else:
            header = "---\ntags: []"
        return (
            f"{header}\nzotero-key: {record.key}\n---\n"
            f"{COMMENTS_SECTION}\n\n"
            f"# {record.title} (v{record.version})\n"
        )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_config():
    """Create a Config instance for testing."""
    return Config(
        api_key="test-key",
        user_id="123456",
        sync_tag=SYNC_TAG,
        output_folder="Notes",
        image_output_folder="Attachments",
    )


@pytest.fixture
def remote():
    return FakeRemoteLibrary()


@pytest.fixture
def store():
    return FakeDocumentStore()


@pytest.fixture
def renderer():
    return FakeRenderer()


@pytest.fixture
def saved_states():
    """Snapshots of every state passed to the save callback."""
    return []


@pytest.fixture
def make_orchestrator(mock_config, remote, store, renderer, saved_states):
    """Factory fixture building a SyncOrchestrator over the fakes."""

    def _make(state: SyncState | None = None, **overrides: Any):
        kwargs = {
            "config": mock_config,
            "state": state or SyncState(),
            "save_state": lambda s: saved_states.append(s.model_copy(deep=True)),
            "remote": remote,
            "renderer": renderer,
            "store": store,
        }
        kwargs.update(overrides)
        return SyncOrchestrator(**kwargs)

    return _make


@pytest.fixture
def mock_zotero_client(mock_config):
    """Create a mock ZoteroClient instance for testing."""
    from zotero_sync.core.client import ZoteroClient

    client = MagicMock(spec=ZoteroClient)
    client.config = mock_config
    return client


@pytest.fixture
def mock_response():
    """Factory fixture for creating requests.Response mocks."""

    def _create_response(
        status_code: int = 200,
        json_data: Any = None,
        headers: dict[str, str] | None = None,
        content: bytes = b"",
        text: str = "",
    ):
        response = MagicMock()
        response.status_code = status_code
        response.headers = headers or {}
        response.json.return_value = json_data
        response.content = content
        response.text = text
        return response

    return _create_response
