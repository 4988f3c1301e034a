"""Tests for MCP sync tool definitions and handlers.

Covers:
- Tool definitions have valid schemas
- zotero_sync runs a full cycle and reports counts
- zotero_sync_item validation, not-found and success paths
- zotero_sync_status returns structured output
- zotero_clear_cache forgets baselines and refuses while a sync runs

Handlers run against a real SyncOrchestrator over the in-memory fakes.
"""

from __future__ import annotations

import asyncio

import mcp.types as types
import pytest

from zotero_sync.mcp.context import ServerContext
from zotero_sync.mcp.tools import ALL_SPECS, ToolRegistry
from zotero_sync.mcp.tools.sync import SYNC_SPECS
from zotero_sync.sync.models import RemoteRecord
from zotero_sync.sync.state import SyncStateStore

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _record(key: str, version: int = 5) -> RemoteRecord:
    return RemoteRecord(
        key=key,
        version=version,
        item_type="journalArticle",
        tags=("obsidian",),
        data={"title": f"Paper {key}", "extra": f"Citation Key: cite{key}"},
    )


def _text(result: types.CallToolResult) -> str:
    content = result.content[0]
    assert isinstance(content, types.TextContent)
    return content.text


@pytest.fixture
def ctx(mock_config, mock_zotero_client, make_orchestrator, remote, tmp_path):
    remote.records = [_record("ABCD1234")]
    remote.library_version = 9
    return ServerContext(
        config=mock_config,
        client=mock_zotero_client,
        orchestrator=make_orchestrator(),
        state_store=SyncStateStore(tmp_path, mock_config.library_id),
    )


@pytest.fixture
def registry():
    return ToolRegistry(ALL_SPECS)


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------


class TestSyncToolDefinitions:
    def test_tool_names(self):
        assert [s.tool.name for s in SYNC_SPECS] == [
            "zotero_sync",
            "zotero_sync_item",
            "zotero_sync_status",
            "zotero_clear_cache",
        ]

    def test_schemas_are_objects(self):
        for spec in SYNC_SPECS:
            assert spec.tool.inputSchema["type"] == "object"

    def test_item_key_required(self):
        spec = next(s for s in SYNC_SPECS if s.tool.name == "zotero_sync_item")
        assert spec.tool.inputSchema["required"] == ["item_key"]

    def test_only_status_is_read_only(self):
        assert [s.tool.name for s in SYNC_SPECS if not s.writes] == [
            "zotero_sync_status"
        ]


# ---------------------------------------------------------------------------
# zotero_sync
# ---------------------------------------------------------------------------


class TestZoteroSync:
    async def test_full_cycle_reported(self, registry, ctx, store):
        result = await registry.call_tool("zotero_sync", {}, ctx)

        assert not result.isError
        assert _text(result).startswith("1 created, 0 updated, 0 skipped, 0 errors")
        assert result.structuredContent["counts"]["created"] == 1
        assert result.structuredContent["library_version"] == 9
        assert "Notes/citeABCD1234.md" in store.documents

    async def test_second_run_skips(self, registry, ctx):
        await registry.call_tool("zotero_sync", {}, ctx)
        result = await registry.call_tool("zotero_sync", {}, ctx)
        assert result.structuredContent["counts"]["created"] == 0

    async def test_concurrent_trigger_rejected(self, registry, ctx, remote):
        remote.listing_gate = asyncio.Event()
        first = asyncio.create_task(registry.call_tool("zotero_sync", {}, ctx))
        await remote.listing_started.wait()

        second = await registry.call_tool("zotero_sync", {}, ctx)

        remote.listing_gate.set()
        await first
        assert _text(second) == "Sync already in progress. Try again when it finishes."
        assert second.structuredContent["rejected"] is True


# ---------------------------------------------------------------------------
# zotero_sync_item
# ---------------------------------------------------------------------------


class TestZoteroSyncItem:
    async def test_missing_key(self, registry, ctx):
        result = await registry.call_tool("zotero_sync_item", {}, ctx)
        assert result.isError
        assert _text(result).startswith("Error (validation_error): item_key is required")

    async def test_malformed_key(self, registry, ctx):
        result = await registry.call_tool("zotero_sync_item", {"item_key": "abc"}, ctx)
        assert result.isError
        assert "Invalid item key 'ABC'" in _text(result)

    async def test_unknown_item(self, registry, ctx):
        result = await registry.call_tool(
            "zotero_sync_item", {"item_key": "ZZZZ9999"}, ctx
        )
        assert result.isError
        assert _text(result).startswith(
            "Error (not_found): Item ZZZZ9999 not found in Zotero."
        )

    async def test_key_normalised_and_synced(self, registry, ctx, store):
        result = await registry.call_tool(
            "zotero_sync_item", {"item_key": " abcd1234 "}, ctx
        )
        assert not result.isError
        assert result.structuredContent["counts"]["created"] == 1
        assert "Notes/citeABCD1234.md" in store.documents

    async def test_library_version_untouched(self, registry, ctx):
        await registry.call_tool("zotero_sync_item", {"item_key": "ABCD1234"}, ctx)
        assert ctx.orchestrator.state.library_version == 0


# ---------------------------------------------------------------------------
# zotero_sync_status
# ---------------------------------------------------------------------------


class TestZoteroSyncStatus:
    async def test_fresh_state(self, registry, ctx):
        result = await registry.call_tool("zotero_sync_status", {}, ctx)

        text = _text(result)
        assert "Sync status for library 'users-123456'" in text
        assert "Last sync:       never" in text
        assert result.structuredContent == {
            "library": "users-123456",
            "phase": "idle",
            "sync_tag": "obsidian",
            "library_version": 0,
            "last_sync": "never",
            "tracked_items": 0,
            "tag_baselines": 0,
            "state_file": str(ctx.state_store.path),
        }

    async def test_after_sync(self, registry, ctx):
        await registry.call_tool("zotero_sync", {}, ctx)
        result = await registry.call_tool("zotero_sync_status", {}, ctx)

        assert result.structuredContent["tracked_items"] == 1
        assert result.structuredContent["tag_baselines"] == 1
        assert result.structuredContent["library_version"] == 9


# ---------------------------------------------------------------------------
# zotero_clear_cache
# ---------------------------------------------------------------------------


class TestZoteroClearCache:
    async def test_clears_baselines(self, registry, ctx):
        await registry.call_tool("zotero_sync", {}, ctx)

        result = await registry.call_tool("zotero_clear_cache", {}, ctx)

        assert _text(result) == (
            "Sync cache cleared. The next sync will reprocess every item."
        )
        assert result.structuredContent == {"cleared": True}
        assert ctx.orchestrator.versions.tracked_keys() == []
        assert len(ctx.orchestrator.tag_baselines) == 0

    async def test_refused_while_running(self, registry, ctx, remote):
        remote.listing_gate = asyncio.Event()
        running = asyncio.create_task(registry.call_tool("zotero_sync", {}, ctx))
        await remote.listing_started.wait()

        result = await registry.call_tool("zotero_clear_cache", {}, ctx)

        remote.listing_gate.set()
        await running
        assert result.isError
        assert _text(result).startswith("Error (busy): Sync already in progress")
        assert ctx.orchestrator.versions.tracked_keys() == ["ABCD1234"]
