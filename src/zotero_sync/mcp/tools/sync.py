"""MCP tool handlers for Zotero sync.

Defines four tools:

- ``zotero_sync`` -- run a full incremental sync cycle.
- ``zotero_sync_item`` -- sync one item by key.
- ``zotero_sync_status`` -- show the persisted sync state.
- ``zotero_clear_cache`` -- forget all baselines to force a full resync.
"""

from __future__ import annotations

import logging
import re
from typing import Any

import mcp.types as types

from ...sync.models import ALREADY_RUNNING_MESSAGE
from ...sync.reporter import format_sync_outcome, outcome_to_json
from ..context import ServerContext
from .errors import build_error_response
from .registry import ToolSpec

logger = logging.getLogger(__name__)

_ITEM_KEY = re.compile(r"^[A-Z0-9]{8}$")


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _handle_sync(
    ctx: ServerContext, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``zotero_sync`` tool."""
    outcome = await ctx.orchestrator.run_full_cycle()
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=format_sync_outcome(outcome))],
        structuredContent=outcome_to_json(outcome),
    )


async def _handle_sync_item(
    ctx: ServerContext, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``zotero_sync_item`` tool."""
    item_key = str(args.get("item_key") or "").strip().upper()
    if not item_key:
        return build_error_response(
            "validation_error",
            "item_key is required",
            "Provide the 'item_key' parameter (8-character Zotero item key).",
        )
    if not _ITEM_KEY.match(item_key):
        raise ValueError(
            f"Invalid item key '{item_key}': expected 8 letters or digits"
        )

    outcome = await ctx.orchestrator.run_single_record(item_key)
    if outcome.errors and outcome.errors[0].endswith("not found in Zotero."):
        return build_error_response(
            "not_found",
            outcome.errors[0],
            "Check the item key in Zotero (right click > Copy Item Link).",
        )
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=format_sync_outcome(outcome))],
        structuredContent=outcome_to_json(outcome),
    )


async def _handle_sync_status(
    ctx: ServerContext, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``zotero_sync_status`` tool."""
    orchestrator = ctx.orchestrator
    state = orchestrator.state
    last_sync = state.last_sync or "never"
    tracked = len(orchestrator.versions.tracked_keys())
    tag_baselines = len(orchestrator.tag_baselines)

    lines = [
        f"Sync status for library '{ctx.config.library_id}'",
        f"  State:           {orchestrator.phase.value}",
        f"  Sync tag:        {ctx.config.sync_tag}",
        f"  Library version: {state.library_version}",
        f"  Last sync:       {last_sync}",
        f"  Tracked items:   {tracked}",
        f"  Tag baselines:   {tag_baselines}",
        f"  State file:      {ctx.state_store.path}",
    ]

    structured = {
        "library": ctx.config.library_id,
        "phase": orchestrator.phase.value,
        "sync_tag": ctx.config.sync_tag,
        "library_version": state.library_version,
        "last_sync": last_sync,
        "tracked_items": tracked,
        "tag_baselines": tag_baselines,
        "state_file": str(ctx.state_store.path),
    }
    return types.CallToolResult(
        content=[types.TextContent(type="text", text="\n".join(lines))],
        structuredContent=structured,
    )


async def _handle_clear_cache(
    ctx: ServerContext, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``zotero_clear_cache`` tool."""
    if ctx.orchestrator.is_running:
        return build_error_response(
            "busy",
            ALREADY_RUNNING_MESSAGE,
            "Wait for the running sync to finish, then retry.",
        )
    ctx.orchestrator.clear_all_baselines()
    text = "Sync cache cleared. The next sync will reprocess every item."
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent={"cleared": True},
    )


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------


SYNC_SPECS: list[ToolSpec] = [
    ToolSpec(
        tool=types.Tool(
            name="zotero_sync",
            description=(
                "Sync every Zotero item carrying the sync tag into Markdown "
                "literature notes. Only items changed since the last sync "
                "are rewritten; tags edited in notes are pushed back to Zotero."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=False,
                destructiveHint=False,
                idempotentHint=True,
                openWorldHint=True,
            ),
            inputSchema={"type": "object", "properties": {}, "required": []},
        ),
        writes=True,
        handler=_handle_sync,
    ),
    ToolSpec(
        tool=types.Tool(
            name="zotero_sync_item",
            description=(
                "Sync a single Zotero item by key, even if it has not "
                "changed since the last sync."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=False,
                destructiveHint=False,
                idempotentHint=True,
                openWorldHint=True,
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "item_key": {
                        "type": "string",
                        "description": "8-character Zotero item key, e.g. ABCD1234",
                    },
                },
                "required": ["item_key"],
            },
        ),
        writes=True,
        handler=_handle_sync_item,
    ),
    ToolSpec(
        tool=types.Tool(
            name="zotero_sync_status",
            description=(
                "Show sync state: library version cursor, last sync time, "
                "number of tracked items and tag baselines."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=True,
                destructiveHint=False,
                idempotentHint=True,
                openWorldHint=False,
            ),
            inputSchema={"type": "object", "properties": {}, "required": []},
        ),
        writes=False,
        handler=_handle_sync_status,
    ),
    ToolSpec(
        tool=types.Tool(
            name="zotero_clear_cache",
            description=(
                "Forget all version and tag baselines so the next sync "
                "reprocesses every item. Notes are never deleted."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=False,
                destructiveHint=True,
                idempotentHint=True,
                openWorldHint=False,
            ),
            inputSchema={"type": "object", "properties": {}, "required": []},
        ),
        writes=True,
        handler=_handle_clear_cache,
    ),
]
