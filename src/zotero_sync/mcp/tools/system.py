"""System tool handlers for MCP server.

Implements ``ping``, which checks the API key and library id against the
Zotero Web API.
"""

import logging

import mcp.types as types

from ...core.async_utils import run_sync
from ..context import ServerContext
from .registry import ToolSpec

logger = logging.getLogger(__name__)


async def _handle_ping(ctx: ServerContext, args: dict) -> types.CallToolResult:
    """Handle ping tool -- test Zotero connectivity."""
    ok, message = await run_sync(ctx.client.test_connection)
    if ok:
        text = (
            f"Zotero sync server connected to library "
            f"'{ctx.config.library_id}'. {message}"
        )
    else:
        logger.warning("Connection test failed: %s", message)
        text = (
            f"Zotero connection failed: {message} "
            "Check ZOTERO_API_KEY and ZOTERO_USER_ID."
        )
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        isError=not ok,
    )


SYSTEM_SPECS: list[ToolSpec] = [
    ToolSpec(
        tool=types.Tool(
            name="ping",
            description="Test Zotero Web API connectivity for the configured library",
            inputSchema={"type": "object", "properties": {}, "required": []},
        ),
        writes=False,
        handler=_handle_ping,
    )
]
