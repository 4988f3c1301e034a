"""MCP Server for Zotero note sync using stdio transport.

This module implements the Model Context Protocol server that lets an
agent trigger Zotero to Markdown syncs and inspect sync state.

Transport: stdio (for Claude Desktop/Code integration)
Protocol: JSON-RPC 2.0 over MCP
"""

import argparse
import asyncio
import logging
import sys

import mcp.server.stdio
import mcp.types as types
from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions

from .. import __version__
from ..logger import setup_logging
from .context import ServerContext
from .lifespan import server_lifespan
from .tools import ALL_SPECS, ToolRegistry, build_error_response

logger = logging.getLogger(__name__)

# Initialize server instance
server = Server("zotero-sync")

# Global context (initialized in lifespan)
_context: ServerContext | None = None

# Global registry instance (initialized in main)
_registry: ToolRegistry | None = None


# ---------------------------------------------------------------------------
# Global accessors
# ---------------------------------------------------------------------------


def get_context() -> ServerContext:
    """Get the global ServerContext instance.

    Raises:
        RuntimeError: If the context is not initialized
    """
    if _context is None:
        raise RuntimeError(
            "ServerContext not initialized. Server lifespan not started."
        )
    return _context


def set_context(context: ServerContext | None) -> None:
    """Set the global ServerContext instance, or None to clear it."""
    global _context
    _context = context


def get_registry() -> ToolRegistry:
    """Get the global ToolRegistry instance.

    Raises:
        RuntimeError: If registry is not initialized
    """
    if _registry is None:
        raise RuntimeError("ToolRegistry not initialized.")
    return _registry


def set_registry(registry: ToolRegistry | None) -> None:
    """Set the global ToolRegistry instance, or None to clear it."""
    global _registry
    _registry = registry


# ---------------------------------------------------------------------------
# MCP protocol handlers
# ---------------------------------------------------------------------------


@server.list_tools()
async def handle_list_tools() -> list[types.Tool]:
    """List available sync tools."""
    return get_registry().list_tools()


@server.call_tool()
async def handle_call_tool(
    name: str, arguments: dict | None
) -> types.CallToolResult:
    """Handle tool execution via ToolRegistry dispatch.

    Args:
        name: The name of the tool to execute.
        arguments: Tool arguments (optional).

    Returns:
        CallToolResult with tool output content and optional isError flag.
    """
    ctx = get_context()
    try:
        return await get_registry().call_tool(name, arguments, ctx)
    except ValueError as e:
        # Unknown or filtered-out tool name
        return build_error_response(
            "unknown_tool",
            str(e),
            "Use list_tools to see available tools.",
        )


# ---------------------------------------------------------------------------
# Server lifecycle
# ---------------------------------------------------------------------------


async def main(config_overrides: dict | None = None):
    """Run the MCP server with stdio transport.

    Sets up logging for MCP mode (file only, never stdout), validates the
    Zotero connection via the lifespan manager, and serves JSON-RPC on
    stdio.

    Args:
        config_overrides: Optional dict with config values to override
            (api_key, user_id, library_type, group_id, debug, log_file,
            read_only)
    """
    overrides = config_overrides or {}

    # Must run BEFORE stdio_server so nothing reaches stdout
    setup_logging(
        mode="mcp",
        debug=overrides.get("debug", False),
        log_file=overrides.get("log_file"),
    )

    read_only = overrides.get("read_only", False)
    registry = ToolRegistry(ALL_SPECS, read_only=read_only)
    logger.info(
        "Registered %d tools (of %d total)",
        registry.tool_count(),
        len(ALL_SPECS),
    )
    if read_only:
        print(
            f"Read-only mode: {registry.tool_count()} of "
            f"{len(ALL_SPECS)} tools enabled",
            file=sys.stderr,
        )
    set_registry(registry)

    # set_context() is called here rather than in the lifespan so that
    # running this file as __main__ does not update a second module copy.
    async with server_lifespan(config_overrides=config_overrides) as ctx:
        set_context(ctx["context"])
        try:
            async with mcp.server.stdio.stdio_server() as (
                read_stream,
                write_stream,
            ):
                init_options = InitializationOptions(
                    server_name="zotero-sync",
                    server_version=__version__,
                    capabilities=server.get_capabilities(
                        notification_options=NotificationOptions(),
                        experimental_capabilities={},
                    ),
                )
                await server.run(read_stream, write_stream, init_options)
        finally:
            set_context(None)
            set_registry(None)


def run() -> None:
    """Entry point that handles errors gracefully and parses CLI arguments."""
    parser = argparse.ArgumentParser(
        description="Zotero Sync MCP Server - sync Zotero items into Markdown literature notes",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with default config (from .env or .zotero_sync/config.yml)
  zotero-sync-mcp

  # Override the library
  zotero-sync-mcp --user-id 1234567

  # Sync a group library
  zotero-sync-mcp --library-type group --group-id 998877

  # Only expose status and ping
  zotero-sync-mcp --read-only

Note: This server uses stdio transport for JSON-RPC communication with MCP clients.
All user-facing messages are written to stderr. Do not pipe stdin/stdout manually.
        """,
    )

    parser.add_argument(
        "--api-key",
        help="Override Zotero API key (takes precedence over ZOTERO_API_KEY)"
        " (visible in process list -- prefer the env var)",
    )
    parser.add_argument(
        "--user-id",
        help="Override Zotero user id (takes precedence over ZOTERO_USER_ID)",
    )
    parser.add_argument(
        "--library-type",
        choices=["user", "group"],
        help="Sync a personal (user) or group library",
    )
    parser.add_argument(
        "--group-id",
        help="Group id, required with --library-type group",
    )
    parser.add_argument(
        "--log-file",
        default="/tmp/zotero-sync.log",
        help="Log file path (default: /tmp/zotero-sync.log)",
    )
    parser.add_argument(
        "--read-only",
        action="store_true",
        help="Only register tools that never write notes, state or tags",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Log at DEBUG level",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"zotero-sync-mcp version {__version__}",
    )

    args = parser.parse_args()

    config_overrides = {}
    if args.api_key:
        config_overrides["api_key"] = args.api_key
    if args.user_id:
        config_overrides["user_id"] = args.user_id
    if args.library_type:
        config_overrides["library_type"] = args.library_type
    if args.group_id:
        config_overrides["group_id"] = args.group_id
    if args.log_file:
        config_overrides["log_file"] = args.log_file
    if args.read_only:
        config_overrides["read_only"] = True
    if args.debug:
        config_overrides["debug"] = True

    if config_overrides:
        override_keys = [k for k in config_overrides if k != "api_key"]
        print(
            f"Config overrides from CLI: {', '.join(override_keys)}",
            file=sys.stderr,
        )

    try:
        asyncio.run(main(config_overrides=config_overrides or None))
    except RuntimeError:
        # Error already printed to stderr by lifespan manager
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    run()
