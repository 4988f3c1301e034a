"""ToolSpec and ToolRegistry for MCP tool dispatch.

Key concepts:
- ToolSpec: Immutable dataclass linking a Tool definition, whether the tool
  writes (notes, sync state or Zotero tags), and an async handler with
  standardized signature (ctx, args) -> CallToolResult.
- ToolRegistry: Drops writing tools in read-only mode at construction time,
  then provides list_tools() and call_tool() dispatch with error translation.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import mcp.types as types

from ...errors import ConfigurationError, ZoteroApiError
from ..context import ServerContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ToolSpec:
    """Immutable definition of a single MCP tool.

    Attributes:
        tool: The MCP Tool definition (name, description, inputSchema).
        writes: True when the tool modifies notes, sync state or Zotero.
        handler: Async handler with signature (ctx, args) -> CallToolResult.
    """

    tool: types.Tool
    writes: bool
    handler: Callable[[ServerContext, dict], Awaitable[types.CallToolResult]]


class ToolRegistry:
    """Registry of ToolSpecs, optionally restricted to read-only tools."""

    def __init__(self, specs: list[ToolSpec], read_only: bool = False):
        self._specs: dict[str, ToolSpec] = {
            spec.tool.name: spec
            for spec in specs
            if not (read_only and spec.writes)
        }

    def list_tools(self) -> list[types.Tool]:
        """Return list of types.Tool for all registered specs."""
        return [spec.tool for spec in self._specs.values()]

    def tool_count(self) -> int:
        return len(self._specs)

    async def call_tool(
        self,
        name: str,
        arguments: dict | None,
        ctx: ServerContext,
    ) -> types.CallToolResult:
        """Dispatch tool call to registered handler.

        Translates configuration errors, Zotero API errors, validation
        errors and unexpected exceptions into structured CallToolResult
        responses with corrective actions.

        Raises:
            ValueError: If tool name is not registered.
        """
        from .errors import build_error_response, translate_api_error

        spec = self._specs.get(name)
        if spec is None:
            raise ValueError(f"Unknown tool: {name}")
        args = arguments or {}
        try:
            return await spec.handler(ctx, args)
        except ConfigurationError as e:
            return build_error_response(
                "configuration_error",
                str(e),
                "Set ZOTERO_API_KEY and ZOTERO_USER_ID (or the zotero "
                "section of the config file) and restart the server.",
            )
        except ZoteroApiError as e:
            logger.warning("Zotero API error in %s: %s", name, e)
            return translate_api_error(e)
        except ValueError as e:
            return build_error_response(
                "validation_error",
                str(e),
                "Check parameter values and retry.",
            )
        except Exception as e:
            logger.exception("Unexpected error in tool %s", name)
            return build_error_response(
                "server_error",
                str(e),
                "Check the server log and Zotero connectivity, then retry.",
            )
