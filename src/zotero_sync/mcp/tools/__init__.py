"""MCP tool handlers for Zotero sync.

This package contains MCP tool implementations that wrap the sync
orchestrator with async handlers and structured error responses.
"""

from .errors import build_error_response, translate_api_error
from .registry import ToolRegistry, ToolSpec
from .sync import SYNC_SPECS
from .system import SYSTEM_SPECS

ALL_SPECS: list[ToolSpec] = SYSTEM_SPECS + SYNC_SPECS

__all__ = [
    "ALL_SPECS",
    "SYNC_SPECS",
    "SYSTEM_SPECS",
    "ToolRegistry",
    "ToolSpec",
    "build_error_response",
    "translate_api_error",
]
