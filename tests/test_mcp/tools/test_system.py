"""
Tests for system MCP tool handlers.

These tests verify the ping tool definition and handler behavior with a
mocked ZoteroClient.
"""

from unittest.mock import MagicMock

import mcp.types as types
import pytest

from zotero_sync.mcp.tools.registry import ToolRegistry
from zotero_sync.mcp.tools.system import SYSTEM_SPECS


@pytest.fixture
def ctx(mock_config, mock_zotero_client):
    context = MagicMock()
    context.config = mock_config
    context.client = mock_zotero_client
    return context


class TestSystemTools:
    def test_one_tool_defined(self):
        assert [s.tool.name for s in SYSTEM_SPECS] == ["ping"]

    def test_ping_schema_and_read_only(self):
        spec = SYSTEM_SPECS[0]
        assert spec.tool.inputSchema["properties"] == {}
        assert spec.writes is False


class TestPingHandler:
    async def test_success(self, ctx, mock_zotero_client):
        mock_zotero_client.test_connection.return_value = (
            True,
            "Connection successful!",
        )

        result = await ToolRegistry(SYSTEM_SPECS).call_tool("ping", {}, ctx)

        assert not result.isError
        content = result.content[0]
        assert isinstance(content, types.TextContent)
        assert content.text == (
            "Zotero sync server connected to library 'users-123456'. "
            "Connection successful!"
        )

    async def test_failure(self, ctx, mock_zotero_client):
        mock_zotero_client.test_connection.return_value = (
            False,
            "Invalid API key or insufficient permissions.",
        )

        result = await ToolRegistry(SYSTEM_SPECS).call_tool("ping", {}, ctx)

        assert result.isError
        assert result.content[0].text == (
            "Zotero connection failed: Invalid API key or insufficient "
            "permissions. Check ZOTERO_API_KEY and ZOTERO_USER_ID."
        )
