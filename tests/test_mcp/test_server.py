"""Tests for the MCP server module: protocol handlers and CLI entry point."""

import sys
from unittest.mock import MagicMock, patch

import mcp.types as types
import pytest

from zotero_sync.mcp import server
from zotero_sync.mcp.tools import ALL_SPECS, ToolRegistry


@pytest.fixture
def installed():
    """Install a registry and a stub context, cleared afterwards."""
    context = MagicMock()
    server.set_registry(ToolRegistry(ALL_SPECS, read_only=True))
    server.set_context(context)
    yield context
    server.set_context(None)
    server.set_registry(None)


class TestAccessors:
    def test_context_required(self):
        server.set_context(None)
        with pytest.raises(RuntimeError, match="ServerContext not initialized"):
            server.get_context()

    def test_registry_required(self):
        server.set_registry(None)
        with pytest.raises(RuntimeError, match="ToolRegistry not initialized"):
            server.get_registry()


class TestProtocolHandlers:
    async def test_list_tools_uses_registry(self, installed):
        tools = await server.handle_list_tools()
        assert sorted(t.name for t in tools) == ["ping", "zotero_sync_status"]

    async def test_call_tool_dispatches(self, installed):
        installed.client.test_connection.return_value = (True, "Connection successful!")
        installed.config.library_id = "users-1"

        result = await server.handle_call_tool("ping", None)

        assert not result.isError
        assert "users-1" in result.content[0].text

    async def test_filtered_tool_is_unknown(self, installed):
        result = await server.handle_call_tool("zotero_sync", {})

        assert result.isError
        content = result.content[0]
        assert isinstance(content, types.TextContent)
        assert content.text.startswith("Error (unknown_tool): Unknown tool: zotero_sync")


class TestRunEntryPoint:
    def _run(self, argv, asyncio_side_effect=None):
        with (
            patch.object(sys, "argv", ["zotero-sync-mcp", *argv]),
            patch("zotero_sync.mcp.server.main", MagicMock()) as mock_main,
            patch(
                "zotero_sync.mcp.server.asyncio.run",
                side_effect=asyncio_side_effect,
            ),
        ):
            server.run()
        return mock_main

    def test_overrides_passed_to_main(self):
        mock_main = self._run(
            ["--user-id", "42", "--library-type", "group", "--group-id", "7",
             "--read-only", "--debug"]
        )
        mock_main.assert_called_once_with(
            config_overrides={
                "user_id": "42",
                "library_type": "group",
                "group_id": "7",
                "log_file": "/tmp/zotero-sync.log",
                "read_only": True,
                "debug": True,
            }
        )

    def test_default_log_file(self):
        mock_main = self._run([])
        mock_main.assert_called_once_with(
            config_overrides={"log_file": "/tmp/zotero-sync.log"}
        )

    def test_startup_failure_exits_1(self):
        with pytest.raises(SystemExit) as exc_info:
            self._run([], asyncio_side_effect=RuntimeError("Configuration error"))
        assert exc_info.value.code == 1

    def test_interrupt_exits_0(self):
        with pytest.raises(SystemExit) as exc_info:
            self._run([], asyncio_side_effect=KeyboardInterrupt())
        assert exc_info.value.code == 0

    def test_invalid_library_type_rejected(self):
        with pytest.raises(SystemExit) as exc_info:
            self._run(["--library-type", "team"])
        assert exc_info.value.code == 2
