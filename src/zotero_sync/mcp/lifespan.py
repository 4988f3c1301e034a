"""Lifespan management for MCP server startup and shutdown."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from ..adapters import FileDocumentStore, ZoteroRemoteLibrary, create_renderer
from ..config import load_config
from ..config_loader import discover_config_files, load_hierarchical_config
from ..config_schema import build_config
from ..core.async_utils import run_sync
from ..core.client import ZoteroClient
from ..sync.engine import SyncOrchestrator
from ..sync.state import SyncStateStore
from .context import ServerContext

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback (safe in MCP mode)."""
    print(msg, file=sys.stderr, flush=True)


@asynccontextmanager
async def server_lifespan(
    config_overrides: dict[str, Any] | None = None,
) -> AsyncIterator[dict[str, Any]]:
    """
    Manage server startup and shutdown lifecycle.

    On startup:
    - Load .env file (so values are available for env var lookups and YAML interpolation)
    - Load YAML config file if present (as fallback values)
    - Merge all sources via load_config(): CLI > env vars > .env > YAML > defaults
    - Create ZoteroClient and validate the API key against the library
    - Load the persisted sync state and build the orchestrator

    Args:
        config_overrides: Optional dict with config values from CLI
            (api_key, user_id, library_type, group_id, debug)

    Yields:
        Dict with 'context' key containing the initialized ServerContext

    Raises:
        RuntimeError: If configuration is invalid or Zotero is unreachable.
    """
    logger.info("MCP server starting...")
    _stderr_print("Zotero Sync MCP Server starting...")

    try:
        # .env first so ${VAR} interpolation in YAML can use its values
        load_dotenv()

        unified = None
        sources = []
        config_files = discover_config_files()
        if config_files:
            unified = build_config(load_hierarchical_config())
            sources.append(f"config file: {config_files[0]}")

        overrides = config_overrides or {}
        config = load_config(
            api_key=overrides.get("api_key"),
            user_id=overrides.get("user_id"),
            library_type=overrides.get("library_type"),
            group_id=overrides.get("group_id"),
            debug=overrides.get("debug", False),
            unified=unified,
        )

        if overrides:
            sources.append("CLI arguments")
        sources.append("environment variables")
        source_desc = ", ".join(sources)
        logger.info("Configuration loaded from: %s", source_desc)
        _stderr_print(f"  Configuration loaded from: {source_desc}")
        logger.info("Zotero library: %s", config.library_prefix)
        _stderr_print(f"  Zotero library: {config.library_prefix}")
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        _stderr_print("  Ensure ZOTERO_API_KEY and ZOTERO_USER_ID are set.")
        raise RuntimeError(
            f"Configuration error: {e}. Ensure ZOTERO_API_KEY and ZOTERO_USER_ID are set."
        ) from e

    logger.info("Validating Zotero connection...")
    _stderr_print("  Validating Zotero connection...")
    client = ZoteroClient(config)
    ok, message = await run_sync(client.test_connection)
    if not ok:
        logger.error("Failed to connect to Zotero: %s", message)
        _stderr_print("ERROR: Zotero connection failed.")
        _stderr_print(f"  {message}")
        _stderr_print("  Check ZOTERO_API_KEY, ZOTERO_USER_ID, ZOTERO_GROUP_ID.")
        raise RuntimeError(
            f"Zotero connection failed: {message}. "
            "Check ZOTERO_API_KEY, ZOTERO_USER_ID, ZOTERO_GROUP_ID."
        )
    logger.info("Connected to Zotero: %s", message)
    _stderr_print(f"  {message}")

    vault_root = Path(config.vault_root).expanduser()
    state_store = SyncStateStore(vault_root / config.state_dir, config.library_id)
    try:
        state = state_store.load()
    except (OSError, ValueError) as e:
        logger.error("Cannot read sync state %s: %s", state_store.path, e)
        _stderr_print(f"ERROR: Cannot read sync state {state_store.path}: {e}")
        raise RuntimeError(f"Cannot read sync state: {e}") from e

    orchestrator = SyncOrchestrator(
        config,
        state,
        state_store.save,
        ZoteroRemoteLibrary(client),
        create_renderer(config),
        FileDocumentStore(vault_root),
    )
    _stderr_print(
        f"  Notes folder: {vault_root / config.output_folder} "
        f"({len(state.item_versions)} items tracked)"
    )
    _stderr_print("Server ready. Waiting for MCP client connection...")

    yield {
        "context": ServerContext(
            config=config,
            client=client,
            orchestrator=orchestrator,
            state_store=state_store,
        )
    }

    logger.info("MCP server shutting down")
    _stderr_print("Zotero Sync MCP Server shutting down.")
