"""End-to-end sync against a real Zotero library (gated by --run-live).

Needs ZOTERO_API_KEY and ZOTERO_USER_ID in the environment or a .env file.
A first cycle into an empty vault never pushes tags, so these tests only
read from Zotero.
"""

import os
from pathlib import Path

import pytest

from zotero_sync.adapters import FileDocumentStore, ZoteroRemoteLibrary, create_renderer
from zotero_sync.config import load_config
from zotero_sync.core.client import ZoteroClient
from zotero_sync.sync.engine import SyncOrchestrator
from zotero_sync.sync.state import SyncStateStore


@pytest.mark.live
class TestLiveEndToEnd:
    """Full cycle with a real Zotero account, written into tmp_path."""

    @pytest.fixture
    def live_config(self, tmp_path: Path):
        if not os.environ.get("ZOTERO_API_KEY"):
            pytest.skip("ZOTERO_API_KEY not set")
        config = load_config()
        config.vault_root = str(tmp_path)
        return config

    def test_connection(self, live_config):
        ok, message = ZoteroClient(live_config).test_connection()
        assert ok, message

    async def test_two_cycles(self, live_config, tmp_path: Path):
        client = ZoteroClient(live_config)
        store = SyncStateStore(tmp_path / live_config.state_dir, live_config.library_id)
        orchestrator = SyncOrchestrator(
            live_config,
            store.load(),
            store.save,
            ZoteroRemoteLibrary(client),
            create_renderer(live_config),
            FileDocumentStore(tmp_path),
        )

        first = await orchestrator.run_full_cycle()
        second = await orchestrator.run_full_cycle()

        assert first.errors == []
        assert first.updated == 0
        assert len(list((tmp_path / live_config.output_folder).glob("*.md"))) == (
            first.created
        )
        assert second.created == 0
        assert second.errors == []
        assert store.load().library_version == first.library_version
