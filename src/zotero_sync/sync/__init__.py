"""Incremental Zotero-to-notes sync engine.

Public API for keeping a folder of Markdown literature notes in step with
the items of a Zotero library that carry the sync tag.

Architecture
------------
Each item's version is compared with the version last written to its
note, so a steady-state cycle costs one conditional listing request.
Tags are edited on both sides; a **three-way merge** against the tag set
of the previous reconciliation tells remote deletions apart from stale
local copies, and the merged set is pushed back to Zotero.

Modules:

- ``engine``    -- ``SyncOrchestrator``: full cycle, single record,
  baseline reset, progress subscription.
- ``state``     -- ``SyncState`` plus the version and tag baseline stores.
- ``detector``  -- ``ChangeDetector`` and its side conditions.
- ``merger``    -- ``merge_tags`` and ``TagMerger``.
- ``tags``      -- tag normalisation and front matter parsing.
- ``comments``  -- the user-editable Comments zone.
- ``assets``    -- annotation images.
- ``ports``     -- protocols for the remote library, renderer and store.
- ``models``    -- core data contracts.
- ``reporter``  -- human-readable and JSON outcome formatting.

Usage example
-------------
::

    from pathlib import Path
    from zotero_sync.adapters import (
        FileDocumentStore,
        ZoteroRemoteLibrary,
        create_renderer,
    )
    from zotero_sync.config import load_config
    from zotero_sync.core.client import ZoteroClient
    from zotero_sync.sync import (
        SyncOrchestrator,
        SyncStateStore,
        format_sync_outcome,
    )

    config = load_config()
    state_store = SyncStateStore(
        Path(config.vault_root) / config.state_dir, config.library_id
    )
    store = FileDocumentStore(Path(config.vault_root))
    orchestrator = SyncOrchestrator(
        config,
        state_store.load(),
        state_store.save,
        ZoteroRemoteLibrary(ZoteroClient(config)),
        create_renderer(config),
        store,
    )

    outcome = await orchestrator.run_full_cycle()
    print(format_sync_outcome(outcome))
"""

from .engine import SyncOrchestrator
from .merger import FirstSyncPolicy, TagMerger, merge_tags
from .models import (
    ChangeDecision,
    RemoteRecord,
    RenderContext,
    SyncOutcome,
    SyncPhase,
    TagMergeResult,
    TagPushStatus,
)
from .reporter import format_sync_outcome, outcome_to_json
from .state import (
    SyncState,
    SyncStateStore,
    TagBaselineStore,
    VersionBaselineStore,
)

__all__ = [
    "ChangeDecision",
    "FirstSyncPolicy",
    "RemoteRecord",
    "RenderContext",
    "SyncOrchestrator",
    "SyncOutcome",
    "SyncPhase",
    "SyncState",
    "SyncStateStore",
    "TagBaselineStore",
    "TagMergeResult",
    "TagMerger",
    "TagPushStatus",
    "VersionBaselineStore",
    "format_sync_outcome",
    "merge_tags",
    "outcome_to_json",
]
