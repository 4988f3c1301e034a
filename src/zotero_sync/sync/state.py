"""Durable sync state and the baseline stores built on top of it.

``SyncState`` holds everything that must survive a restart: the library
version cursor, the last synced version of every item, the tag set each
item had after its last reconciliation, and the filename each item was
first written under.  It lives in a JSON file under the state directory
(``sync_{library_id}.json``).

Key design choices:

* **Atomic writes** -- ``SyncStateStore.save()`` writes to a temp file then
  calls ``os.replace()`` so readers never see partial data.
* **Save after every mutation** -- the baseline stores call the injected
  ``save`` callback after each change, so a crash mid-cycle loses at most
  the record in flight.
* **Typed state** -- baselines are typed mappings on a Pydantic model
  rather than free-form dicts.
"""

from __future__ import annotations

import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

STATE_SCHEMA_VERSION = 1


class SyncState(BaseModel):
    """Persisted sync state for one Zotero library.

    Attributes:
        schema_version: File format version.
        library_version: Library version seen at the end of the last
            complete cycle; ``0`` forces a full listing.
        item_versions: Item key to last synced item version.
        synced_tags: Item key to the merged tag set of the last
            reconciliation (document formatting).
        item_filenames: Item key to the note filename (no extension).
        last_sync: ISO 8601 timestamp of the last save.
    """

    schema_version: int = STATE_SCHEMA_VERSION
    library_version: int = 0
    item_versions: dict[str, int] = Field(default_factory=dict)
    synced_tags: dict[str, list[str]] = Field(default_factory=dict)
    item_filenames: dict[str, str] = Field(default_factory=dict)
    last_sync: str | None = None


class SyncStateStore:
    """Load and save ``SyncState`` as JSON.

    Args:
        state_dir: Directory where state files are stored.
        library_id: Library identifier used in the filename
            (e.g. ``users-12345``).
    """

    def __init__(self, state_dir: Path, library_id: str) -> None:
        self._state_dir = state_dir
        self._library_id = library_id

    @property
    def path(self) -> Path:
        return self._state_dir / f"sync_{self._library_id}.json"

    def load(self) -> SyncState:
        """Read state from disk; an empty state when no file exists yet."""
        if not self.path.exists():
            return SyncState()
        return SyncState.model_validate_json(
            self.path.read_text(encoding="utf-8")
        )

    def save(self, state: SyncState) -> None:
        """Persist *state* atomically, stamping ``last_sync``.

        Creates the state directory if needed.
        """
        self._state_dir.mkdir(parents=True, exist_ok=True)
        state.last_sync = datetime.now(timezone.utc).isoformat()

        fd, tmp_path = tempfile.mkstemp(
            dir=str(self._state_dir), suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(state.model_dump_json(indent=2))
            os.replace(tmp_path, self.path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise


# ----------------------------------------------------------------------
# Baseline stores
# ----------------------------------------------------------------------


class VersionBaselineStore:
    """Per-item and library-wide version baselines.

    Args:
        state: The shared, in-memory sync state.
        save: Persists *state*; called after every mutation.
    """

    def __init__(self, state: SyncState, save: Callable[[], None]) -> None:
        self._state = state
        self._save = save

    @property
    def library_version(self) -> int:
        return self._state.library_version

    def set_library_version(self, version: int) -> None:
        self._state.library_version = version
        self._save()

    def get(self, item_key: str) -> int | None:
        """Last synced version of *item_key*, or ``None`` if never synced."""
        return self._state.item_versions.get(item_key)

    def is_changed(self, item_key: str, version: int) -> bool:
        stored = self.get(item_key)
        return stored is None or stored < version

    def set(self, item_key: str, version: int) -> None:
        """Record a successful write of *item_key* at *version*.

        Baselines only move forward; a lower version is ignored.
        """
        stored = self.get(item_key)
        if stored is not None and version < stored:
            logger.warning(
                "Ignoring version %d for %s below baseline %d",
                version,
                item_key,
                stored,
            )
            return
        self._state.item_versions[item_key] = version
        self._save()

    def tracked_keys(self) -> list[str]:
        return list(self._state.item_versions)

    def clear(self) -> None:
        """Forget every version so the next cycle treats all items as new."""
        self._state.library_version = 0
        self._state.item_versions = {}
        self._save()


class TagBaselineStore:
    """Per-item tag sets as of the last reconciliation.

    Args:
        state: The shared, in-memory sync state.
        save: Persists *state*; called after every mutation.
    """

    def __init__(self, state: SyncState, save: Callable[[], None]) -> None:
        self._state = state
        self._save = save

    def get(self, item_key: str) -> tuple[str, ...] | None:
        """Baseline tags for *item_key*; ``None`` before the first reconciliation."""
        tags = self._state.synced_tags.get(item_key)
        return tuple(tags) if tags is not None else None

    def set(self, item_key: str, tags: Iterable[str]) -> None:
        self._state.synced_tags[item_key] = list(tags)
        self._save()

    def __len__(self) -> int:
        return len(self._state.synced_tags)

    def clear(self) -> None:
        self._state.synced_tags = {}
        self._save()
