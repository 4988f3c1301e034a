"""Pydantic models for the incremental sync engine.

Defines the data contracts shared across the sync modules:

- ``RemoteRecord``: read-only snapshot of one Zotero item.
- ``ChangedRecords``: result of a candidate listing.
- ``TagPushStatus``: outcome of pushing a tag set back to Zotero.
- ``Decision`` / ``DecisionReason`` / ``ChangeDecision``: change detection.
- ``TagMergeResult``: outcome of one tag reconciliation.
- ``RenderContext``: everything besides the record a renderer needs.
- ``SyncPhase``: the orchestrator's two states.
- ``SyncOutcome``: counts and errors for one cycle.

Snapshots are frozen.  ``SyncOutcome`` is mutable because the orchestrator
accumulates into it while a cycle runs.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

#: Item types that live under a parent item and are never synced on their own.
CHILD_ITEM_TYPES = frozenset({"attachment", "note", "annotation"})

ALREADY_RUNNING_MESSAGE = "Sync already in progress"


class RemoteRecord(BaseModel):
    """One Zotero item as returned by the Web API.

    Attributes:
        key: Stable item key.
        version: Item version; bumped by the server on every mutation.
        item_type: Zotero item type (``journalArticle``, ``note``, ...).
        tags: Tag strings in remote order, as stored in Zotero.
        parent_key: Key of the parent item for attachments/notes/annotations.
        data: Full ``data`` payload, consumed by renderers.
        bib: Formatted bibliography HTML, when requested.
    """

    key: str
    version: int
    item_type: str = ""
    tags: tuple[str, ...] = ()
    parent_key: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    bib: str | None = None

    model_config = {"frozen": True}

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> RemoteRecord:
        """Build a snapshot from a Zotero API item object."""
        data = raw.get("data") or {}
        key = raw.get("key") or data.get("key")
        if not key:
            raise ValueError("Zotero item without a key")
        version = raw.get("version", data.get("version"))
        if version is None:
            raise ValueError(f"Zotero item {key} without a version")
        return cls(
            key=key,
            version=int(version),
            item_type=data.get("itemType", ""),
            tags=tuple(
                t["tag"] for t in data.get("tags") or [] if t.get("tag")
            ),
            parent_key=data.get("parentItem") or None,
            data=data,
            bib=raw.get("bib"),
        )

    @property
    def is_top_level(self) -> bool:
        """True for regular items; False for attachments, notes, annotations."""
        return self.item_type not in CHILD_ITEM_TYPES and not self.parent_key

    @property
    def title(self) -> str:
        return self.data.get("title") or ""


class ChangedRecords(BaseModel):
    """Candidate records returned by one listing request.

    Attributes:
        records: Records in server order (newest modified first).
        library_version: Library version reported by the server.
        not_modified: True when the server reported nothing newer than
            the requested version.
    """

    records: tuple[RemoteRecord, ...] = ()
    library_version: int = 0
    not_modified: bool = False

    model_config = {"frozen": True}


class TagPushStatus(str, Enum):
    """Result of ``RemoteLibrary.push_tags``."""

    SUCCESS = "success"
    CONFLICT = "conflict"
    FORBIDDEN = "forbidden"
    ERROR = "error"


class Decision(str, Enum):
    """What the change detector wants done with a record."""

    SKIP = "skip"
    PROCESS = "process"


class DecisionReason(str, Enum):
    """Why a record is processed or skipped."""

    NEW = "new"
    REMOTE_CHANGED = "remote_changed"
    DOCUMENT_MISSING = "document_missing"
    SIDE_CONDITION = "side_condition"
    UNCHANGED = "unchanged"
    REQUESTED = "requested"


class ChangeDecision(BaseModel):
    """Outcome of change detection for one record.

    Attributes:
        decision: Skip or process.
        reason: The first rule that fired.
        condition: Name of the side condition, when ``reason`` is
            ``SIDE_CONDITION``.
    """

    decision: Decision
    reason: DecisionReason
    condition: str | None = None

    model_config = {"frozen": True}

    @property
    def should_process(self) -> bool:
        return self.decision == Decision.PROCESS


class TagMergeResult(BaseModel):
    """Outcome of reconciling one record's tags.

    Attributes:
        merged_tags: Reconciled tags in document formatting, sync tag excluded.
        push_to_remote: Whether the remote tag set differs from the result.
        push_status: Result of the push, or ``None`` when none was attempted.
    """

    merged_tags: tuple[str, ...]
    push_to_remote: bool
    push_status: TagPushStatus | None = None

    model_config = {"frozen": True}


class RenderContext(BaseModel):
    """Inputs a renderer needs besides the record and its children.

    Renderers must produce identical text for identical contexts, so the
    sync timestamp is passed in rather than read from the clock.
    """

    citekey: str
    tags: tuple[str, ...] = ()
    sync_tag: str = ""
    collection_names: tuple[str, ...] = ()
    bibliography: str = ""
    annotations: tuple[RemoteRecord, ...] = ()
    annotation_images: dict[str, str] = Field(default_factory=dict)
    synced_at: str = ""

    model_config = {"frozen": True}


class SyncPhase(str, Enum):
    """Orchestrator state; a cycle may only start from ``IDLE``."""

    IDLE = "idle"
    RUNNING = "running"


class SyncOutcome(BaseModel):
    """Counts and per-record errors for one cycle.

    Created fresh for every cycle and never persisted.

    Attributes:
        created: Documents written for the first time.
        updated: Existing documents rewritten.
        skipped: Records left alone because nothing changed.
        errors: One message per failed record, in processing order.
        library_version: Library version cursor after the cycle, if known.
    """

    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: list[str] = Field(default_factory=list)
    library_version: int | None = None

    @classmethod
    def already_running(cls) -> SyncOutcome:
        """Degenerate outcome returned when a cycle is already running."""
        return cls(errors=[ALREADY_RUNNING_MESSAGE])

    @property
    def first_error(self) -> str | None:
        return self.errors[0] if self.errors else None

    @property
    def was_rejected(self) -> bool:
        """True when this outcome is a concurrent-trigger rejection."""
        return self.errors == [ALREADY_RUNNING_MESSAGE] and not (
            self.created or self.updated or self.skipped
        )

    @property
    def processed(self) -> int:
        return self.created + self.updated
