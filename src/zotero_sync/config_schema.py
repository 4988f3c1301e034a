"""Unified configuration schema for zotero_sync.

Defines Pydantic models for the unified config structure with dedicated
sections for the Zotero connection, sync behaviour and logging.  Includes an
adapter function producing the flat ``Config`` dataclass used at runtime.

Usage:
    from zotero_sync.config_schema import (
        UnifiedConfig, build_config, to_legacy_config,
    )

    raw = load_hierarchical_config()
    unified = build_config(raw)
    config = to_legacy_config(unified, cli_overrides={"user_id": "12345"})
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class ZoteroConfig(BaseModel):
    """Zotero Web API connection settings.

    All fields are optional to support zero-config: env vars and CLI args
    can supply them at runtime instead.
    """

    api_key: str | None = Field(
        default=None, description="Zotero Web API key"
    )
    user_id: str | None = Field(
        default=None, description="Numeric Zotero user id"
    )
    library_type: Literal["user", "group"] = Field(
        default="user", description="Personal or group library"
    )
    group_id: str | None = Field(
        default=None, description="Group id for group libraries"
    )
    base_url: str = Field(
        default="https://api.zotero.org", description="API base URL"
    )
    page_limit: int = Field(
        default=100,
        ge=1,
        le=100,
        description="Items per page when listing (1-100)",
    )
    timeout: float = Field(
        default=30.0, gt=0, description="HTTP read timeout in seconds"
    )

    model_config = {"frozen": True}


class SyncConfig(BaseModel):
    """Sync behaviour settings.

    Attributes:
        sync_tag: Remote tag marking a record as in scope for syncing.
        vault_root: Root directory that holds the note folders.
        output_folder: Folder (relative to ``vault_root``) for notes.
        image_output_folder: Folder for extracted annotation images.
        state_dir: Directory holding the persisted sync state file.
        template_path: Optional note template (relative to ``vault_root``).
        preserve_user_content: Keep the user's Comments zone on update.
        first_sync_policy: Tag policy for a record's first reconciliation.
        long_note_cutoff: Minimum word count for a child note to render.
        file_name_template: Filename pattern for new notes.
        cache_dirs: Hostname to local Zotero cache directory.
    """

    sync_tag: str = Field(default="obsidian", min_length=1)
    vault_root: str = Field(default=".")
    output_folder: str = Field(default="Zotero Literature Notes")
    image_output_folder: str = Field(default="Maintenance/Attachments")
    state_dir: str = Field(default=".zotero_sync")
    template_path: str = Field(default="")
    preserve_user_content: bool = Field(default=True)
    first_sync_policy: Literal["additive", "remote-wins"] = Field(
        default="additive"
    )
    long_note_cutoff: int = Field(default=20, ge=0)
    file_name_template: str = Field(default="{{citekey}}")
    cache_dirs: dict[str, str] = Field(default_factory=dict)

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """Top-level unified configuration.

    Every section has sensible defaults, so ``UnifiedConfig()`` is valid.
    """

    zotero: ZoteroConfig = Field(default_factory=ZoteroConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Construct a ``UnifiedConfig`` from the raw dict returned by
    ``load_hierarchical_config()``.

    Missing sections get defaults.
    """
    if not raw_data:
        return UnifiedConfig()

    return UnifiedConfig(**raw_data)


# ---------------------------------------------------------------------------
# Adapter: UnifiedConfig -> runtime Config dataclass
# ---------------------------------------------------------------------------


def to_legacy_config(
    unified: UnifiedConfig,
    cli_overrides: dict | None = None,
) -> Config:
    """Convert a ``UnifiedConfig`` into the runtime ``Config`` dataclass,
    applying CLI overrides on top.

    CLI overrides dict keys: api_key, user_id, library_type, group_id,
    sync_tag, vault_root, debug.

    Returns:
        ``Config`` instance (NOT validated; call ``validate_config()``).
    """
    from .config import Config

    overrides = cli_overrides or {}
    z = unified.zotero
    s = unified.sync

    return Config(
        api_key=overrides.get("api_key") or z.api_key or "",
        user_id=overrides.get("user_id") or z.user_id or "",
        library_type=overrides.get("library_type") or z.library_type,
        group_id=overrides.get("group_id") or z.group_id or "",
        base_url=z.base_url,
        page_limit=z.page_limit,
        timeout=z.timeout,
        sync_tag=overrides.get("sync_tag") or s.sync_tag,
        vault_root=overrides.get("vault_root") or s.vault_root,
        output_folder=s.output_folder,
        image_output_folder=s.image_output_folder,
        state_dir=s.state_dir,
        template_path=s.template_path,
        preserve_user_content=s.preserve_user_content,
        first_sync_policy=s.first_sync_policy,
        long_note_cutoff=s.long_note_cutoff,
        file_name_template=s.file_name_template,
        cache_dirs=dict(s.cache_dirs),
        debug=overrides.get("debug", False),
    )
