"""Runtime configuration for zotero_sync.

Reads Zotero connection and sync settings from CLI args, environment
variables, .env files, and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    ZOTERO_API_KEY: Zotero Web API key (required)
    ZOTERO_USER_ID: Numeric Zotero user id (required)
    ZOTERO_LIBRARY_TYPE: "user" or "group" (optional, default: user)
    ZOTERO_GROUP_ID: Group id, required when the library type is "group"
    ZOTERO_SYNC_TAG: Tag marking items to sync (optional, default: obsidian)
    ZOTERO_VAULT_ROOT: Root directory for notes (optional, default: .)
"""

import logging
import os
from dataclasses import dataclass, field

from .config_schema import UnifiedConfig, to_legacy_config
from .errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass
class Config:
    api_key: str
    user_id: str
    library_type: str = "user"
    group_id: str = ""
    base_url: str = "https://api.zotero.org"
    page_limit: int = 100
    timeout: float = 30.0
    sync_tag: str = "obsidian"
    vault_root: str = "."
    output_folder: str = "Zotero Literature Notes"
    image_output_folder: str = "Maintenance/Attachments"
    state_dir: str = ".zotero_sync"
    template_path: str = ""
    preserve_user_content: bool = True
    first_sync_policy: str = "additive"
    long_note_cutoff: int = 20
    file_name_template: str = "{{citekey}}"
    cache_dirs: dict[str, str] = field(default_factory=dict)
    debug: bool = False

    @property
    def library_prefix(self) -> str:
        """URL path prefix selecting the user or group library."""
        if self.library_type == "group" and self.group_id:
            return f"/groups/{self.group_id}"
        return f"/users/{self.user_id}"

    @property
    def library_id(self) -> str:
        """Filesystem-safe library identifier, e.g. ``users-12345``."""
        return self.library_prefix.strip("/").replace("/", "-")


def validate_identity(config: Config) -> None:
    """Check the identity fields every sync cycle depends on.

    Raises:
        ConfigurationError: If the API key or user id is missing, or a
            group library has no group id.
    """
    if not config.api_key.strip():
        raise ConfigurationError(
            "Zotero API key not configured. Set ZOTERO_API_KEY environment variable."
        )
    if not config.user_id.strip():
        raise ConfigurationError(
            "User ID is required. Set ZOTERO_USER_ID environment variable."
        )
    if config.library_type == "group" and not config.group_id.strip():
        raise ConfigurationError(
            "Group ID is required for group libraries. Set ZOTERO_GROUP_ID."
        )


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ConfigurationError if invalid.

    Args:
        config: Config instance to validate.

    Raises:
        ConfigurationError: If identity is incomplete or values are out of range.
    """
    config.base_url = config.base_url.strip().removesuffix("/")
    if not config.base_url.startswith(("http://", "https://")):
        raise ConfigurationError(
            f"Invalid Zotero API URL '{config.base_url}': must start with http:// or https://"
        )

    if config.library_type not in ("user", "group"):
        raise ConfigurationError(
            f"Invalid library type '{config.library_type}': must be 'user' or 'group'"
        )

    if config.first_sync_policy not in ("additive", "remote-wins"):
        raise ConfigurationError(
            f"Invalid first_sync_policy '{config.first_sync_policy}': "
            "must be 'additive' or 'remote-wins'"
        )

    if not config.sync_tag.strip():
        raise ConfigurationError("Sync tag cannot be empty.")

    validate_identity(config)


def load_config(
    api_key: str | None = None,
    user_id: str | None = None,
    library_type: str | None = None,
    group_id: str | None = None,
    debug: bool = False,
    unified: UnifiedConfig | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > YAML (``unified``) > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Returns:
        Validated Config instance.

    Raises:
        ConfigurationError: If required config is missing after checking
            all sources.
    """
    base = to_legacy_config(unified or UnifiedConfig())

    def get_bool_env(key: str) -> bool | None:
        """Return True/False from env var, or None if unset."""
        val = os.getenv(key)
        if val is None:
            return None
        return val.lower() in ("true", "1", "yes", "on")

    base.api_key = (api_key or os.getenv("ZOTERO_API_KEY") or base.api_key).strip()
    base.user_id = (user_id or os.getenv("ZOTERO_USER_ID") or base.user_id).strip()
    base.library_type = (
        library_type or os.getenv("ZOTERO_LIBRARY_TYPE") or base.library_type
    ).strip().lower()
    base.group_id = (
        group_id or os.getenv("ZOTERO_GROUP_ID") or base.group_id
    ).strip()
    base.sync_tag = os.getenv("ZOTERO_SYNC_TAG") or base.sync_tag
    base.vault_root = os.getenv("ZOTERO_VAULT_ROOT") or base.vault_root

    if debug:
        base.debug = True
    else:
        env_debug = get_bool_env("ZOTERO_SYNC_DEBUG")
        base.debug = bool(env_debug)

    validate_config(base)

    return base
