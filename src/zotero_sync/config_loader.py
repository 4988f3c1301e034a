"""
Hierarchical YAML configuration loader for zotero_sync.

Discovers config files by convention, supports ``!include`` for splitting
secrets or per-machine sections into separate files, interpolates
``${VAR}`` / ``${VAR:-default}`` from the environment, and merges files
with "project wins" semantics.

Usage:
    from zotero_sync.config_loader import load_hierarchical_config

    raw = load_hierarchical_config()
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "ZOTERO_SYNC_CONFIG"
PROJECT_DIR_NAME = ".zotero_sync"

# Matches ${VAR} and ${VAR:-default}
_ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+?)(?::-(.*?))?\}")


# ---------------------------------------------------------------------------
# Env var interpolation
# ---------------------------------------------------------------------------


def interpolate_env_vars(value: str) -> str:
    """Expand ``${VAR}`` and ``${VAR:-default}`` references in *value*.

    An unset or empty variable expands to its default, or to ``""`` when
    no default is given.
    """

    def _expand(match: re.Match) -> str:
        resolved = os.environ.get(match.group(1))
        if resolved:
            return resolved
        return match.group(2) or ""

    return _ENV_VAR_PATTERN.sub(_expand, value)


def _interpolate_tree(node: Any) -> Any:
    if isinstance(node, str):
        return interpolate_env_vars(node)
    if isinstance(node, dict):
        return {key: _interpolate_tree(val) for key, val in node.items()}
    if isinstance(node, list):
        return [_interpolate_tree(item) for item in node]
    return node


# ---------------------------------------------------------------------------
# YAML loading with !include
# ---------------------------------------------------------------------------


class IncludeLoader(yaml.SafeLoader):
    """``SafeLoader`` that understands ``!include relative/or/absolute.yml``.

    A subclass keeps the global ``yaml.SafeLoader`` untouched.  Each loader
    carries the chain of files being loaded so include cycles are reported
    instead of recursing forever.
    """

    include_chain: tuple[Path, ...] = ()


def _construct_include(loader: IncludeLoader, node: yaml.ScalarNode) -> Any:
    raw_target = Path(loader.construct_scalar(node)).expanduser()
    if not raw_target.is_absolute():
        raw_target = Path(loader.name).resolve().parent / raw_target
    target = raw_target.resolve()

    if target in loader.include_chain:
        chain = " -> ".join(str(p) for p in (*loader.include_chain, target))
        raise ValueError(f"Circular include detected: {chain}")
    if not target.is_file():
        raise FileNotFoundError(
            f"Include file not found: {target} (referenced from {loader.name})"
        )
    return load_yaml_file(target, _chain=loader.include_chain)


IncludeLoader.add_constructor("!include", _construct_include)


def load_yaml_file(path: Path, *, _chain: tuple[Path, ...] = ()) -> Any:
    """Parse one YAML file, following ``!include`` directives."""
    path = path.resolve()
    with open(path, encoding="utf-8") as fh:
        loader = IncludeLoader(fh)
        loader.include_chain = (*_chain, path)
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


def discover_config_files() -> list[Path]:
    """Return existing config files, highest precedence first.

    Search order:
        1. ``ZOTERO_SYNC_CONFIG`` env var (explicit path)
        2. ``.zotero_sync/config.yml`` in CWD
        3. ``.zotero_sync/config.yaml`` in CWD
        4. ``~/.config/zotero_sync/config.yml``
    """
    candidates: list[Path] = []

    explicit = os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        candidates.append(Path(explicit).expanduser().resolve())

    project_dir = Path.cwd() / PROJECT_DIR_NAME
    candidates.append(project_dir / "config.yml")
    candidates.append(project_dir / "config.yaml")
    candidates.append(Path.home() / ".config" / "zotero_sync" / "config.yml")

    return [p for p in candidates if p.exists()]


_STARTER_CONFIG = """\
# zotero-sync configuration
#
# Credentials can also come from the environment:
#   ZOTERO_API_KEY, ZOTERO_USER_ID, ZOTERO_LIBRARY_TYPE, ZOTERO_GROUP_ID
#
# zotero:
#   api_key: ${ZOTERO_API_KEY}
#   user_id: "1234567"
#   library_type: user
#
# sync:
#   sync_tag: obsidian
#   vault_root: ~/Notes
#   output_folder: Zotero Literature Notes
#   image_output_folder: Maintenance/Attachments
#   preserve_user_content: true
#   first_sync_policy: additive
#   cache_dirs:
#     my-laptop: ~/Zotero/cache
#
# logging:
#   level: INFO
#   file: null
"""


def ensure_config(target: Path | None = None) -> Path:
    """Return the active config file, writing a commented starter file
    (default ``CWD/.zotero_sync/config.yml``) when none exists yet.
    """
    existing = discover_config_files()
    if existing:
        logger.debug("Config file already exists: %s", existing[0])
        return existing[0]

    config_path = target or Path.cwd() / PROJECT_DIR_NAME / "config.yml"
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Created starter config: %s", config_path)
    return config_path


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


def load_hierarchical_config() -> dict[str, Any]:
    """Load and merge every discovered config file.

    Files are applied lowest precedence first; top-level sections of a
    higher-precedence file replace whole sections from lower ones.
    Environment interpolation runs after the merge.  Returns ``{}`` when
    no config file exists.
    """
    paths = discover_config_files()
    if not paths:
        logger.debug("No config files found; using defaults")
        return {}

    merged: dict[str, Any] = {}
    for path in reversed(paths):
        logger.debug("Loading config: %s", path)
        try:
            data = load_yaml_file(path)
        except Exception:
            logger.exception("Failed to load config file %s", path)
            raise

        if isinstance(data, dict):
            merged.update(data)
        elif data is not None:
            logger.warning(
                "Config file %s has non-dict root (%s), skipping",
                path,
                type(data).__name__,
            )

    return _interpolate_tree(merged)
