"""Tests for zotero_sync.config: env-var config loading and validation.

NOT to be confused with test_config_loader.py (hierarchical YAML config)
or test_config_schema.py (Pydantic models). This tests the runtime
bootstrap path: validate_config() and load_config().
"""

import pytest

from zotero_sync.config import (
    Config,
    load_config,
    validate_config,
    validate_identity,
)
from zotero_sync.config_schema import SyncConfig, UnifiedConfig, ZoteroConfig
from zotero_sync.errors import ConfigurationError

ENV_VARS = (
    "ZOTERO_API_KEY",
    "ZOTERO_USER_ID",
    "ZOTERO_LIBRARY_TYPE",
    "ZOTERO_GROUP_ID",
    "ZOTERO_SYNC_TAG",
    "ZOTERO_VAULT_ROOT",
    "ZOTERO_SYNC_DEBUG",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


# -------------------------------------------------------------------------
# Library identity
# -------------------------------------------------------------------------


class TestLibraryPrefix:
    def test_user_library(self):
        config = Config(api_key="k", user_id="42")
        assert config.library_prefix == "/users/42"
        assert config.library_id == "users-42"

    def test_group_library(self):
        config = Config(
            api_key="k", user_id="42", library_type="group", group_id="777"
        )
        assert config.library_prefix == "/groups/777"
        assert config.library_id == "groups-777"

    def test_group_without_id_falls_back_to_user(self):
        config = Config(api_key="k", user_id="42", library_type="group")
        assert config.library_prefix == "/users/42"


# -------------------------------------------------------------------------
# validate_config()
# -------------------------------------------------------------------------


class TestValidateConfig:
    """Tests for validate_config(): URL, policy and identity checks."""

    def test_valid_config(self):
        validate_config(Config(api_key="k", user_id="42"))

    def test_trailing_slash_stripped(self):
        config = Config(api_key="k", user_id="42", base_url="http://localhost:8080/")
        validate_config(config)
        assert config.base_url == "http://localhost:8080"

    def test_invalid_url_scheme(self):
        config = Config(api_key="k", user_id="42", base_url="ftp://zotero.org")
        with pytest.raises(
            ConfigurationError, match="must start with http:// or https://"
        ):
            validate_config(config)

    def test_invalid_library_type(self):
        config = Config(api_key="k", user_id="42", library_type="team")
        with pytest.raises(ConfigurationError, match="must be 'user' or 'group'"):
            validate_config(config)

    def test_invalid_policy(self):
        config = Config(api_key="k", user_id="42", first_sync_policy="local")
        with pytest.raises(ConfigurationError, match="first_sync_policy"):
            validate_config(config)

    def test_blank_sync_tag(self):
        config = Config(api_key="k", user_id="42", sync_tag=" ")
        with pytest.raises(ConfigurationError, match="Sync tag"):
            validate_config(config)

    def test_error_is_value_error(self):
        with pytest.raises(ValueError):
            validate_config(Config(api_key="", user_id="42"))


class TestValidateIdentity:
    def test_missing_api_key(self):
        with pytest.raises(ConfigurationError, match="ZOTERO_API_KEY"):
            validate_identity(Config(api_key="  ", user_id="42"))

    def test_missing_user_id(self):
        with pytest.raises(ConfigurationError, match="ZOTERO_USER_ID"):
            validate_identity(Config(api_key="k", user_id=""))

    def test_group_requires_group_id(self):
        config = Config(api_key="k", user_id="42", library_type="group")
        with pytest.raises(ConfigurationError, match="ZOTERO_GROUP_ID"):
            validate_identity(config)


# -------------------------------------------------------------------------
# load_config()
# -------------------------------------------------------------------------


class TestLoadConfig:
    """Tests for load_config() precedence: CLI > env > YAML > defaults."""

    def test_env_only(self, clean_env):
        clean_env.setenv("ZOTERO_API_KEY", "env-key")
        clean_env.setenv("ZOTERO_USER_ID", "111")

        config = load_config()

        assert config.api_key == "env-key"
        assert config.user_id == "111"
        assert config.sync_tag == "obsidian"
        assert config.debug is False

    def test_cli_beats_env(self, clean_env):
        clean_env.setenv("ZOTERO_API_KEY", "env-key")
        clean_env.setenv("ZOTERO_USER_ID", "111")

        config = load_config(api_key="cli-key", user_id="222")

        assert config.api_key == "cli-key"
        assert config.user_id == "222"

    def test_env_beats_yaml(self, clean_env):
        clean_env.setenv("ZOTERO_USER_ID", "111")
        clean_env.setenv("ZOTERO_SYNC_TAG", "to-read")
        unified = UnifiedConfig(
            zotero=ZoteroConfig(api_key="yaml-key", user_id="999"),
            sync=SyncConfig(sync_tag="yaml-tag", output_folder="Lit"),
        )

        config = load_config(unified=unified)

        assert config.api_key == "yaml-key"
        assert config.user_id == "111"
        assert config.sync_tag == "to-read"
        assert config.output_folder == "Lit"

    def test_values_are_stripped(self, clean_env):
        config = load_config(api_key="  k  ", user_id=" 42 ", library_type="USER")
        assert config.api_key == "k"
        assert config.user_id == "42"
        assert config.library_type == "user"

    def test_group_from_env(self, clean_env):
        clean_env.setenv("ZOTERO_LIBRARY_TYPE", "group")
        clean_env.setenv("ZOTERO_GROUP_ID", "555")
        config = load_config(api_key="k", user_id="42")
        assert config.library_prefix == "/groups/555"

    def test_debug_from_env(self, clean_env):
        clean_env.setenv("ZOTERO_SYNC_DEBUG", "yes")
        assert load_config(api_key="k", user_id="42").debug is True

    def test_debug_flag_wins(self, clean_env):
        clean_env.setenv("ZOTERO_SYNC_DEBUG", "false")
        assert load_config(api_key="k", user_id="42", debug=True).debug is True

    def test_missing_credentials_raise(self, clean_env):
        with pytest.raises(ConfigurationError, match="API key"):
            load_config()
