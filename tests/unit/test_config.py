"""Tests for Config module."""

from pathlib import Path

import pytest

from ucdiag.config import Config, load_databrickscfg, parse_connection_string
from ucdiag.exceptions import ConfigError

ENV_VARS = (
    "UCDIAG_CATALOG",
    "UCDIAG_SCHEMA",
    "UCDIAG_SCHEMA_PATH",
    "UCDIAG_PROOF_CORE",
    "DATABRICKS_HOST",
    "DATABRICKS_TOKEN",
    "DATABRICKS_CONFIG_PROFILE",
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """No ucdiag/databricks env vars and an empty home directory."""
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setattr(Path, "home", lambda: tmp_path)
    return tmp_path


def write_databrickscfg(home: Path, content: str) -> None:
    (home / ".databrickscfg").write_text(content)


class TestLoadDatabricksCfg:
    """Test ~/.databrickscfg parsing."""

    def test_missing_file_returns_empty(self, clean_env):
        """No config file is not an error."""
        assert load_databrickscfg() == {}

    def test_loads_profile_and_normalizes_host(self, clean_env):
        """https:// prefix and trailing slash are stripped from host."""
        write_databrickscfg(
            clean_env,
            "[dev]\nhost = https://dev.cloud.databricks.com/\ntoken = dapi-dev\n",
        )

        assert load_databrickscfg("dev") == {
            "host": "dev.cloud.databricks.com",
            "token": "dapi-dev",
        }

    def test_missing_profile_raises(self, clean_env):
        """Asking for an unknown profile lists the available ones."""
        write_databrickscfg(clean_env, "[dev]\nhost = dev\n")

        with pytest.raises(ConfigError, match="Available profiles: dev"):
            load_databrickscfg("prod")


class TestParseConnectionString:
    """Test connection string parsing."""

    def test_full_url(self):
        """Token, host, catalog and schema are all extracted."""
        assert parse_connection_string(
            "databricks://dapi123@example.cloud.databricks.com/main/sales"
        ) == {
            "host": "example.cloud.databricks.com",
            "token": "dapi123",
            "catalog": "main",
            "schema": "sales",
        }

    def test_host_only(self):
        """Catalog and schema are optional."""
        assert parse_connection_string("databricks://example.com") == {
            "host": "example.com"
        }

    def test_port_is_kept_with_host(self):
        assert parse_connection_string("databricks://example.com:443/main")[
            "host"
        ] == "example.com:443"

    def test_bare_name_is_profile(self):
        """A string without a scheme names a ~/.databrickscfg profile."""
        assert parse_connection_string("dev") == {"profile": "dev"}

    @pytest.mark.parametrize(
        "value",
        ["", "   ", "postgres://localhost/db", "databricks:///main", "databricks://h/a/b/c"],
    )
    def test_invalid_connection_strings(self, value):
        with pytest.raises(ConfigError):
            parse_connection_string(value)


class TestConfigFromEnv:
    """Test Config.from_env() resolution order."""

    def test_config_loads_from_env(self, clean_env, monkeypatch):
        """Config.from_env() should load all values from environment variables."""
        monkeypatch.setenv("UCDIAG_CATALOG", "main")
        monkeypatch.setenv("UCDIAG_SCHEMA", "sales")
        monkeypatch.setenv("UCDIAG_SCHEMA_PATH", "schema/constraints.yaml")
        monkeypatch.setenv("UCDIAG_PROOF_CORE", "core")
        monkeypatch.setenv("DATABRICKS_HOST", "my-workspace.databricks.com")
        monkeypatch.setenv("DATABRICKS_TOKEN", "dapi123")

        config = Config.from_env()

        assert config.catalog == "main"
        assert config.schema == "sales"
        assert config.schema_path == "schema/constraints.yaml"
        assert config.proof_core_path == "core"
        assert config.databricks_host == "my-workspace.databricks.com"
        assert config.databricks_token == "dapi123"
        assert config.profile == "DEFAULT"

    def test_explicit_beats_env_beats_profile(self, clean_env, monkeypatch):
        """Explicit args > env vars > ~/.databrickscfg."""
        write_databrickscfg(
            clean_env, "[DEFAULT]\nhost = cfg-host\ntoken = cfg-token\n"
        )
        monkeypatch.setenv("DATABRICKS_HOST", "env-host")

        config = Config.from_env(catalog="explicit")

        assert config.catalog == "explicit"
        assert config.databricks_host == "env-host"
        assert config.databricks_token == "cfg-token"

    def test_profile_from_env(self, clean_env, monkeypatch):
        """DATABRICKS_CONFIG_PROFILE selects the profile."""
        write_databrickscfg(clean_env, "[dev]\nhost = dev-host\ntoken = dev-token\n")
        monkeypatch.setenv("DATABRICKS_CONFIG_PROFILE", "dev")

        config = Config.from_env()

        assert config.profile == "dev"
        assert config.databricks_host == "dev-host"

    def test_missing_default_profile_is_tolerated(self, clean_env):
        """An implicit profile that does not exist resolves to nothing."""
        write_databrickscfg(clean_env, "[dev]\nhost = dev-host\n")

        config = Config.from_env()

        assert config.databricks_host is None

    def test_missing_explicit_profile_raises(self, clean_env):
        """An explicitly requested profile must exist."""
        write_databrickscfg(clean_env, "[dev]\nhost = dev-host\n")

        with pytest.raises(ConfigError, match="Profile 'prod' not found"):
            Config.from_env(profile="prod")


class TestConfigFromConnectionString:
    """Test Config.from_connection_string()."""

    def test_fields_from_url(self, clean_env):
        config = Config.from_connection_string("databricks://tok@host/main/sales")

        assert config.databricks_host == "host"
        assert config.databricks_token == "tok"
        assert config.catalog == "main"
        assert config.schema == "sales"

    def test_overrides_win(self, clean_env):
        """Keyword overrides beat values carried by the string."""
        config = Config.from_connection_string(
            "databricks://tok@host/main/sales", schema="finance"
        )

        assert config.schema == "finance"
        assert config.catalog == "main"

    def test_gaps_filled_from_env(self, clean_env, monkeypatch):
        monkeypatch.setenv("DATABRICKS_TOKEN", "env-token")
        monkeypatch.setenv("UCDIAG_SCHEMA", "sales")

        config = Config.from_connection_string("databricks://host/main")

        assert config.databricks_token == "env-token"
        assert config.schema == "sales"

    def test_profile_name(self, clean_env):
        """A bare name loads credentials from that profile."""
        write_databrickscfg(clean_env, "[dev]\nhost = dev-host\ntoken = dev-token\n")

        config = Config.from_connection_string("dev")

        assert config.profile == "dev"
        assert config.databricks_token == "dev-token"


class TestConfigValidation:
    """Test validate_for_db_ops()."""

    def test_valid_config_passes(self):
        Config(
            catalog="main",
            schema="sales",
            databricks_host="host",
            databricks_token="tok",
        ).validate_for_db_ops()

    def test_lists_every_missing_field(self):
        """All missing fields are reported together."""
        with pytest.raises(ConfigError) as exc_info:
            Config(catalog="main").validate_for_db_ops()

        message = str(exc_info.value)
        assert "schema" in message
        assert "databricks_host" in message
        assert "databricks_token" in message
        assert "catalog (" not in message

    def test_with_overrides_ignores_none(self):
        config = Config(catalog="main", schema="sales")

        updated = config.with_overrides(catalog=None, schema="finance")

        assert updated.catalog == "main"
        assert updated.schema == "finance"
