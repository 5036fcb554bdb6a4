"""Configuration management for ucdiag."""

import configparser
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlparse

from ucdiag.exceptions import ConfigError

CONNECTION_SCHEME = "databricks"


def load_databrickscfg(profile: str = "DEFAULT") -> dict[str, str]:
    """Load credentials from ~/.databrickscfg.

    Args:
        profile: Profile name to load (default: "DEFAULT")

    Returns:
        Dict with host and token when present; empty if the file is missing.

    Raises:
        ConfigError: If the profile doesn't exist
    """
    cfg_path = Path.home() / ".databrickscfg"
    if not cfg_path.exists():
        return {}

    config = configparser.ConfigParser()
    config.read(cfg_path)

    if profile not in config:
        available = [s for s in config.sections() if s != "DEFAULT"] or ["DEFAULT"]
        raise ConfigError(
            f"Profile '{profile}' not found in ~/.databrickscfg. "
            f"Available profiles: {', '.join(available)}"
        )

    section = config[profile]
    result = {}

    if "host" in section:
        result["host"] = _normalize_host(section["host"])

    if "token" in section:
        result["token"] = section["token"].strip()

    return result


def _normalize_host(host: str) -> str:
    host = host.strip()
    if host.startswith("https://"):
        host = host[8:]
    return host.rstrip("/")


def parse_connection_string(connection_string: str) -> dict[str, str]:
    """Split a connection string into config fields.

    Accepts ``databricks://[token@]host[/catalog[/schema]]`` or a bare
    ~/.databrickscfg profile name.
    """
    text = (connection_string or "").strip()
    if not text:
        raise ConfigError("Empty connection string")

    if "://" not in text:
        return {"profile": text}

    parsed = urlparse(text)
    if parsed.scheme != CONNECTION_SCHEME:
        raise ConfigError(
            f"Unsupported connection scheme '{parsed.scheme}' "
            f"(expected {CONNECTION_SCHEME}://)"
        )
    if not parsed.hostname:
        raise ConfigError(f"Connection string has no host: {connection_string!r}")

    fields = {"host": parsed.hostname}
    if parsed.port:
        fields["host"] = f"{parsed.hostname}:{parsed.port}"
    if parsed.username:
        fields["token"] = unquote(parsed.username)

    parts = [unquote(p) for p in parsed.path.split("/") if p]
    if len(parts) > 2:
        raise ConfigError(
            f"Connection path must be /catalog[/schema], got '{parsed.path}'"
        )
    if parts:
        fields["catalog"] = parts[0]
    if len(parts) == 2:
        fields["schema"] = parts[1]
    return fields


@dataclass(frozen=True)
class Config:
    """Configuration for ucdiag."""

    catalog: Optional[str] = None
    schema: Optional[str] = None
    schema_path: Optional[str] = None
    proof_core_path: Optional[str] = None
    databricks_host: Optional[str] = None
    databricks_token: Optional[str] = None
    profile: Optional[str] = None

    @classmethod
    def from_env(
        cls,
        *,
        catalog: Optional[str] = None,
        schema: Optional[str] = None,
        schema_path: Optional[str] = None,
        proof_core_path: Optional[str] = None,
        databricks_host: Optional[str] = None,
        databricks_token: Optional[str] = None,
        profile: Optional[str] = None,
    ) -> "Config":
        """Load configuration from ~/.databrickscfg, env vars, with explicit overrides.

        Priority (highest to lowest):
        1. Explicit parameters (CLI args, connection string)
        2. Environment variables
        3. ~/.databrickscfg profile
        """
        databricks_cfg = {}
        profile_name = profile or os.environ.get("DATABRICKS_CONFIG_PROFILE", "DEFAULT")
        try:
            databricks_cfg = load_databrickscfg(profile_name)
        except ConfigError:
            if profile is not None:
                raise

        def resolve(explicit, env_key, cfg_key=None):
            if explicit is not None:
                return explicit
            env_val = os.environ.get(env_key)
            if env_val is not None:
                return env_val
            if cfg_key and cfg_key in databricks_cfg:
                return databricks_cfg[cfg_key]
            return None

        return cls(
            catalog=resolve(catalog, "UCDIAG_CATALOG"),
            schema=resolve(schema, "UCDIAG_SCHEMA"),
            schema_path=resolve(schema_path, "UCDIAG_SCHEMA_PATH"),
            proof_core_path=resolve(proof_core_path, "UCDIAG_PROOF_CORE"),
            databricks_host=resolve(databricks_host, "DATABRICKS_HOST", "host"),
            databricks_token=resolve(databricks_token, "DATABRICKS_TOKEN", "token"),
            profile=profile_name,
        )

    @classmethod
    def from_connection_string(
        cls, connection_string: str, **overrides: Optional[str]
    ) -> "Config":
        """Resolve a connection string, then fill the gaps from env and profile.

        Explicit keyword overrides win over values carried by the string.
        """
        fields = parse_connection_string(connection_string)
        merged = {
            "catalog": fields.get("catalog"),
            "schema": fields.get("schema"),
            "databricks_host": fields.get("host"),
            "databricks_token": fields.get("token"),
            "profile": fields.get("profile"),
        }
        merged.update({k: v for k, v in overrides.items() if v is not None})
        return cls.from_env(**merged)

    def with_overrides(self, **overrides: Optional[str]) -> "Config":
        """Return a copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def validate_for_db_ops(self) -> None:
        """Validate that all required fields for database operations are present.

        Raises:
            ConfigError: If catalog, schema, or connection info is missing.
        """
        missing = []
        if not self.catalog:
            missing.append("catalog (use --catalog or UCDIAG_CATALOG)")
        if not self.schema:
            missing.append("schema (use --schema or UCDIAG_SCHEMA)")
        if not self.databricks_host:
            missing.append("databricks_host (use --profile or DATABRICKS_HOST)")
        if not self.databricks_token:
            missing.append("databricks_token (use --profile or DATABRICKS_TOKEN)")

        if missing:
            raise ConfigError(
                "Missing required configuration:\n  - " + "\n  - ".join(missing)
            )
