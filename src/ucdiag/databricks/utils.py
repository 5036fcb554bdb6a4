"""Utility functions for Databricks operations.

Extracts connection setup from the CLI and the session for reuse and testability.
"""

from typing import Optional

from ucdiag.config import Config
from ucdiag.executor import ConnectionTarget


def build_config_and_validate(
    *,
    connection_string: Optional[str] = None,
    catalog: Optional[str] = None,
    schema: Optional[str] = None,
    profile: Optional[str] = None,
) -> Config:
    """Load config from a connection string or ~/.databrickscfg/env and validate it.

    Raises:
        ConfigError: If required configuration is missing.
    """
    if connection_string:
        config = Config.from_connection_string(
            connection_string, catalog=catalog, schema=schema, profile=profile
        )
    else:
        config = Config.from_env(catalog=catalog, schema=schema, profile=profile)
    config.validate_for_db_ops()
    return config


def databricks_target(config: Config) -> ConnectionTarget:
    """Build an unopened DatabricksClient for a validated config."""
    from ucdiag.databricks.client import DatabricksClient

    config.validate_for_db_ops()
    client = DatabricksClient(
        host=config.databricks_host,
        token=config.databricks_token,
        profile=config.profile,
    )
    return ConnectionTarget(executor=client, catalog=config.catalog, schema=config.schema)


def make_target_factory(
    *,
    catalog: Optional[str] = None,
    schema: Optional[str] = None,
    profile: Optional[str] = None,
):
    """Session executor factory: connection string -> ConnectionTarget.

    Catalog, schema and profile given here override what the connection
    string carries.
    """

    def factory(connection_string: str) -> ConnectionTarget:
        config = build_config_and_validate(
            connection_string=connection_string,
            catalog=catalog,
            schema=schema,
            profile=profile,
        )
        return databricks_target(config)

    return factory
