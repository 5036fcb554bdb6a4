from unittest.mock import MagicMock, patch

import pytest

from ucdiag.databricks.client import DatabricksClient
from ucdiag.executor import QueryExecutor


@pytest.fixture
def mock_session():
    with patch("ucdiag.databricks.client.DatabricksSession") as mock_db_session:
        mock_spark = MagicMock()
        mock_builder = MagicMock()
        mock_builder.host.return_value = mock_builder
        mock_builder.token.return_value = mock_builder
        mock_builder.profile.return_value = mock_builder
        mock_builder.getOrCreate.return_value = mock_spark
        mock_db_session.builder = mock_builder
        yield mock_db_session, mock_builder, mock_spark


def test_client_uses_host_and_token_when_provided(mock_session):
    mock_db_session, mock_builder, _ = mock_session

    client = DatabricksClient(
        host="test.databricks.com",
        token="dapi123",
        profile="dev",
    )
    client.connect()

    mock_builder.host.assert_called_once_with("test.databricks.com")
    mock_builder.token.assert_called_once_with("dapi123")
    mock_builder.profile.assert_not_called()
    mock_builder.getOrCreate.assert_called_once()


def test_client_uses_profile_without_explicit_credentials(mock_session):
    _, mock_builder, _ = mock_session

    client = DatabricksClient(profile="dev")
    client.connect()

    mock_builder.host.assert_not_called()
    mock_builder.token.assert_not_called()
    mock_builder.profile.assert_called_once_with("dev")


def test_client_uses_env_config_when_no_host_token(mock_session):
    _, mock_builder, _ = mock_session

    client = DatabricksClient()
    client.connect()

    mock_builder.host.assert_not_called()
    mock_builder.token.assert_not_called()
    mock_builder.getOrCreate.assert_called_once()


def test_connect_twice_raises(mock_session):
    client = DatabricksClient()
    client.connect()

    with pytest.raises(RuntimeError, match="Already connected"):
        client.connect()


def test_fetchall_returns_row_dicts(mock_session):
    _, _, mock_spark = mock_session
    row = MagicMock()
    row.asDict.return_value = {"violation_count": 3}
    mock_spark.sql.return_value.collect.return_value = [row]

    client = DatabricksClient()
    client.connect()
    rows = client.fetchall("SELECT COUNT(*) AS violation_count FROM t")

    mock_spark.sql.assert_called_once_with("SELECT COUNT(*) AS violation_count FROM t")
    assert rows == [{"violation_count": 3}]


def test_fetchall_requires_connection():
    client = DatabricksClient()

    with pytest.raises(RuntimeError, match="Not connected"):
        client.fetchall("SELECT 1")


def test_close_is_idempotent(mock_session):
    _, _, mock_spark = mock_session

    client = DatabricksClient()
    client.connect()
    client.close()
    client.close()

    mock_spark.stop.assert_called_once()
    assert client.connected is False


def test_context_manager_connects_and_closes(mock_session):
    _, _, mock_spark = mock_session

    with DatabricksClient() as client:
        assert client.connected is True

    mock_spark.stop.assert_called_once()


def test_client_satisfies_query_executor_protocol():
    assert isinstance(DatabricksClient(), QueryExecutor)
