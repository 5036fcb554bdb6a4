"""Shared test helpers for ucdiag tests."""

from unittest.mock import MagicMock

from ucdiag.config import Config
from ucdiag.executor import ConnectionTarget
from ucdiag.schema.models import Column, Constraint, SchemaModel, Table
from ucdiag.types import ConstraintType


class FakeRow:
    """Mock row from DatabricksClient.fetchall().

    Supports dict-like access via __getitem__, .get(), and .asDict().
    """

    def __init__(self, data: dict):
        self._data = data

    def __getitem__(self, key):
        return self._data[key]

    def get(self, key, default=None):
        return self._data.get(key, default)

    def asDict(self):
        return self._data


def make_test_config(
    catalog: str = "main",
    schema: str = "sales",
    **kwargs,
) -> Config:
    """Create a Config for tests with sensible defaults."""
    return Config(
        catalog=catalog,
        schema=schema,
        databricks_host=kwargs.pop("databricks_host", "example.cloud.databricks.com"),
        databricks_token=kwargs.pop("databricks_token", "dapi-test"),
        **kwargs,
    )


SAMPLE_TABLES = [
    {"table_name": "orders", "table_type": "MANAGED"},
    {"table_name": "users", "table_type": "MANAGED"},
]

SAMPLE_COLUMNS = {
    "orders": [
        {"table_name": "orders", "column_name": "id", "data_type": "bigint",
         "is_nullable": "NO", "ordinal_position": 1},
        {"table_name": "orders", "column_name": "user_id", "data_type": "bigint",
         "is_nullable": "YES", "ordinal_position": 2},
        {"table_name": "orders", "column_name": "amount", "data_type": "decimal(10,2)",
         "is_nullable": "YES", "ordinal_position": 3},
    ],
    "users": [
        {"table_name": "users", "column_name": "id", "data_type": "bigint",
         "is_nullable": "NO", "ordinal_position": 1},
        {"table_name": "users", "column_name": "name", "data_type": "string",
         "is_nullable": "YES", "ordinal_position": 2},
        {"table_name": "users", "column_name": "email", "data_type": "string",
         "is_nullable": "YES", "ordinal_position": 3},
    ],
}


def constraint_row(
    name: str,
    constraint_type: str,
    table_name: str,
    column_name: str | None = None,
    ordinal_position: int = 1,
    foreign_table_name: str | None = None,
    foreign_column_name: str | None = None,
    check_clause: str | None = None,
    table_schema: str = "sales",
) -> dict:
    """One information_schema row of the joined constraint query."""
    return {
        "constraint_name": name,
        "constraint_type": constraint_type,
        "table_schema": table_schema,
        "table_name": table_name,
        "column_name": column_name,
        "ordinal_position": ordinal_position,
        "foreign_table_schema": table_schema if foreign_table_name else None,
        "foreign_table_name": foreign_table_name,
        "foreign_column_name": foreign_column_name,
        "check_clause": check_clause,
    }


SAMPLE_CONSTRAINT_ROWS = [
    constraint_row("ck_orders_amount", "CHECK", "orders", check_clause="(amount > 0)"),
    constraint_row(
        "fk_orders_user", "FOREIGN KEY", "orders", "user_id",
        foreign_table_name="users", foreign_column_name="id",
    ),
    constraint_row("pk_orders", "PRIMARY KEY", "orders", "id"),
    constraint_row("pk_users", "PRIMARY KEY", "users", "id"),
]


def make_mock_executor(
    tables_data: list[dict] | None = None,
    columns_data: dict[str, list[dict]] | None = None,
    constraint_rows: list[dict] | None = None,
    query_results: dict[str, list[dict] | Exception] | None = None,
) -> MagicMock:
    """Create a mock query executor routing on SQL text.

    Args:
        tables_data: rows for information_schema.tables
        columns_data: table_name -> rows for information_schema.columns
        constraint_rows: rows for the joined table_constraints query
        query_results: substring -> rows (or an exception to raise) for any
            other statement; first matching substring wins, case-insensitive.
            Unmatched statements return no rows.
    """
    executor = MagicMock()
    tables_data = SAMPLE_TABLES if tables_data is None else tables_data
    columns_data = SAMPLE_COLUMNS if columns_data is None else columns_data
    constraint_rows = SAMPLE_CONSTRAINT_ROWS if constraint_rows is None else constraint_rows
    query_results = query_results or {}

    def fetchall_side_effect(sql: str):
        sql_lower = sql.lower()

        for needle, result in query_results.items():
            if needle.lower() in sql_lower:
                if isinstance(result, Exception):
                    raise result
                return [FakeRow(r) for r in result]

        if "information_schema.tables" in sql_lower:
            return [FakeRow(t) for t in tables_data]

        if "information_schema.columns" in sql_lower:
            for table_name, cols in columns_data.items():
                if f"'{table_name}'" in sql_lower:
                    return [FakeRow(c) for c in cols]
            return []

        if "information_schema.table_constraints" in sql_lower:
            return [FakeRow(r) for r in constraint_rows]

        return []

    executor.fetchall.side_effect = fetchall_side_effect
    return executor


def make_target(executor, catalog: str = "main", schema: str = "sales") -> ConnectionTarget:
    return ConnectionTarget(executor=executor, catalog=catalog, schema=schema)


def make_fake_factory(executor, catalog: str = "main", schema: str = "sales"):
    """Session factory that always hands out the same mock executor."""
    factory = MagicMock(side_effect=lambda cs: make_target(executor, catalog, schema))
    return factory


def make_constraint(
    name: str = "uq_users_email",
    constraint_type: ConstraintType = ConstraintType.UNIQUE,
    table_name: str = "users",
    columns: tuple[str, ...] = ("email",),
    **kwargs,
) -> Constraint:
    return Constraint(
        name=name,
        constraint_type=constraint_type,
        table_schema=kwargs.pop("table_schema", "sales"),
        table_name=table_name,
        columns=columns,
        **kwargs,
    )


def make_users_table() -> Table:
    return Table(
        schema="sales",
        name="users",
        columns=(
            Column("id", "BIGINT", nullable=False, ordinal_position=1),
            Column("name", "STRING", ordinal_position=2),
            Column("email", "STRING", ordinal_position=3),
        ),
        primary_key=("id",),
    )


def make_schema_model(
    constraints: tuple[Constraint, ...] = (),
    tables: tuple[Table, ...] | None = None,
) -> SchemaModel:
    return SchemaModel(
        catalog="main",
        schema="sales",
        tables=tables if tables is not None else (make_users_table(),),
        constraints=constraints,
    )
