"""Schema introspection from Unity Catalog information_schema."""

import logging
from typing import Any

from ucdiag.exceptions import IntrospectionError
from ucdiag.executor import QueryExecutor, row_get, sql_literal
from ucdiag.schema.models import Column, Constraint, SchemaModel, Table
from ucdiag.types import ConstraintType

logger = logging.getLogger(__name__)


class SchemaIntrospector:
    """Build a SchemaModel snapshot from information_schema views."""

    VALID_TABLE_TYPES = {"MANAGED", "EXTERNAL", "BASE TABLE"}

    def __init__(self, client: QueryExecutor, catalog: str, schema: str) -> None:
        self._client = client
        self._catalog = catalog
        self._schema = schema

    def introspect_schema(self) -> SchemaModel:
        """Introspect all tables and constraints in the schema.

        Raises:
            IntrospectionError: If tables or constraints cannot be enumerated.
        """
        logger.info(f"Introspecting {self._catalog}.{self._schema}")
        tables = []
        for table_name in self._fetch_table_names():
            tables.append(
                Table(
                    schema=self._schema,
                    name=table_name,
                    columns=tuple(self._fetch_columns(table_name)),
                )
            )

        constraints = self._fetch_constraints()
        tables = [self._with_primary_key(t, constraints) for t in tables]

        logger.info(f"Found {len(tables)} tables, {len(constraints)} constraints")
        return SchemaModel(
            catalog=self._catalog,
            schema=self._schema,
            tables=tuple(tables),
            constraints=tuple(constraints),
        )

    def _info_schema(self, view: str) -> str:
        return f"{self._catalog}.information_schema.{view}"

    def _fetchall(self, sql: str, what: str) -> list:
        logger.debug(sql)
        try:
            return self._client.fetchall(sql)
        except Exception as e:
            raise IntrospectionError(f"Cannot read {what}: {e}") from e

    def _fetch_table_names(self) -> list[str]:
        """Fetch names of diagnosable tables (views and other types skipped)."""
        sql = f"""
            SELECT table_name, table_type
            FROM {self._info_schema("tables")}
            WHERE table_schema = {sql_literal(self._schema)}
            ORDER BY table_name
        """
        rows = self._fetchall(sql, "tables")
        names = []
        for row in rows:
            table_type = (row_get(row, "table_type") or "").upper()
            if table_type not in self.VALID_TABLE_TYPES:
                logger.debug(f"Skipping {row_get(row, 'table_name')} ({table_type})")
                continue
            names.append(row_get(row, "table_name"))
        return names

    def _fetch_columns(self, table_name: str) -> list[Column]:
        """Fetch columns from information_schema.columns."""
        sql = f"""
            SELECT table_name, column_name, data_type, is_nullable, ordinal_position
            FROM {self._info_schema("columns")}
            WHERE table_schema = {sql_literal(self._schema)}
              AND table_name = {sql_literal(table_name)}
            ORDER BY ordinal_position
        """
        rows = self._fetchall(sql, f"columns of {table_name}")
        columns = []
        for position, row in enumerate(rows, start=1):
            if row_get(row, "table_name", table_name) != table_name:
                continue
            columns.append(
                Column(
                    name=row_get(row, "column_name"),
                    data_type=(row_get(row, "data_type") or "").upper(),
                    nullable=row_get(row, "is_nullable") != "NO",
                    ordinal_position=int(row_get(row, "ordinal_position") or position),
                )
            )
        return columns

    def _fetch_constraints(self) -> list[Constraint]:
        """Fetch constraints, one row per constrained column, grouped per constraint."""
        sql = f"""
            SELECT
                tc.constraint_name,
                tc.constraint_type,
                tc.table_schema,
                tc.table_name,
                kcu.column_name,
                kcu.ordinal_position,
                fk.table_schema AS foreign_table_schema,
                fk.table_name AS foreign_table_name,
                fk.column_name AS foreign_column_name,
                cc.check_clause
            FROM {self._info_schema("table_constraints")} tc
            LEFT JOIN {self._info_schema("key_column_usage")} kcu
              ON tc.constraint_schema = kcu.constraint_schema
             AND tc.constraint_name = kcu.constraint_name
            LEFT JOIN {self._info_schema("referential_constraints")} rc
              ON tc.constraint_schema = rc.constraint_schema
             AND tc.constraint_name = rc.constraint_name
            LEFT JOIN {self._info_schema("key_column_usage")} fk
              ON rc.unique_constraint_schema = fk.constraint_schema
             AND rc.unique_constraint_name = fk.constraint_name
             AND kcu.position_in_unique_constraint = fk.ordinal_position
            LEFT JOIN {self._info_schema("check_constraints")} cc
              ON tc.constraint_schema = cc.constraint_schema
             AND tc.constraint_name = cc.constraint_name
            WHERE tc.table_schema = {sql_literal(self._schema)}
            ORDER BY tc.table_name, tc.constraint_name, kcu.ordinal_position
        """
        rows = self._fetchall(sql, "constraints")

        grouped: dict[tuple[str, str, str], dict[str, Any]] = {}
        for row in rows:
            key = (
                row_get(row, "table_schema") or self._schema,
                row_get(row, "table_name"),
                row_get(row, "constraint_name"),
            )
            entry = grouped.setdefault(
                key,
                {
                    "type_label": row_get(row, "constraint_type"),
                    "columns": [],
                    "foreign_table_schema": None,
                    "foreign_table_name": None,
                    "foreign_columns": [],
                    "check_clause": None,
                },
            )
            column = row_get(row, "column_name")
            if column and column not in entry["columns"]:
                entry["columns"].append(column)
            foreign_column = row_get(row, "foreign_column_name")
            if foreign_column and foreign_column not in entry["foreign_columns"]:
                entry["foreign_columns"].append(foreign_column)
            if row_get(row, "foreign_table_name"):
                entry["foreign_table_schema"] = row_get(row, "foreign_table_schema")
                entry["foreign_table_name"] = row_get(row, "foreign_table_name")
            if row_get(row, "check_clause"):
                entry["check_clause"] = row_get(row, "check_clause")

        constraints = []
        for (table_schema, table_name, name), entry in grouped.items():
            constraint_type = ConstraintType.from_label(entry["type_label"])
            if constraint_type is None:
                logger.warning(
                    f"Skipping constraint {name} on {table_name}: "
                    f"unknown type {entry['type_label']!r}"
                )
                continue
            try:
                constraints.append(
                    Constraint(
                        name=name,
                        constraint_type=constraint_type,
                        table_schema=table_schema,
                        table_name=table_name,
                        columns=tuple(entry["columns"]),
                        foreign_table_schema=entry["foreign_table_schema"],
                        foreign_table_name=entry["foreign_table_name"],
                        foreign_columns=tuple(entry["foreign_columns"]),
                        check_expression=entry["check_clause"],
                    )
                )
            except ValueError as e:
                logger.warning(f"Skipping malformed constraint {name}: {e}")
        return constraints

    def _with_primary_key(self, table: Table, constraints: list[Constraint]) -> Table:
        for constraint in constraints:
            if (
                constraint.constraint_type == ConstraintType.PRIMARY_KEY
                and constraint.table_identity == table.identity
            ):
                return Table(
                    schema=table.schema,
                    name=table.name,
                    columns=table.columns,
                    primary_key=constraint.columns,
                )
        return table
