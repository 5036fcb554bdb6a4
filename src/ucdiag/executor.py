"""Query executor capability consumed by introspection and constraint checks."""

from dataclasses import dataclass
from typing import Any, Optional, Protocol, runtime_checkable

__all__ = [
    "ConnectionTarget",
    "QueryExecutor",
    "row_get",
    "quote_ident",
    "qualified_name",
    "sql_literal",
]


@runtime_checkable
class QueryExecutor(Protocol):
    """Connection to the target store.

    Semantics:
    - connect() opens the single connection used by a session.
    - fetchall() runs one statement and returns its rows.
    - close() is idempotent.
    """

    def connect(self) -> None: ...

    def fetchall(self, sql: str) -> list: ...

    def close(self) -> None: ...


@dataclass(frozen=True)
class ConnectionTarget:
    """An unopened executor plus the catalog and schema it should diagnose."""

    executor: QueryExecutor
    catalog: str
    schema: str


def row_get(row: Any, key: str, default: Any = None) -> Any:
    """Safely get a value from a row, supporting dict-like and pyspark Row."""
    if hasattr(row, "get"):
        return row.get(key, default)
    if hasattr(row, "asDict"):
        return row.asDict().get(key, default)
    try:
        return row[key]
    except (KeyError, IndexError, TypeError):
        return default


def quote_ident(name: str) -> str:
    """Quote an identifier with backticks."""
    return "`" + name.replace("`", "``") + "`"


def qualified_name(catalog: Optional[str], schema: Optional[str], table: str) -> str:
    """Build a fully qualified, quoted table reference."""
    parts = [p for p in (catalog, schema) if p]
    parts.append(table)
    return ".".join(quote_ident(p) for p in parts)


def sql_literal(value: str) -> str:
    """Render a string literal with single quotes escaped."""
    return "'" + value.replace("'", "''") + "'"
