"""Recent table change history read from Delta ``DESCRIBE HISTORY``.

Deletes and schema changes are flagged: they are the operations that can
orphan rows or invalidate constraints between two diagnostic runs.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from ucdiag.executor import QueryExecutor, qualified_name, row_get
from ucdiag.schema.models import Table
from ucdiag.types import EventType

__all__ = ["HISTORY_LIMIT", "TimelineEntry", "TimelineLoader", "classify_operation"]

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 20

_OPERATION_PREFIXES: tuple[tuple[EventType, tuple[str, ...]], ...] = (
    (EventType.DELETE, ("DELETE", "TRUNCATE")),
    (EventType.UPDATE, ("UPDATE", "MERGE")),
    (EventType.INSERT, ("WRITE", "INSERT", "COPY INTO", "STREAMING UPDATE")),
    (
        EventType.SCHEMA_CHANGE,
        (
            "CREATE",
            "REPLACE",
            "ALTER",
            "ADD",
            "CHANGE",
            "DROP",
            "RENAME",
            "SET TBLPROPERTIES",
            "UNSET TBLPROPERTIES",
            "RESTORE",
        ),
    ),
    (EventType.VACUUM, ("VACUUM",)),
    (EventType.OPTIMIZE, ("OPTIMIZE",)),
)

_METRICS = (
    ("numOutputRows", "written"),
    ("numUpdatedRows", "updated"),
    ("numDeletedRows", "deleted"),
)


def classify_operation(operation: str) -> EventType:
    """Map a Delta history operation name to an event type; QUERY when unknown."""
    upper = (operation or "").strip().upper()
    for event_type, prefixes in _OPERATION_PREFIXES:
        if upper.startswith(prefixes):
            return event_type
    return EventType.QUERY


@dataclass(frozen=True)
class TimelineEntry:
    """One history event of one table."""

    timestamp: str
    event_type: EventType
    table_name: str
    description: str
    version: Optional[int] = None
    user: Optional[str] = None

    @property
    def has_violation(self) -> bool:
        return self.event_type in (EventType.DELETE, EventType.SCHEMA_CHANGE)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "event_type": self.event_type.value,
            "table_name": self.table_name,
            "description": self.description,
            "version": self.version,
            "user": self.user,
            "has_violation": self.has_violation,
        }


def _format_timestamp(value: Any) -> str:
    if value is None:
        return ""
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def _describe(table: Table, operation: str, metrics: Any) -> str:
    text = f"{operation or 'UNKNOWN'} on {table.schema}.{table.name}"
    if not isinstance(metrics, dict):
        return text
    counts = [
        f"{metrics[key]} {label}"
        for key, label in _METRICS
        if metrics.get(key) not in (None, "", "0")
    ]
    if counts:
        text += f" ({', '.join(counts)})"
    return text


class TimelineLoader:
    """Collect recent history events across a schema's tables."""

    def __init__(
        self,
        executor: QueryExecutor,
        catalog: Optional[str] = None,
        limit: int = HISTORY_LIMIT,
    ):
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self._executor = executor
        self._catalog = catalog
        self._limit = limit

    def load(self, tables: Sequence[Table]) -> list[TimelineEntry]:
        """Events of every table, most recent first.

        A table whose history cannot be read is skipped with a warning.
        """
        entries: list[TimelineEntry] = []
        for table in tables:
            entries.extend(self._history(table))
        entries.sort(key=lambda e: e.timestamp, reverse=True)
        logger.info(f"Loaded {len(entries)} timeline events from {len(tables)} tables")
        return entries

    def _history(self, table: Table) -> list[TimelineEntry]:
        sql = (
            f"DESCRIBE HISTORY {qualified_name(self._catalog, table.schema, table.name)} "
            f"LIMIT {self._limit}"
        )
        logger.debug(sql)
        try:
            rows = self._executor.fetchall(sql)
        except Exception as e:
            logger.warning(f"Could not read history of {table.name}, skipping: {e}")
            return []
        return [self._entry(table, row) for row in rows]

    def _entry(self, table: Table, row: Any) -> TimelineEntry:
        operation = str(row_get(row, "operation") or "")
        version = row_get(row, "version")
        return TimelineEntry(
            timestamp=_format_timestamp(row_get(row, "timestamp")),
            event_type=classify_operation(operation),
            table_name=table.name,
            description=_describe(table, operation, row_get(row, "operationMetrics")),
            version=int(version) if version is not None else None,
            user=row_get(row, "userName"),
        )
