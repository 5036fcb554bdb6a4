"""Constraint violation detection against live data.

Each constraint type gets its own detection query. A detection query that
fails resolves to a satisfied result flagged as degraded (fail-open): an
unreadable table or a predicate the engine rejects never raises a false alarm
and never aborts the batch.
"""

import logging
from typing import Any, Optional, Sequence

from ucdiag.diagnostics.results import (
    SAMPLE_LIMIT,
    ConstraintCheckResult,
    ConstraintViolation,
)
from ucdiag.exceptions import ConstraintCheckError
from ucdiag.executor import QueryExecutor, qualified_name, quote_ident, row_get
from ucdiag.schema.models import Constraint
from ucdiag.types import ConstraintType

__all__ = ["ConstraintChecker", "strip_enclosing_parens", "format_sample"]

logger = logging.getLogger(__name__)

DUP_COUNT_ALIAS = "_ucdiag_dup_count"


def strip_enclosing_parens(expression: str) -> str:
    """Remove parentheses that wrap the whole expression, e.g. ``((a > 0))``.

    Parentheses that only wrap part of it, as in ``(a > 0) AND (b > 0)``, are
    kept. Quoted string literals are skipped when matching.
    """
    text = expression.strip()
    while text.startswith("(") and text.endswith(")") and _outer_pair(text):
        text = text[1:-1].strip()
    return text


def _outer_pair(text: str) -> bool:
    """True if the first character's parenthesis closes at the last character."""
    depth = 0
    in_string = False
    for i, ch in enumerate(text):
        if ch == "'":
            in_string = not in_string
        if in_string:
            continue
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return i == len(text) - 1
    return False


def _format_value(value: Any) -> str:
    if value is None:
        return "NULL"
    return str(value)


def format_sample(values: Sequence[Any]) -> str:
    """Format one violating tuple as ``(v1, v2)``."""
    return "(" + ", ".join(_format_value(v) for v in values) + ")"


class ConstraintChecker:
    """Detect violations of declared constraints in live data."""

    def __init__(self, catalog: Optional[str] = None, sample_limit: int = SAMPLE_LIMIT):
        if not 0 <= sample_limit <= SAMPLE_LIMIT:
            raise ValueError(f"sample_limit must be between 0 and {SAMPLE_LIMIT}")
        self._catalog = catalog
        self._sample_limit = sample_limit

    def check_all(
        self, constraints: Sequence[Constraint], executor: QueryExecutor
    ) -> list[ConstraintCheckResult]:
        """Check constraints in input order; one result per constraint."""
        logger.info(f"Checking {len(constraints)} constraints for violations")

        results = [self.check(constraint, executor) for constraint in constraints]

        violations = sum(1 for r in results if not r.satisfied)
        degraded = sum(1 for r in results if r.degraded)
        logger.info(
            f"Constraint check complete: {len(results)} checked, "
            f"{violations} violated, {degraded} degraded"
        )
        return results

    def check(
        self, constraint: Constraint, executor: QueryExecutor
    ) -> ConstraintCheckResult:
        """Check a single constraint. Never raises for query failures."""
        try:
            return self._dispatch(constraint, executor)
        except Exception as e:
            logger.warning(
                f"Could not check {constraint.constraint_type.value} "
                f"{constraint.name} on {constraint.table_name}, "
                f"assuming satisfied: {e}"
            )
            return ConstraintCheckResult.failed_open(constraint, str(e))

    def _dispatch(
        self, constraint: Constraint, executor: QueryExecutor
    ) -> ConstraintCheckResult:
        constraint_type = constraint.constraint_type
        if constraint_type == ConstraintType.FOREIGN_KEY:
            return self._check_foreign_key(constraint, executor)
        elif constraint_type in (ConstraintType.UNIQUE, ConstraintType.PRIMARY_KEY):
            return self._check_unique(constraint, executor)
        elif constraint_type == ConstraintType.CHECK:
            return self._check_predicate(constraint, executor)
        elif constraint_type == ConstraintType.EXCLUSION:
            return self._check_exclusion(constraint)
        raise ConstraintCheckError(
            constraint.name, f"Unsupported constraint type {constraint_type!r}"
        )

    def _table_ref(self, schema: str, table: str) -> str:
        return qualified_name(self._catalog, schema, table)

    def _query(self, constraint: Constraint, executor: QueryExecutor, sql: str) -> list:
        logger.debug(sql)
        try:
            return executor.fetchall(sql)
        except Exception as e:
            raise ConstraintCheckError(constraint.name, str(e)) from e

    def _count(self, constraint: Constraint, executor: QueryExecutor, sql: str) -> int:
        rows = self._query(constraint, executor, sql)
        if not rows:
            return 0
        return int(row_get(rows[0], "violation_count") or 0)

    def _violation(
        self,
        constraint: Constraint,
        count: int,
        samples: list[str],
        explanation: str,
        query: str,
    ) -> ConstraintCheckResult:
        return ConstraintCheckResult.violated(
            constraint,
            ConstraintViolation(
                constraint_name=constraint.name,
                constraint_type=constraint.constraint_type,
                table_schema=constraint.table_schema,
                table_name=constraint.table_name,
                violation_count=count,
                sample_violations=tuple(samples[: self._sample_limit]),
                explanation=explanation,
                detection_query=query,
            ),
        )

    def _check_foreign_key(
        self, constraint: Constraint, executor: QueryExecutor
    ) -> ConstraintCheckResult:
        """Find child rows with non-null references that match no parent row."""
        foreign = constraint.foreign_table_identity
        if foreign is None:
            logger.debug(f"{constraint.name}: no foreign table, vacuously satisfied")
            return ConstraintCheckResult.ok(constraint)

        foreign_columns = constraint.foreign_columns or constraint.columns
        if len(foreign_columns) != len(constraint.columns):
            logger.warning(
                f"{constraint.name}: {len(constraint.columns)} referencing vs "
                f"{len(foreign_columns)} referenced columns, skipping"
            )
            return ConstraintCheckResult.ok(constraint)

        foreign_ref = self._table_ref(*foreign)
        joins = " AND ".join(
            f"t.{quote_ident(local)} = f.{quote_ident(remote)}"
            for local, remote in zip(constraint.columns, foreign_columns)
        )
        not_null = " AND ".join(
            f"t.{quote_ident(c)} IS NOT NULL" for c in constraint.columns
        )
        body = (
            f"FROM {self._table_ref(constraint.table_schema, constraint.table_name)} t "
            f"LEFT JOIN {foreign_ref} f ON {joins} "
            f"WHERE {not_null} AND f.{quote_ident(foreign_columns[0])} IS NULL"
        )
        query = f"SELECT COUNT(*) AS violation_count {body}"

        count = self._count(constraint, executor, query)
        if count == 0:
            return ConstraintCheckResult.ok(constraint)

        local_cols = ", ".join(f"t.{quote_ident(c)}" for c in constraint.columns)
        sample_query = f"SELECT {local_cols} {body} LIMIT {self._sample_limit}"
        try:
            sample_rows = self._query(constraint, executor, sample_query)
        except ConstraintCheckError as e:
            logger.warning(f"{constraint.name}: sample query failed: {e}")
            sample_rows = []
        samples = [
            format_sample([row_get(row, c) for c in constraint.columns])
            for row in sample_rows
        ]

        return self._violation(
            constraint,
            count,
            samples,
            f"{count} rows in {constraint.table_schema}.{constraint.table_name} "
            f"reference non-existent rows in {foreign[0]}.{foreign[1]}",
            query,
        )

    def _check_unique(
        self, constraint: Constraint, executor: QueryExecutor
    ) -> ConstraintCheckResult:
        """Find groups of rows sharing the key; each extra row is one violation.

        Also used for primary keys: the result keeps the constraint's own type.
        Rows with a NULL key column never collide under UNIQUE. Primary keys
        are not enforced by the catalog, so NULL keys are grouped like any
        other value.
        """
        cols = ", ".join(quote_ident(c) for c in constraint.columns)
        where = ""
        if constraint.constraint_type == ConstraintType.UNIQUE:
            not_null = " AND ".join(
                f"{quote_ident(c)} IS NOT NULL" for c in constraint.columns
            )
            where = f"WHERE {not_null} "
        groups = (
            f"SELECT {cols}, COUNT(*) AS {DUP_COUNT_ALIAS} "
            f"FROM {self._table_ref(constraint.table_schema, constraint.table_name)} "
            f"{where}"
            f"GROUP BY {cols} HAVING COUNT(*) > 1"
        )
        query = (
            f"SELECT COUNT(*) AS group_count, "
            f"SUM({DUP_COUNT_ALIAS} - 1) AS violation_count FROM ({groups}) d"
        )

        rows = self._query(constraint, executor, query)
        count = int(row_get(rows[0], "violation_count") or 0) if rows else 0
        if count == 0:
            return ConstraintCheckResult.ok(constraint)
        group_count = int(row_get(rows[0], "group_count") or 0)

        try:
            sample_rows = self._query(
                constraint, executor, f"{groups} LIMIT {self._sample_limit}"
            )
        except ConstraintCheckError as e:
            logger.warning(f"{constraint.name}: sample query failed: {e}")
            sample_rows = []
        samples = [
            f"{format_sample([row_get(row, c) for c in constraint.columns])} "
            f"× {row_get(row, DUP_COUNT_ALIAS)}"
            for row in sample_rows
        ]

        return self._violation(
            constraint,
            count,
            samples,
            f"{group_count} duplicate groups found on columns "
            f"({', '.join(constraint.columns)}) in "
            f"{constraint.table_schema}.{constraint.table_name}",
            query,
        )

    def _check_predicate(
        self, constraint: Constraint, executor: QueryExecutor
    ) -> ConstraintCheckResult:
        """Count rows for which the check predicate is false."""
        expression = (constraint.check_expression or "").strip()
        if not expression:
            logger.debug(f"{constraint.name}: no check expression, satisfied")
            return ConstraintCheckResult.ok(constraint)

        predicate = strip_enclosing_parens(expression)
        query = (
            f"SELECT COUNT(*) AS violation_count "
            f"FROM {self._table_ref(constraint.table_schema, constraint.table_name)} "
            f"WHERE NOT ({predicate})"
        )

        count = self._count(constraint, executor, query)
        if count == 0:
            return ConstraintCheckResult.ok(constraint)

        return self._violation(
            constraint,
            count,
            [],
            f"{count} rows in {constraint.table_schema}.{constraint.table_name} "
            f"violate check: {expression}",
            query,
        )

    def _check_exclusion(self, constraint: Constraint) -> ConstraintCheckResult:
        # Overlap detection depends on the exclusion operators, which the
        # catalog does not expose.
        logger.debug(f"{constraint.name}: exclusion detection not implemented")
        return ConstraintCheckResult.ok(constraint)
