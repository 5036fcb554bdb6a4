"""Recovery plan synthesis from constraint check results."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Optional, Sequence

from ucdiag.diagnostics.checker import strip_enclosing_parens
from ucdiag.diagnostics.results import ConstraintCheckResult
from ucdiag.executor import qualified_name, quote_ident
from ucdiag.recovery.proofs import ProofAnnotator, ProofCoverage
from ucdiag.schema.models import Constraint
from ucdiag.types import ConstraintType, OperationCategory

__all__ = ["RecoveryStep", "RecoveryPlan", "RecoveryPlanSynthesizer"]

logger = logging.getLogger(__name__)

PLAN_NAME = "Proof-Carrying Recovery"


@dataclass(frozen=True)
class RecoveryStep:
    """One advisory repair action. The statement is never executed."""

    number: int
    description: str
    statement: str
    proofs: tuple[str, ...] = ()
    category: Optional[OperationCategory] = None
    constraint_name: Optional[str] = None
    violation_count: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "number": self.number,
            "description": self.description,
            "statement": self.statement,
            "proofs": list(self.proofs),
            "category": self.category.value if self.category else None,
            "constraint_name": self.constraint_name,
            "violation_count": self.violation_count,
        }


@dataclass(frozen=True)
class RecoveryPlan:
    """Ordered recovery steps with their proof coverage."""

    name: str
    steps: tuple[RecoveryStep, ...]
    coverage: ProofCoverage = field(default_factory=ProofCoverage)

    @property
    def all_verified(self) -> bool:
        return self.coverage.all_verified

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "all_verified": self.all_verified,
            "coverage": self.coverage.to_dict(),
            "steps": [step.to_dict() for step in self.steps],
        }


class RecoveryPlanSynthesizer:
    """Turn violated constraints into an ordered, proof-annotated repair plan."""

    def __init__(
        self,
        catalog: Optional[str] = None,
        annotator: Optional[ProofAnnotator] = None,
    ) -> None:
        self._catalog = catalog
        self._annotator = annotator or ProofAnnotator()

    def synthesize(
        self, results: Sequence[ConstraintCheckResult]
    ) -> Optional[RecoveryPlan]:
        """Build a plan from unsatisfied results, in input order.

        Returns:
            None when nothing is violated, so callers can tell "nothing to do"
            from "no plan generated yet".
        """
        violated = [r for r in results if not r.satisfied]
        if not violated:
            logger.info("No violations to recover from")
            return None

        steps = []
        for number, result in enumerate(violated, start=1):
            step = self._step_for(number, result)
            steps.append(replace(step, proofs=tuple(self._annotator.annotate(step))))

        coverage = ProofCoverage.from_plan_steps(steps, self._annotator)
        logger.info(
            f"Recovery plan: {coverage.total_steps} steps, "
            f"{coverage.unique_proofs} distinct proofs"
        )
        return RecoveryPlan(name=PLAN_NAME, steps=tuple(steps), coverage=coverage)

    def _step_for(self, number: int, result: ConstraintCheckResult) -> RecoveryStep:
        constraint = result.constraint
        name = constraint.name
        table = constraint.table_name
        constraint_type = constraint.constraint_type

        if constraint_type == ConstraintType.FOREIGN_KEY:
            description = f"Delete orphan rows violating {name} on {table}"
            statement = self._delete_orphans(constraint)
            category = OperationCategory.DELETE
        elif constraint_type in (ConstraintType.UNIQUE, ConstraintType.PRIMARY_KEY):
            description = f"Remove duplicate rows violating {name} on {table}"
            statement = self._delete_duplicates(constraint)
            category = OperationCategory.DELETE
        elif constraint_type == ConstraintType.CHECK:
            description = f"Update rows to satisfy {name} on {table}"
            statement = self._update_check(constraint)
            category = OperationCategory.UPDATE
        else:
            description = f"Fix {constraint_type.value} violation on {table}"
            statement = f"-- Recovery SQL for {name}"
            category = OperationCategory.UPDATE

        return RecoveryStep(
            number=number,
            description=description,
            statement=statement,
            category=category,
            constraint_name=name,
            violation_count=(
                result.violation.violation_count if result.violation else None
            ),
        )

    def _table_ref(self, schema: str, table: str) -> str:
        return qualified_name(self._catalog, schema, table)

    def _delete_orphans(self, constraint: Constraint) -> str:
        foreign = constraint.foreign_table_identity
        if foreign is None:
            return f"-- Recovery SQL for {constraint.name}"
        foreign_columns = constraint.foreign_columns or constraint.columns
        not_null = " AND ".join(
            f"t.{quote_ident(c)} IS NOT NULL" for c in constraint.columns
        )
        matches = " AND ".join(
            f"f.{quote_ident(remote)} = t.{quote_ident(local)}"
            for local, remote in zip(constraint.columns, foreign_columns)
        )
        return (
            f"DELETE FROM {self._table_ref(constraint.table_schema, constraint.table_name)} AS t "
            f"WHERE {not_null} AND NOT EXISTS "
            f"(SELECT 1 FROM {self._table_ref(*foreign)} f WHERE {matches})"
        )

    def _delete_duplicates(self, constraint: Constraint) -> str:
        table = self._table_ref(constraint.table_schema, constraint.table_name)
        cols = ", ".join(quote_ident(c) for c in constraint.columns)
        return (
            f"DELETE FROM {table} WHERE <row_id> NOT IN "
            f"(SELECT MIN(<row_id>) FROM {table} GROUP BY {cols}) "
            f"-- keep first occurrence per ({', '.join(constraint.columns)})"
        )

    def _update_check(self, constraint: Constraint) -> str:
        table = self._table_ref(constraint.table_schema, constraint.table_name)
        predicate = strip_enclosing_parens(constraint.check_expression or "check_expr")
        return f"UPDATE {table} SET <column> = <value> WHERE NOT ({predicate})"
