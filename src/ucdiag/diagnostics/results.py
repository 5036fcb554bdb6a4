"""Constraint check result types."""

from dataclasses import dataclass
from typing import Any, Optional

from ucdiag.schema.models import Constraint
from ucdiag.types import ConstraintType

SAMPLE_LIMIT = 5


@dataclass(frozen=True)
class ConstraintViolation:
    """Evidence that live data does not satisfy a constraint."""

    constraint_name: str
    constraint_type: ConstraintType
    table_schema: str
    table_name: str
    violation_count: int
    sample_violations: tuple[str, ...]
    explanation: str
    detection_query: str

    def __post_init__(self) -> None:
        if self.violation_count <= 0:
            raise ValueError("A violation needs a positive violation_count")
        if len(self.sample_violations) > SAMPLE_LIMIT:
            raise ValueError(f"At most {SAMPLE_LIMIT} sample violations are kept")

    def to_dict(self) -> dict[str, Any]:
        return {
            "constraint_name": self.constraint_name,
            "constraint_type": self.constraint_type.value,
            "table_schema": self.table_schema,
            "table_name": self.table_name,
            "violation_count": self.violation_count,
            "sample_violations": list(self.sample_violations),
            "explanation": self.explanation,
            "detection_query": self.detection_query,
        }


@dataclass(frozen=True)
class ConstraintCheckResult:
    """Outcome of checking one constraint.

    satisfied is True iff violation is None. A degraded result is one whose
    detection query failed and was resolved to satisfied (fail-open).
    """

    constraint: Constraint
    satisfied: bool
    violation: Optional[ConstraintViolation] = None
    degraded: bool = False
    error: Optional[str] = None

    def __post_init__(self) -> None:
        if self.satisfied != (self.violation is None):
            raise ValueError("satisfied must be True exactly when violation is absent")

    @classmethod
    def ok(cls, constraint: Constraint) -> "ConstraintCheckResult":
        return cls(constraint=constraint, satisfied=True)

    @classmethod
    def violated(
        cls, constraint: Constraint, violation: ConstraintViolation
    ) -> "ConstraintCheckResult":
        return cls(constraint=constraint, satisfied=False, violation=violation)

    @classmethod
    def failed_open(cls, constraint: Constraint, error: str) -> "ConstraintCheckResult":
        return cls(constraint=constraint, satisfied=True, degraded=True, error=error)

    @property
    def constraint_name(self) -> str:
        return self.constraint.name

    @property
    def constraint_type(self) -> ConstraintType:
        return self.constraint.constraint_type

    @property
    def table_name(self) -> str:
        return self.constraint.table_name

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "constraint_name": self.constraint_name,
            "constraint_type": self.constraint_type.value,
            "table_name": self.table_name,
            "satisfied": self.satisfied,
        }
        if self.violation is not None:
            data["violation_count"] = self.violation.violation_count
            data["explanation"] = self.violation.explanation
            data["sample_violations"] = list(self.violation.sample_violations)
        if self.degraded:
            data["degraded"] = True
            data["error"] = self.error
        return data
