"""Constraint checking and functional dependency modules."""

from ucdiag.diagnostics.checker import ConstraintChecker
from ucdiag.diagnostics.dependencies import (
    FunctionalDependency,
    FunctionalDependencyInferencer,
)
from ucdiag.diagnostics.results import (
    SAMPLE_LIMIT,
    ConstraintCheckResult,
    ConstraintViolation,
)

__all__ = [
    "SAMPLE_LIMIT",
    "ConstraintChecker",
    "ConstraintCheckResult",
    "ConstraintViolation",
    "FunctionalDependency",
    "FunctionalDependencyInferencer",
]
