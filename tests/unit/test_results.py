"""Tests for constraint check result types."""

import pytest

from ucdiag.diagnostics.results import ConstraintCheckResult, ConstraintViolation
from ucdiag.types import ConstraintType

from tests.helpers import make_constraint


def make_violation(**kwargs):
    defaults = dict(
        constraint_name="uq_users_email",
        constraint_type=ConstraintType.UNIQUE,
        table_schema="sales",
        table_name="users",
        violation_count=3,
        sample_violations=("(a@x.com) × 3",),
        explanation="1 duplicate groups found on columns (email) in sales.users",
        detection_query="SELECT ...",
    )
    defaults.update(kwargs)
    return ConstraintViolation(**defaults)


class TestConstraintViolation:
    def test_count_must_be_positive(self):
        with pytest.raises(ValueError):
            make_violation(violation_count=0)

    def test_at_most_five_samples(self):
        with pytest.raises(ValueError):
            make_violation(sample_violations=tuple(f"({i})" for i in range(6)))


class TestConstraintCheckResult:
    def test_satisfied_with_violation_rejected(self):
        with pytest.raises(ValueError):
            ConstraintCheckResult(
                constraint=make_constraint(), satisfied=True, violation=make_violation()
            )

    def test_unsatisfied_without_violation_rejected(self):
        with pytest.raises(ValueError):
            ConstraintCheckResult(constraint=make_constraint(), satisfied=False)

    def test_failed_open(self):
        result = ConstraintCheckResult.failed_open(make_constraint(), "timeout")

        assert result.satisfied is True
        assert result.violation is None
        assert result.degraded is True
        assert result.to_dict() == {
            "constraint_name": "uq_users_email",
            "constraint_type": "UNIQUE",
            "table_name": "users",
            "satisfied": True,
            "degraded": True,
            "error": "timeout",
        }

    def test_violated_to_dict(self):
        result = ConstraintCheckResult.violated(make_constraint(), make_violation())

        data = result.to_dict()

        assert data["satisfied"] is False
        assert data["violation_count"] == 3
        assert data["sample_violations"] == ["(a@x.com) × 3"]
        assert "degraded" not in data
