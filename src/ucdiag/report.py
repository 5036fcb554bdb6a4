"""Export diagnostic results to YAML reports."""

from pathlib import Path
from typing import Any, Optional, Sequence

import yaml

from ucdiag.diagnostics.dependencies import FunctionalDependency
from ucdiag.diagnostics.results import ConstraintCheckResult
from ucdiag.recovery.plan import RecoveryPlan
from ucdiag.schema.models import Constraint, SchemaModel, Table
from ucdiag.timeline import TimelineEntry


def table_to_dict(table: Table) -> dict[str, Any]:
    """Convert a Table model to a dictionary suitable for YAML export."""
    data: dict[str, Any] = {"table": table.name, "schema": table.schema}
    data["columns"] = [
        {"name": col.name, "type": col.data_type, "nullable": col.nullable}
        for col in table.columns
    ]
    if table.primary_key:
        data["primary_key"] = list(table.primary_key)
    return data


def constraint_to_dict(constraint: Constraint) -> dict[str, Any]:
    data: dict[str, Any] = {
        "name": constraint.name,
        "type": constraint.constraint_type.value,
        "table": constraint.table_name,
        "columns": list(constraint.columns),
    }
    if constraint.foreign_table_name:
        data["references"] = {
            "schema": constraint.foreign_table_schema or constraint.table_schema,
            "table": constraint.foreign_table_name,
            "columns": list(constraint.foreign_columns),
        }
    if constraint.check_expression is not None:
        data["expression"] = constraint.check_expression
    return data


def schema_to_dict(model: SchemaModel) -> dict[str, Any]:
    return {
        "catalog": model.catalog,
        "schema": model.schema,
        "introspected_at": model.introspected_at.isoformat(),
        "tables": [table_to_dict(t) for t in model.tables],
        "constraints": [constraint_to_dict(c) for c in model.constraints],
    }


def build_report(
    model: Optional[SchemaModel] = None,
    results: Sequence[ConstraintCheckResult] = (),
    dependencies: Sequence[FunctionalDependency] = (),
    plan: Optional[RecoveryPlan] = None,
    timeline: Sequence[TimelineEntry] = (),
) -> dict[str, Any]:
    """Assemble a report dictionary; sections without data are omitted."""
    report: dict[str, Any] = {}
    if model is not None:
        report["schema"] = schema_to_dict(model)
    if dependencies:
        report["functional_dependencies"] = [fd.to_dict() for fd in dependencies]
    if results:
        report["diagnostics"] = {
            "checked": len(results),
            "violations": sum(1 for r in results if not r.satisfied),
            "degraded": sum(1 for r in results if r.degraded),
            "results": [r.to_dict() for r in results],
        }
    if plan is not None:
        report["recovery_plan"] = plan.to_dict()
    if timeline:
        report["timeline"] = [entry.to_dict() for entry in timeline]
    return report


def export_report_yaml(report: dict[str, Any]) -> str:
    return yaml.safe_dump(
        report, default_flow_style=False, sort_keys=False, allow_unicode=True
    )


def write_report(report: dict[str, Any], path: Path) -> Path:
    """Write a report to path, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(export_report_yaml(report))
    return path
