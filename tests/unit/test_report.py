"""Tests for report assembly and YAML export."""

import yaml

from ucdiag.diagnostics.dependencies import FunctionalDependencyInferencer
from ucdiag.diagnostics.results import ConstraintCheckResult
from ucdiag.report import (
    build_report,
    constraint_to_dict,
    export_report_yaml,
    table_to_dict,
    write_report,
)
from ucdiag.timeline import TimelineEntry
from ucdiag.types import ConstraintType, EventType

from tests.helpers import make_constraint, make_schema_model, make_users_table


class TestTableToDict:
    def test_columns_and_primary_key(self):
        data = table_to_dict(make_users_table())

        assert data["table"] == "users"
        assert data["primary_key"] == ["id"]
        assert data["columns"][0] == {"name": "id", "type": "BIGINT", "nullable": False}


class TestConstraintToDict:
    def test_foreign_key_references(self):
        data = constraint_to_dict(
            make_constraint(
                name="fk_orders_user",
                constraint_type=ConstraintType.FOREIGN_KEY,
                table_name="orders",
                columns=("user_id",),
                foreign_table_name="users",
                foreign_columns=("id",),
            )
        )

        assert data["type"] == "FOREIGN KEY"
        assert data["references"] == {"schema": "sales", "table": "users", "columns": ["id"]}

    def test_check_expression(self):
        data = constraint_to_dict(
            make_constraint(
                name="ck_name",
                constraint_type=ConstraintType.CHECK,
                columns=(),
                check_expression="name <> ''",
            )
        )

        assert data["expression"] == "name <> ''"
        assert "references" not in data


class TestBuildReport:
    def test_empty_sections_omitted(self):
        assert build_report() == {}

    def test_all_sections(self):
        model = make_schema_model(constraints=(make_constraint(),))
        results = [
            ConstraintCheckResult.ok(make_constraint()),
            ConstraintCheckResult.failed_open(make_constraint(name="uq_other"), "denied"),
        ]

        report = build_report(
            model=model,
            results=results,
            dependencies=FunctionalDependencyInferencer().infer_schema(model),
        )

        assert list(report) == ["schema", "functional_dependencies", "diagnostics"]
        assert report["diagnostics"]["checked"] == 2
        assert report["diagnostics"]["violations"] == 0
        assert report["diagnostics"]["degraded"] == 1

    def test_timeline_section(self):
        entry = TimelineEntry(
            "2026-03-02T09:30:00", EventType.DELETE, "users", "DELETE on sales.users", 3
        )

        report = build_report(timeline=[entry])

        assert list(report) == ["timeline"]
        assert report["timeline"][0]["event_type"] == "DELETE"
        assert report["timeline"][0]["has_violation"] is True


class TestExport:
    def test_yaml_loads_back(self):
        report = build_report(model=make_schema_model(constraints=(make_constraint(),)))

        loaded = yaml.safe_load(export_report_yaml(report))

        assert loaded["schema"]["catalog"] == "main"
        assert loaded["schema"]["constraints"][0]["name"] == "uq_users_email"

    def test_write_report_creates_directories(self, tmp_path):
        path = tmp_path / "reports" / "nightly" / "report.yaml"

        written = write_report({"diagnostics": {"checked": 0}}, path)

        assert written == path
        assert yaml.safe_load(path.read_text()) == {"diagnostics": {"checked": 0}}
