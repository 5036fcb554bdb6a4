"""Tests for declared schema YAML loading."""

import pytest

from ucdiag.exceptions import SchemaLoadError
from ucdiag.schema.loader import load_declared_schema
from ucdiag.types import ConstraintType


class TestLoadDeclaredSchema:
    """Tests for load_declared_schema."""

    def test_loads_tables_list(self, tmp_path):
        """A 'tables' list declares constraints and dependencies per table."""
        path = tmp_path / "constraints.yaml"
        path.write_text(
            """
tables:
  - table: users
    primary_key:
      columns: [id]
    unique:
      - name: uq_users_email
        columns: [email]
    functional_dependencies:
      - determinant: [zip]
        dependent: [city]
  - table: orders
    schema: sales
    foreign_keys:
      - name: fk_orders_user
        columns: [user_id]
        references: {table: users, columns: [id], schema: sales}
    checks:
      - name: ck_positive
        expression: amount > 0
"""
        )

        model = load_declared_schema(path)

        assert model.catalog is None
        assert [c.name for c in model.constraints] == [
            "pk_users",
            "uq_users_email",
            "fk_orders_user",
            "ck_positive",
        ]
        pk, unique, fk, check = model.constraints
        assert pk.constraint_type == ConstraintType.PRIMARY_KEY
        assert pk.table_schema == ""
        assert unique.columns == ("email",)
        assert fk.foreign_table_identity == ("sales", "users")
        assert fk.foreign_columns == ("id",)
        assert check.check_expression == "amount > 0"

        dep = model.declared_dependencies[0]
        assert (dep.table_name, dep.determinant, dep.dependent) == (
            "users",
            ("zip",),
            ("city",),
        )

    def test_loads_single_table_file(self, tmp_path):
        path = tmp_path / "users.yaml"
        path.write_text(
            """
table: users
unique:
  - name: uq_users_email
    columns: [email]
"""
        )

        model = load_declared_schema(path)

        assert len(model.constraints) == 1

    def test_loads_directory_in_sorted_order(self, tmp_path):
        (tmp_path / "b.yaml").write_text(
            "table: orders\nunique:\n  - name: uq_b\n    columns: [code]\n"
        )
        (tmp_path / "a.yaml").write_text(
            "table: users\nunique:\n  - name: uq_a\n    columns: [email]\n"
        )
        (tmp_path / "notes.txt").write_text("ignored")

        model = load_declared_schema(tmp_path)

        assert [c.name for c in model.constraints] == ["uq_a", "uq_b"]

    def test_missing_path(self, tmp_path):
        with pytest.raises(SchemaLoadError, match="does not exist"):
            load_declared_schema(tmp_path / "missing.yaml")


class TestLoaderErrors:
    """Malformed files raise SchemaLoadError."""

    @pytest.mark.parametrize(
        "content,message",
        [
            ("", "Empty YAML file"),
            ("- just\n- a list\n", "Expected a mapping"),
            ("table: [unclosed\n", "Invalid YAML"),
            ("table: users\ncolour: blue\n", "Unknown field"),
            ("unique: []\n", "missing 'table'"),
            ("table: users\nunique:\n  - columns: [email]\n", "missing 'name'"),
            (
                "table: users\nforeign_keys:\n  - name: fk\n    columns: [a]\n",
                "missing 'references'",
            ),
            ("table: users\nchecks:\n  - name: ck\n", "missing 'expression'"),
            (
                "table: users\nunique:\n  - name: uq\n    columns: [a, a]\n",
                "lists a column twice",
            ),
            (
                "table: users\nfunctional_dependencies:\n  - determinant: [a]\n",
                "needs 'determinant' and 'dependent'",
            ),
            ("table: users\nunique: uq_users_email\n", "'unique' must be a list"),
            (
                "table: users\nunique:\n  - name: uq\n    columns: email\n",
                "'columns' must be a list",
            ),
        ],
    )
    def test_malformed(self, tmp_path, content, message):
        path = tmp_path / "bad.yaml"
        path.write_text(content)

        with pytest.raises(SchemaLoadError, match=message):
            load_declared_schema(path)

    def test_duplicate_constraint_name(self, tmp_path):
        path = tmp_path / "dup.yaml"
        path.write_text(
            """
tables:
  - table: users
    unique:
      - name: uq_users
        columns: [email]
  - table: users
    unique:
      - name: uq_users
        columns: [name]
"""
        )

        with pytest.raises(SchemaLoadError, match="Duplicate constraint 'uq_users'"):
            load_declared_schema(path)


class TestEmptySections:
    """Sections left empty in YAML declare nothing."""

    def test_empty_sections_are_ignored(self, tmp_path):
        path = tmp_path / "users.yaml"
        path.write_text(
            """
table: users
unique:
foreign_keys:
checks:
functional_dependencies:
primary_key:
  columns: [id]
"""
        )

        model = load_declared_schema(path)

        assert [c.name for c in model.constraints] == ["pk_users"]
        assert model.declared_dependencies == ()
