"""Load declared constraints and dependencies from YAML files."""

from pathlib import Path
from typing import Optional

import yaml

from ucdiag.exceptions import SchemaLoadError
from ucdiag.schema.models import Constraint, DeclaredDependency, SchemaModel
from ucdiag.types import ConstraintType

VALID_TABLE_FIELDS = {
    "table",
    "schema",
    "description",
    "primary_key",
    "unique",
    "foreign_keys",
    "checks",
    "functional_dependencies",
}

VALID_CONSTRAINT_FIELDS = {"name", "columns", "references", "expression"}

VALID_REFERENCE_FIELDS = {"table", "schema", "columns"}

VALID_DEPENDENCY_FIELDS = {"determinant", "dependent"}


def load_declared_schema(schema_path: Path) -> SchemaModel:
    """Load declared constraints from a directory of YAML files or a single file."""
    if schema_path.is_file():
        tables = _load_file(schema_path)
    elif schema_path.is_dir():
        tables = []
        for yaml_file in sorted(schema_path.glob("*.yaml")):
            tables.extend(_load_file(yaml_file))
    else:
        raise SchemaLoadError(f"Schema path does not exist: {schema_path}")

    constraints: list[Constraint] = []
    dependencies: list[DeclaredDependency] = []
    seen = set()
    for table_data in tables:
        table_constraints, table_dependencies = _parse_table_dict(table_data)
        for constraint in table_constraints:
            if constraint.key in seen:
                raise SchemaLoadError(
                    f"Duplicate constraint '{constraint.name}' on "
                    f"table '{constraint.table_name}'"
                )
            seen.add(constraint.key)
            constraints.append(constraint)
        dependencies.extend(table_dependencies)

    return SchemaModel(
        catalog=None,
        schema=None,
        constraints=tuple(constraints),
        declared_dependencies=tuple(dependencies),
    )


def _load_file(file_path: Path) -> list[dict]:
    with open(file_path) as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise SchemaLoadError(f"Invalid YAML in {file_path}: {e}") from e

    if data is None:
        raise SchemaLoadError(f"Empty YAML file: {file_path}")
    if not isinstance(data, dict):
        raise SchemaLoadError(f"Expected a mapping at top level of {file_path}")

    if "tables" in data:
        tables = data.get("tables") or []
        if not isinstance(tables, list):
            raise SchemaLoadError(f"'tables' must be a list in {file_path}")
        return tables
    return [data]


def _check_fields(data: dict, valid: set[str], what: str) -> None:
    if not isinstance(data, dict):
        raise SchemaLoadError(f"Expected a mapping for {what}, got {type(data).__name__}")
    unknown_fields = set(data.keys()) - valid
    if unknown_fields:
        raise SchemaLoadError(
            f"Unknown field(s) in {what}: {', '.join(sorted(unknown_fields))}"
        )


def _section(data: dict, key: str, what: str) -> list:
    """A list-valued field; absent or empty (``unique:``) means no entries."""
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise SchemaLoadError(
            f"'{key}' must be a list in {what}, got {type(value).__name__}"
        )
    return value


def _parse_table_dict(
    data: dict,
) -> tuple[list[Constraint], list[DeclaredDependency]]:
    """Parse one table entry into constraints and declared dependencies."""
    _check_fields(data, VALID_TABLE_FIELDS, "table definition")

    name = data.get("table")
    if not name:
        raise SchemaLoadError("Table definition missing 'table' field")
    schema = data.get("schema") or ""

    constraints = []
    if pk_data := data.get("primary_key"):
        constraints.append(
            _parse_constraint(
                pk_data,
                ConstraintType.PRIMARY_KEY,
                schema,
                name,
                default_name=f"pk_{name}",
            )
        )
    for item in _section(data, "unique", f"table '{name}'"):
        constraints.append(_parse_constraint(item, ConstraintType.UNIQUE, schema, name))
    for item in _section(data, "foreign_keys", f"table '{name}'"):
        constraints.append(
            _parse_constraint(item, ConstraintType.FOREIGN_KEY, schema, name)
        )
    for item in _section(data, "checks", f"table '{name}'"):
        constraints.append(_parse_constraint(item, ConstraintType.CHECK, schema, name))

    dependencies = [
        _parse_dependency(item, schema, name)
        for item in _section(data, "functional_dependencies", f"table '{name}'")
    ]
    return constraints, dependencies


def _parse_constraint(
    data: dict,
    constraint_type: ConstraintType,
    schema: str,
    table: str,
    default_name: Optional[str] = None,
) -> Constraint:
    label = constraint_type.value
    _check_fields(data, VALID_CONSTRAINT_FIELDS, f"{label} on '{table}'")

    name = data.get("name") or default_name
    if not name:
        raise SchemaLoadError(f"{label} constraint on '{table}' missing 'name' field")

    foreign_schema = None
    foreign_table = None
    foreign_columns: list[str] = []
    if constraint_type == ConstraintType.FOREIGN_KEY:
        ref = data.get("references")
        if not ref:
            raise SchemaLoadError(f"Foreign key '{name}' missing 'references' field")
        _check_fields(ref, VALID_REFERENCE_FIELDS, f"references of '{name}'")
        foreign_schema = ref.get("schema")
        foreign_table = ref.get("table")
        foreign_columns = _section(ref, "columns", f"references of '{name}'")

    expression = data.get("expression")
    if constraint_type == ConstraintType.CHECK and not expression:
        raise SchemaLoadError(f"Check constraint '{name}' missing 'expression' field")

    try:
        return Constraint(
            name=name,
            constraint_type=constraint_type,
            table_schema=schema,
            table_name=table,
            columns=tuple(_section(data, "columns", f"{label} on '{table}'")),
            foreign_table_schema=foreign_schema,
            foreign_table_name=foreign_table,
            foreign_columns=tuple(foreign_columns),
            check_expression=expression,
        )
    except ValueError as e:
        raise SchemaLoadError(str(e)) from e


def _parse_dependency(data: dict, schema: str, table: str) -> DeclaredDependency:
    what = f"functional dependency on '{table}'"
    _check_fields(data, VALID_DEPENDENCY_FIELDS, what)
    determinant = tuple(_section(data, "determinant", what))
    dependent = tuple(_section(data, "dependent", what))
    if not determinant or not dependent:
        raise SchemaLoadError(
            f"Functional dependency on '{table}' needs 'determinant' and 'dependent'"
        )
    return DeclaredDependency(
        table_schema=schema,
        table_name=table,
        determinant=determinant,
        dependent=dependent,
    )
