"""Schema snapshot classes."""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Optional

from ucdiag.types import ConstraintType, FDSource

KEY_CONSTRAINT_TYPES = frozenset(
    {ConstraintType.PRIMARY_KEY, ConstraintType.FOREIGN_KEY, ConstraintType.UNIQUE}
)


@dataclass(frozen=True)
class Column:
    """Column definition."""

    name: str
    data_type: str
    nullable: bool = True
    ordinal_position: int = 0


@dataclass(frozen=True)
class Table:
    """Table definition. Identity is (schema, name)."""

    schema: str
    name: str
    columns: tuple[Column, ...] = ()
    primary_key: Optional[tuple[str, ...]] = None

    @property
    def identity(self) -> tuple[str, str]:
        return (self.schema, self.name)

    @property
    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]

    def get_column(self, name: str) -> Optional[Column]:
        """Get a column by name."""
        for col in self.columns:
            if col.name == name:
                return col
        return None


@dataclass(frozen=True)
class Constraint:
    """A declared integrity rule on a table.

    PRIMARY KEY, FOREIGN KEY and UNIQUE require at least one column. A FOREIGN
    KEY without a foreign table is kept, and checks as vacuously satisfied.
    """

    name: str
    constraint_type: ConstraintType
    table_schema: str
    table_name: str
    columns: tuple[str, ...] = ()
    foreign_table_schema: Optional[str] = None
    foreign_table_name: Optional[str] = None
    foreign_columns: tuple[str, ...] = ()
    check_expression: Optional[str] = None

    def __post_init__(self) -> None:
        if len(set(self.columns)) != len(self.columns):
            raise ValueError(f"Constraint '{self.name}' lists a column twice")
        if self.constraint_type in KEY_CONSTRAINT_TYPES and not self.columns:
            raise ValueError(
                f"{self.constraint_type.value} constraint '{self.name}' has no columns"
            )

    @property
    def table_identity(self) -> tuple[str, str]:
        return (self.table_schema, self.table_name)

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.table_schema, self.table_name, self.name)

    @property
    def foreign_table_identity(self) -> Optional[tuple[str, str]]:
        if not self.foreign_table_name:
            return None
        return (self.foreign_table_schema or self.table_schema, self.foreign_table_name)


@dataclass(frozen=True)
class DeclaredDependency:
    """A functional dependency asserted in a declared schema file."""

    table_schema: str
    table_name: str
    determinant: tuple[str, ...]
    dependent: tuple[str, ...]


@dataclass(frozen=True)
class SchemaModel:
    """Immutable snapshot of tables and constraints for one introspection cycle."""

    catalog: Optional[str]
    schema: Optional[str]
    tables: tuple[Table, ...] = ()
    constraints: tuple[Constraint, ...] = ()
    declared_dependencies: tuple[DeclaredDependency, ...] = ()
    introspected_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def get_table(self, schema: str, name: str) -> Optional[Table]:
        """Get a table by its (schema, name) identity."""
        for table in self.tables:
            if table.identity == (schema, name):
                return table
        return None

    def table_names(self) -> set[str]:
        """Get all table names."""
        return {t.name for t in self.tables}

    def constraints_for(self, table: Table) -> list[Constraint]:
        """Constraints owned by a table, in snapshot order."""
        return [c for c in self.constraints if c.table_identity == table.identity]

    def merge(self, declared: "SchemaModel") -> "SchemaModel":
        """Overlay declared constraints and dependencies onto this snapshot.

        Introspected constraints win over declared ones with the same
        (schema, table, name). Declared entries with no schema inherit this
        snapshot's schema.
        """
        seen = {c.key for c in self.constraints}
        extra = []
        for constraint in declared.constraints:
            if not constraint.table_schema and self.schema:
                constraint = replace(constraint, table_schema=self.schema)
            if constraint.key in seen:
                continue
            seen.add(constraint.key)
            extra.append(constraint)

        dependencies = []
        for dep in declared.declared_dependencies:
            if not dep.table_schema and self.schema:
                dep = replace(dep, table_schema=self.schema)
            dependencies.append(dep)

        return replace(
            self,
            constraints=self.constraints + tuple(extra),
            declared_dependencies=self.declared_dependencies + tuple(dependencies),
        )

    def summary(self) -> dict[str, int]:
        return {
            "tables": len(self.tables),
            "constraints": len(self.constraints),
        }


def dependency_source_for(constraint_type: ConstraintType) -> FDSource:
    """Provenance tag for an FD derived from a key constraint."""
    if constraint_type == ConstraintType.PRIMARY_KEY:
        return FDSource.PRIMARY_KEY
    return FDSource.UNIQUE_CONSTRAINT
