"""Functional dependency inference from uniqueness information."""

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Sequence

from ucdiag.schema.models import SchemaModel, Table, dependency_source_for
from ucdiag.types import ConstraintType, FDSource

__all__ = ["FunctionalDependency", "FunctionalDependencyInferencer"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FunctionalDependency:
    """determinant -> dependent on one table."""

    table_schema: str
    table_name: str
    determinant: tuple[str, ...]
    dependent: tuple[str, ...]
    confidence: float
    source: FDSource

    def __post_init__(self) -> None:
        if not self.determinant:
            raise ValueError("Functional dependency needs a determinant")
        if not self.dependent:
            raise ValueError("Functional dependency needs a dependent column")
        if set(self.determinant) & set(self.dependent):
            raise ValueError("Determinant and dependent columns must be disjoint")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError("Confidence must be within [0, 1]")

    def __str__(self) -> str:
        return (
            f"{self.table_name}: {{{', '.join(self.determinant)}}} -> "
            f"{{{', '.join(self.dependent)}}}"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "table_schema": self.table_schema,
            "table_name": self.table_name,
            "determinant": list(self.determinant),
            "dependent": list(self.dependent),
            "confidence": self.confidence,
            "source": self.source.value,
        }


class FunctionalDependencyInferencer:
    """Derive FDs from unique column sets: U -> (all columns - U).

    Only constraint-sourced (and declared) dependencies are produced; there is
    no closure computation and no data-driven discovery.
    """

    def infer(
        self,
        table: Table,
        unique_column_sets: Iterable[Sequence[str]],
        source: FDSource = FDSource.UNIQUE_CONSTRAINT,
    ) -> list[FunctionalDependency]:
        """One FD per unique set; a set already spanning all columns yields none."""
        dependencies = []
        for unique_columns in unique_column_sets:
            determinant = tuple(unique_columns)
            dependent = tuple(c for c in table.column_names if c not in determinant)
            if not determinant or not dependent:
                continue
            dependencies.append(
                FunctionalDependency(
                    table_schema=table.schema,
                    table_name=table.name,
                    determinant=determinant,
                    dependent=dependent,
                    confidence=1.0,
                    source=source,
                )
            )
        return dependencies

    def infer_schema(self, model: SchemaModel) -> list[FunctionalDependency]:
        """FDs for every table: primary key first, then unique constraints, then declared."""
        dependencies: list[FunctionalDependency] = []
        for table in model.tables:
            owned = model.constraints_for(table)
            keys = [c for c in owned if c.constraint_type == ConstraintType.PRIMARY_KEY]
            keys += [c for c in owned if c.constraint_type == ConstraintType.UNIQUE]
            seen: set[frozenset[str]] = set()
            for constraint in keys:
                key = frozenset(constraint.columns)
                if key in seen:
                    continue
                seen.add(key)
                dependencies.extend(
                    self.infer(
                        table,
                        [constraint.columns],
                        source=dependency_source_for(constraint.constraint_type),
                    )
                )

        for declared in model.declared_dependencies:
            try:
                dependencies.append(
                    FunctionalDependency(
                        table_schema=declared.table_schema,
                        table_name=declared.table_name,
                        determinant=declared.determinant,
                        dependent=declared.dependent,
                        confidence=1.0,
                        source=FDSource.DECLARED,
                    )
                )
            except ValueError as e:
                logger.warning(
                    f"Ignoring declared dependency on {declared.table_name}: {e}"
                )

        logger.info(f"Inferred {len(dependencies)} functional dependencies")
        return dependencies
