"""Schema snapshot, introspection and declared-schema modules."""

from ucdiag.schema.introspect import SchemaIntrospector
from ucdiag.schema.loader import load_declared_schema
from ucdiag.schema.models import (
    Column,
    Constraint,
    DeclaredDependency,
    SchemaModel,
    Table,
)

__all__ = [
    "Column",
    "Constraint",
    "DeclaredDependency",
    "SchemaIntrospector",
    "SchemaModel",
    "Table",
    "load_declared_schema",
]
