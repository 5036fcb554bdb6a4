"""Core type definitions for ucdiag."""

from enum import Enum

__all__ = [
    "ConstraintType",
    "OperationCategory",
    "FDSource",
    "EventType",
    "View",
]


class ConstraintType(Enum):
    """Kinds of declared integrity rules that can be checked against live data."""

    PRIMARY_KEY = "PRIMARY KEY"
    FOREIGN_KEY = "FOREIGN KEY"
    UNIQUE = "UNIQUE"
    CHECK = "CHECK"
    EXCLUSION = "EXCLUSION"

    @classmethod
    def from_label(cls, label: str) -> "ConstraintType | None":
        """Map a catalog label ("PRIMARY KEY" or the short "p" form) to a type."""
        text = (label or "").strip().upper()
        for member in cls:
            if text == member.value:
                return member
        return _SHORT_LABELS.get(text)


_SHORT_LABELS = {
    "P": ConstraintType.PRIMARY_KEY,
    "F": ConstraintType.FOREIGN_KEY,
    "U": ConstraintType.UNIQUE,
    "C": ConstraintType.CHECK,
    "X": ConstraintType.EXCLUSION,
}


class OperationCategory(Enum):
    """Recovery operation categories, each mapped to a fixed set of proofs."""

    INSERT = "insert"
    DELETE = "delete"
    UPDATE = "update"
    ROLLBACK = "rollback"
    MIGRATION = "migration"


class FDSource(Enum):
    """How a functional dependency was obtained."""

    UNIQUE_CONSTRAINT = "derived-from-unique-constraint"
    PRIMARY_KEY = "primary-key"
    DATA_ANALYSIS = "data-analysis"
    DECLARED = "declared"


class EventType(Enum):
    """Kinds of table history events shown on the timeline."""

    QUERY = "QUERY"
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    SCHEMA_CHANGE = "DDL"
    VACUUM = "VACUUM"
    OPTIMIZE = "OPTIMIZE"


class View(Enum):
    """Views a diagnostic session can present."""

    HOME = "home"
    SCHEMA = "schema"
    TIMELINE = "timeline"
    DIAGNOSE = "diagnose"
    RECOVER = "recover"
    HELP = "help"
