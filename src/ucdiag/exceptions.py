"""Exception classes for ucdiag."""

__all__ = [
    "UcdiagError",
    "ConfigError",
    "ConnectionFailedError",
    "IntrospectionError",
    "ConstraintCheckError",
    "ProofToolError",
    "SchemaLoadError",
    "SessionStateError",
]


class UcdiagError(Exception):
    """Base exception for ucdiag."""


class ConfigError(UcdiagError):
    """Error in configuration."""


class ConnectionFailedError(UcdiagError):
    """Cannot reach or authenticate to the target store."""


class IntrospectionError(UcdiagError):
    """Error enumerating tables, columns or constraints."""


class ConstraintCheckError(UcdiagError):
    """A detection query for a single constraint failed.

    Never escapes ConstraintChecker.check: the checker resolves it to a
    satisfied, degraded result.
    """

    def __init__(self, constraint_name: str, message: str):
        self.constraint_name = constraint_name
        super().__init__(message)


class ProofToolError(UcdiagError):
    """The external proof verification tool could not run."""


class SchemaLoadError(UcdiagError):
    """Error loading declared schema definition files."""


class SessionStateError(UcdiagError):
    """Command is not valid in the current session state."""
