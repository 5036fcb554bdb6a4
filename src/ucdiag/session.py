"""Diagnostic session: sequences introspection, checking and recovery planning.

The session state is an immutable snapshot. Every command builds a new
SessionState and swaps it in when the phase completes; navigation and input
editing are pure functions from state to state. The only mutable resource the
session owns is the open query executor.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Iterator, Optional
from urllib.parse import urlparse

from ucdiag.diagnostics.checker import ConstraintChecker
from ucdiag.diagnostics.dependencies import (
    FunctionalDependency,
    FunctionalDependencyInferencer,
)
from ucdiag.diagnostics.results import ConstraintCheckResult
from ucdiag.exceptions import (
    ConnectionFailedError,
    IntrospectionError,
    SessionStateError,
    UcdiagError,
)
from ucdiag.executor import ConnectionTarget
from ucdiag.recovery.plan import RecoveryPlan, RecoveryPlanSynthesizer
from ucdiag.schema.introspect import SchemaIntrospector
from ucdiag.schema.models import Constraint, SchemaModel
from ucdiag.timeline import HISTORY_LIMIT, TimelineEntry, TimelineLoader
from ucdiag.types import ConstraintType, View

__all__ = [
    "ConstraintNode",
    "Selection",
    "SessionState",
    "DiagnosticSession",
    "show_view",
    "navigate_up",
    "navigate_down",
    "toggle_section",
    "clamp_selection",
    "begin_input",
    "edit_input",
    "cancel_input",
]

logger = logging.getLogger(__name__)

WELCOME_STATUS = "Connect to a database to begin, '?' for help"
NOT_CHECKED = "Not yet checked"

TABLES = "tables"
CONSTRAINTS = "constraints"

TargetFactory = Callable[[str], ConnectionTarget]


@dataclass(frozen=True)
class ConstraintNode:
    """Display state of one constraint."""

    name: str
    constraint_type: ConstraintType
    table_name: str
    satisfied: bool = True
    violation_count: Optional[int] = None
    message: Optional[str] = NOT_CHECKED
    degraded: bool = False

    @classmethod
    def unchecked(cls, constraint: Constraint) -> "ConstraintNode":
        return cls(
            name=constraint.name,
            constraint_type=constraint.constraint_type,
            table_name=constraint.table_name,
        )

    @classmethod
    def from_result(cls, result: ConstraintCheckResult) -> "ConstraintNode":
        if result.violation is not None:
            count: Optional[int] = result.violation.violation_count
            message: Optional[str] = result.violation.explanation
        elif result.degraded:
            count, message = None, f"Check degraded to satisfied: {result.error}"
        else:
            count, message = None, None
        return cls(
            name=result.constraint_name,
            constraint_type=result.constraint_type,
            table_name=result.table_name,
            satisfied=result.satisfied,
            violation_count=count,
            message=message,
            degraded=result.degraded,
        )


@dataclass(frozen=True)
class Selection:
    """Cursor in the schema view. index None selects the section header."""

    section: str = TABLES
    index: Optional[int] = None


@dataclass(frozen=True)
class SessionState:
    view: View = View.HOME
    connected: bool = False
    connection_string: Optional[str] = None
    status: str = WELCOME_STATUS
    busy: bool = False
    schema: Optional[SchemaModel] = None
    functional_dependencies: tuple[FunctionalDependency, ...] = ()
    constraint_nodes: tuple[ConstraintNode, ...] = ()
    check_results: tuple[ConstraintCheckResult, ...] = ()
    plan: Optional[RecoveryPlan] = None
    timeline_entries: tuple[TimelineEntry, ...] = ()
    selection: Selection = field(default_factory=Selection)
    input_mode: bool = False
    input_buffer: str = ""

    @property
    def violations(self) -> int:
        return sum(1 for node in self.constraint_nodes if not node.satisfied)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "view": self.view.value,
            "connected": self.connected,
            "status": self.status,
            "busy": self.busy,
        }
        if self.schema is not None:
            data["schema"] = self.schema.summary()
        return data


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


def _section_size(state: SessionState, section: str) -> int:
    if state.schema is None:
        return 0
    if section == TABLES:
        return len(state.schema.tables)
    return len(state.schema.constraints)


def show_view(state: SessionState, view: View) -> SessionState:
    """Switch view; the schema view needs a loaded schema."""
    if view == View.SCHEMA and state.schema is None:
        return replace(state, status="No schema loaded. Connect first.")
    return replace(state, view=view)


def navigate_down(state: SessionState) -> SessionState:
    if state.view != View.SCHEMA:
        return state
    size = _section_size(state, state.selection.section)
    index = state.selection.index
    if index is None:
        if size == 0:
            return state
        return replace(state, selection=Selection(state.selection.section, 0))
    if index + 1 < size:
        return replace(state, selection=Selection(state.selection.section, index + 1))
    return state


def navigate_up(state: SessionState) -> SessionState:
    """Move up; above the first item the cursor wraps to the section header."""
    if state.view != View.SCHEMA:
        return state
    index = state.selection.index
    if index is None:
        return state
    if index > 0:
        return replace(state, selection=Selection(state.selection.section, index - 1))
    return replace(state, selection=Selection(state.selection.section, None))


def toggle_section(state: SessionState) -> SessionState:
    section = CONSTRAINTS if state.selection.section == TABLES else TABLES
    return replace(state, selection=Selection(section, None))


def clamp_selection(selection: Selection, state: SessionState) -> Selection:
    """Pull the cursor back inside its section after the list shrank."""
    if selection.index is None:
        return selection
    size = _section_size(state, selection.section)
    if size == 0:
        return Selection(selection.section, None)
    if selection.index >= size:
        return Selection(selection.section, size - 1)
    return selection


def begin_input(state: SessionState, initial: str = "") -> SessionState:
    """Enter connection-string capture mode."""
    if state.connected:
        return replace(state, status="Already connected. Disconnect first.")
    return replace(
        state,
        input_mode=True,
        input_buffer=initial,
        status="Enter connection string (Enter to confirm, Esc to cancel)",
    )


def edit_input(state: SessionState, text: str) -> SessionState:
    if not state.input_mode:
        return state
    return replace(state, input_buffer=text)


def cancel_input(state: SessionState) -> SessionState:
    if not state.input_mode:
        return state
    return replace(
        state, input_mode=False, input_buffer="", status="Connection cancelled"
    )


def redact(connection_string: str) -> str:
    """Drop credentials from a connection string for display."""
    parsed = urlparse(connection_string)
    if not parsed.scheme or not parsed.username:
        return connection_string
    host = parsed.hostname or ""
    if parsed.port:
        host = f"{host}:{parsed.port}"
    return parsed._replace(netloc=host).geturl()


class DiagnosticSession:
    """One connection, one diagnostic pipeline at a time.

    Commands return the new SessionState. Fatal errors (connection,
    introspection, invalid command order) update the status and are then
    re-raised; per-constraint check failures are absorbed by the checker.
    """

    def __init__(
        self,
        target_factory: TargetFactory,
        declared: Optional[SchemaModel] = None,
        checker: Optional[ConstraintChecker] = None,
        inferencer: Optional[FunctionalDependencyInferencer] = None,
    ) -> None:
        self._target_factory = target_factory
        self._declared = declared
        self._checker = checker
        self._inferencer = inferencer or FunctionalDependencyInferencer()
        self._target: Optional[ConnectionTarget] = None
        self._state = SessionState()

    @property
    def state(self) -> SessionState:
        return self._state

    def apply(self, transition: Callable[..., SessionState], *args: Any) -> SessionState:
        """Run a pure transition (navigation, input editing) against the current state."""
        return self._swap(transition(self._state, *args))

    def _swap(self, state: SessionState) -> SessionState:
        self._state = state
        return state

    def _fail(self, error: UcdiagError, status: str) -> UcdiagError:
        self._swap(replace(self._state, busy=False, status=status))
        return error

    @contextmanager
    def _running(self, status: str) -> Iterator[None]:
        if self._state.busy:
            raise SessionStateError("A diagnostic run is already in progress")
        self._swap(replace(self._state, busy=True, status=status))
        try:
            yield
        finally:
            if self._state.busy:
                self._swap(replace(self._state, busy=False))

    def _require_connection(self) -> ConnectionTarget:
        if not self._state.connected or self._target is None:
            raise self._fail(
                SessionStateError("Not connected"), "Connect to a database first"
            )
        return self._target

    def _load_schema(self, target: ConnectionTarget) -> SchemaModel:
        introspector = SchemaIntrospector(target.executor, target.catalog, target.schema)
        model = introspector.introspect_schema()
        if self._declared is not None:
            model = model.merge(self._declared)
        return model

    def _schema_loaded(self, state: SessionState, model: SchemaModel) -> SessionState:
        """Fresh cycle: new snapshot, unchecked constraints, no results or plan."""
        state = replace(
            state,
            schema=model,
            functional_dependencies=tuple(self._inferencer.infer_schema(model)),
            constraint_nodes=tuple(ConstraintNode.unchecked(c) for c in model.constraints),
            check_results=(),
            plan=None,
        )
        return replace(state, selection=clamp_selection(state.selection, state))

    def connect(self, connection_string: str) -> SessionState:
        """Open the connection, load the schema and show it.

        Raises:
            SessionStateError: If already connected or busy.
            ConfigError: If the connection string cannot be resolved.
            ConnectionFailedError: If the store cannot be reached.
            IntrospectionError: If the schema cannot be enumerated.
        """
        if self._state.connected:
            raise self._fail(
                SessionStateError("Already connected"),
                "Already connected. Disconnect first.",
            )

        with self._running(f"Connecting to {redact(connection_string)}..."):
            try:
                target = self._target_factory(connection_string)
            except UcdiagError as e:
                raise self._fail(e, f"Connection failed: {e}")

            try:
                target.executor.connect()
            except Exception as e:
                error = ConnectionFailedError(str(e))
                error.__cause__ = e
                raise self._fail(error, f"Connection failed: {e}")

            try:
                model = self._load_schema(target)
            except IntrospectionError as e:
                self._close_executor(target)
                raise self._fail(e, f"Schema error: {e}")

            self._target = target
            logger.info(f"Connected to {target.catalog}.{target.schema}")
            state = self._schema_loaded(
                replace(
                    self._state,
                    connected=True,
                    connection_string=connection_string,
                    input_mode=False,
                    input_buffer="",
                ),
                model,
            )
            return self._swap(
                replace(
                    state,
                    busy=False,
                    view=View.SCHEMA,
                    status=(
                        f"Connected: {_plural(len(model.tables), 'table')}, "
                        f"{_plural(len(model.constraints), 'constraint')}. "
                        f"Run diagnostics next."
                    ),
                )
            )

    def submit_input(self) -> SessionState:
        """Leave input mode and connect with the captured connection string."""
        if not self._state.input_mode:
            return self._state
        connection_string = self._state.input_buffer.strip()
        self._swap(replace(self._state, input_mode=False, input_buffer=""))
        if not connection_string:
            return self._swap(replace(self._state, status="Connection cancelled"))
        return self.connect(connection_string)

    def introspect_schema(self) -> SessionState:
        """Rebuild the schema snapshot; on failure the previous one is kept."""
        target = self._require_connection()
        with self._running("Refreshing schema..."):
            try:
                model = self._load_schema(target)
            except IntrospectionError as e:
                raise self._fail(e, f"Schema error: {e}")
            state = self._schema_loaded(self._state, model)
            return self._swap(
                replace(
                    state,
                    busy=False,
                    status=(
                        f"Schema loaded: {_plural(len(model.tables), 'table')}, "
                        f"{_plural(len(model.constraints), 'constraint')}"
                    ),
                )
            )

    def run_diagnostics(self) -> SessionState:
        """Check every constraint of the current snapshot against live data."""
        target = self._require_connection()
        model = self._state.schema
        if model is None:
            raise self._fail(SessionStateError("No schema loaded"), "No schema loaded")

        with self._running("Running constraint diagnostics..."):
            checker = self._checker or ConstraintChecker(catalog=model.catalog)
            results = tuple(checker.check_all(model.constraints, target.executor))
            nodes = tuple(ConstraintNode.from_result(r) for r in results)

            violations = sum(1 for r in results if not r.satisfied)
            degraded = sum(1 for r in results if r.degraded)
            status = (
                f"Diagnostics complete: {_plural(len(results), 'constraint')} checked, "
                f"{_plural(violations, 'violation')} found"
            )
            if degraded:
                status += f", {_plural(degraded, 'check')} degraded to satisfied"

            return self._swap(
                replace(
                    self._state,
                    busy=False,
                    check_results=results,
                    constraint_nodes=nodes,
                    plan=None,
                    view=View.DIAGNOSE,
                    status=status,
                )
            )

    def generate_recovery_plan(self) -> SessionState:
        """Synthesize the recovery plan once per diagnostic run."""
        if self._state.plan is not None:
            return self._swap(replace(self._state, view=View.RECOVER))
        self._require_connection()
        if not self._state.check_results:
            raise self._fail(
                SessionStateError("No diagnostics results"),
                "No diagnostics results yet. Run diagnostics first.",
            )

        with self._running("Generating recovery plan..."):
            model = self._state.schema
            synthesizer = RecoveryPlanSynthesizer(
                catalog=model.catalog if model else None
            )
            plan = synthesizer.synthesize(self._state.check_results)
            if plan is None:
                return self._swap(
                    replace(
                        self._state, busy=False, status="No violations to recover from"
                    )
                )

            coverage = plan.coverage
            return self._swap(
                replace(
                    self._state,
                    busy=False,
                    plan=plan,
                    view=View.RECOVER,
                    status=(
                        f"Recovery plan: {coverage.total_steps} steps, "
                        f"{coverage.unique_proofs} proofs, properties: "
                        f"{', '.join(coverage.proven_properties)}"
                    ),
                )
            )

    def load_timeline(self, limit: int = HISTORY_LIMIT) -> SessionState:
        """Read recent change history of every table and show it, newest first."""
        target = self._require_connection()
        model = self._state.schema
        if model is None:
            raise self._fail(SessionStateError("No schema loaded"), "No schema loaded")

        with self._running("Loading timeline..."):
            loader = TimelineLoader(target.executor, catalog=model.catalog, limit=limit)
            entries = tuple(loader.load(model.tables))
            return self._swap(
                replace(
                    self._state,
                    busy=False,
                    timeline_entries=entries,
                    view=View.TIMELINE,
                    status=f"Timeline loaded: {len(entries)} events",
                )
            )

    def disconnect(self) -> SessionState:
        """Close the connection and drop every snapshot. Idempotent."""
        if not self._state.connected and self._target is None:
            return self._state
        if self._state.busy:
            raise SessionStateError("A diagnostic run is already in progress")
        if self._target is not None:
            self._close_executor(self._target)
            self._target = None
        logger.info("Disconnected")
        return self._swap(SessionState(status="Disconnected"))

    def _close_executor(self, target: ConnectionTarget) -> None:
        try:
            target.executor.close()
        except Exception as e:
            logger.warning(f"Error while closing connection: {e}")

    def __enter__(self) -> "DiagnosticSession":
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.disconnect()
