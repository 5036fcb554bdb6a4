"""Command-line interface for ucdiag."""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from ucdiag.config import Config
from ucdiag.databricks.utils import make_target_factory
from ucdiag.exceptions import ConfigError, ProofToolError
from ucdiag.recovery.proofs import verify_proofs
from ucdiag.report import build_report, write_report
from ucdiag.rpc import RpcServer
from ucdiag.schema.loader import load_declared_schema
from ucdiag.session import DiagnosticSession, SessionState
from ucdiag.timeline import HISTORY_LIMIT


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s",
        stream=sys.stderr,
    )

    if args.command == "schema":
        return cmd_schema(args)
    elif args.command == "diagnose":
        return cmd_diagnose(args)
    elif args.command == "recover":
        return cmd_recover(args)
    elif args.command == "ping":
        return cmd_ping(args)
    elif args.command == "timeline":
        return cmd_timeline(args)
    elif args.command == "ipc":
        return cmd_ipc(args)
    return cmd_verify_proofs(args)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ucdiag",
        description="Unity Catalog integrity diagnostics",
    )
    parser.add_argument(
        "--verbose", action="store_true", help="Log issued SQL and debug detail"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    schema_parser = subparsers.add_parser(
        "schema", help="Show tables, constraints and functional dependencies"
    )
    _add_connection_args(schema_parser)

    diagnose_parser = subparsers.add_parser(
        "diagnose", help="Check every constraint against live data"
    )
    _add_connection_args(diagnose_parser)
    diagnose_parser.add_argument(
        "--fail-on-violation",
        action="store_true",
        help="Exit with status 1 when any constraint is violated",
    )

    recover_parser = subparsers.add_parser(
        "recover", help="Diagnose and print a proof-annotated recovery plan"
    )
    _add_connection_args(recover_parser)

    ping_parser = subparsers.add_parser("ping", help="Test the connection")
    _add_connection_args(ping_parser)

    timeline_parser = subparsers.add_parser(
        "timeline", help="Show recent table history, deletes and schema changes flagged"
    )
    _add_connection_args(timeline_parser)
    timeline_parser.add_argument(
        "--limit",
        type=int,
        default=HISTORY_LIMIT,
        help=f"History entries read per table (default: {HISTORY_LIMIT})",
    )

    ipc_parser = subparsers.add_parser(
        "ipc", help="Serve JSON-lines requests on stdin/stdout"
    )
    _add_connection_args(ipc_parser)

    verify_parser = subparsers.add_parser(
        "verify-proofs", help="Build the proof project with lake"
    )
    verify_parser.add_argument(
        "--core-path",
        type=Path,
        help="Directory holding lakefile.lean (default: UCDIAG_PROOF_CORE)",
    )

    return parser


def _add_connection_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--connection",
        help="databricks://[token@]host[/catalog[/schema]] or a profile name",
    )
    parser.add_argument("--profile", help="~/.databrickscfg profile")
    parser.add_argument("--catalog", help="Unity Catalog catalog")
    parser.add_argument("--schema", help="Unity Catalog schema")
    parser.add_argument(
        "--schema-path",
        type=Path,
        help="YAML file or directory of declared constraints",
    )
    parser.add_argument("--json", action="store_true", help="Print JSON output")
    parser.add_argument("--output", type=Path, help="Write a YAML report to this path")


def build_session(args: argparse.Namespace) -> DiagnosticSession:
    """Wire a DiagnosticSession from CLI arguments and the environment.

    Raises:
        ConfigError: If an explicitly named profile is missing.
        SchemaLoadError: If the declared schema files are malformed.
    """
    config = Config.from_env(
        catalog=args.catalog,
        schema=args.schema,
        schema_path=str(args.schema_path) if args.schema_path else None,
        profile=args.profile,
    )
    declared = None
    if config.schema_path:
        declared = load_declared_schema(Path(config.schema_path))

    factory = make_target_factory(
        catalog=args.catalog, schema=args.schema, profile=args.profile
    )
    return DiagnosticSession(factory, declared=declared)


def _connect(session: DiagnosticSession, args: argparse.Namespace) -> SessionState:
    return session.connect(args.connection or "")


def _emit(state: SessionState, args: argparse.Namespace) -> None:
    """Print the JSON report and/or write the YAML report when requested."""
    if not args.json and not args.output:
        return
    report = build_report(
        model=state.schema,
        results=state.check_results,
        dependencies=state.functional_dependencies,
        plan=state.plan,
        timeline=state.timeline_entries,
    )
    if args.json:
        print(json.dumps(report, indent=2, default=str))
    if args.output:
        path = write_report(report, args.output)
        print(f"Report written to {path}", file=sys.stderr)


def _print_schema(state: SessionState) -> None:
    model = state.schema
    if model is None:
        return
    print(f"Schema {model.catalog}.{model.schema}: {len(model.tables)} tables")
    for table in model.tables:
        pk = f" [PK: {', '.join(table.primary_key)}]" if table.primary_key else ""
        print(f"  - {table.name} ({len(table.columns)} columns){pk}")

    print(f"Constraints ({len(model.constraints)}):")
    for constraint in model.constraints:
        print(
            f"  - {constraint.name}: {constraint.constraint_type.value} "
            f"on {constraint.table_name} ({', '.join(constraint.columns)})"
        )

    print(f"Functional dependencies ({len(state.functional_dependencies)}):")
    for fd in state.functional_dependencies:
        print(f"  - {fd} [{fd.source.value}]")


def _print_results(state: SessionState) -> None:
    for result in state.check_results:
        if result.violation is not None:
            marker = "✗"
            detail = result.violation.explanation
        elif result.degraded:
            marker = "?"
            detail = f"degraded: {result.error}"
        else:
            marker = "✓"
            detail = "satisfied"
        print(f"  {marker} {result.constraint_name} ({result.table_name}): {detail}")
        if result.violation is not None:
            for sample in result.violation.sample_violations:
                print(f"      {sample}")


def _print_plan(state: SessionState) -> None:
    plan = state.plan
    if plan is None:
        return
    print(f"{plan.name}:")
    for step in plan.steps:
        print(f"  {step.number}. {step.description}")
        print(f"     {step.statement}")
        for proof in step.proofs:
            print(f"     proof: {proof}")
    coverage = plan.coverage
    print(
        f"\nCoverage: {coverage.steps_with_proofs}/{coverage.total_steps} steps, "
        f"{coverage.unique_proofs} proofs, "
        f"properties: {', '.join(coverage.proven_properties) or 'none'}"
    )


def _print_timeline(state: SessionState) -> None:
    for entry in state.timeline_entries:
        marker = "!" if entry.has_violation else " "
        print(
            f"  {marker} {entry.timestamp} {entry.event_type.value:<8} {entry.description}"
        )


def cmd_schema(args: argparse.Namespace) -> int:
    """Introspect the schema and show it with derived dependencies."""
    try:
        with build_session(args) as session:
            state = _connect(session, args)
            if not args.json:
                _print_schema(state)
            _emit(state, args)
        return 0
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    except Exception as e:
        print(f"Schema error: {e}", file=sys.stderr)
        return 1


def cmd_diagnose(args: argparse.Namespace) -> int:
    """Check every constraint and report violations."""
    try:
        with build_session(args) as session:
            _connect(session, args)
            state = session.run_diagnostics()
            if not args.json:
                print(state.status)
                _print_results(state)
            _emit(state, args)
        if args.fail_on_violation and state.violations:
            return 1
        return 0
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    except Exception as e:
        print(f"Diagnose error: {e}", file=sys.stderr)
        return 1


def cmd_recover(args: argparse.Namespace) -> int:
    """Diagnose, then print the recovery plan for any violations."""
    try:
        with build_session(args) as session:
            _connect(session, args)
            session.run_diagnostics()
            state = session.generate_recovery_plan()
            if not args.json:
                print(state.status)
                _print_plan(state)
            _emit(state, args)
        return 0
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    except Exception as e:
        print(f"Recover error: {e}", file=sys.stderr)
        return 1


def cmd_timeline(args: argparse.Namespace) -> int:
    """Show recent history of every table, newest first."""
    try:
        with build_session(args) as session:
            _connect(session, args)
            state = session.load_timeline(args.limit)
            if not args.json:
                print(state.status)
                _print_timeline(state)
            _emit(state, args)
        return 0
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    except Exception as e:
        print(f"Timeline error: {e}", file=sys.stderr)
        return 1


def cmd_ping(args: argparse.Namespace) -> int:
    """Connect, report the schema size, disconnect."""
    try:
        with build_session(args) as session:
            state = _connect(session, args)
            if args.json:
                print(json.dumps(state.to_dict(), indent=2))
            else:
                print(state.status)
        return 0
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    except Exception as e:
        print(f"Ping error: {e}", file=sys.stderr)
        return 1


def cmd_ipc(args: argparse.Namespace) -> int:
    """Serve JSON-lines requests until quit or end of input."""
    try:
        session = build_session(args)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    except Exception as e:
        print(f"IPC error: {e}", file=sys.stderr)
        return 1

    RpcServer(session).serve(sys.stdin, sys.stdout)
    return 0


def cmd_verify_proofs(args: argparse.Namespace) -> int:
    """Build the proof project and report verified, failed or unverified."""
    core_path: Optional[Path] = args.core_path
    if core_path is None:
        try:
            configured = Config.from_env().proof_core_path
        except ConfigError as e:
            print(f"Configuration error: {e}", file=sys.stderr)
            return 2
        if not configured:
            print(
                "Configuration error: proof core path not set "
                "(use --core-path or UCDIAG_PROOF_CORE)",
                file=sys.stderr,
            )
            return 2
        core_path = Path(configured)

    try:
        ok = verify_proofs(core_path)
    except ProofToolError as e:
        print(f"unverified ({e})")
        return 1

    print("verified" if ok else "failed")
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
