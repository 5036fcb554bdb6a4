"""JSON-lines remote control for a DiagnosticSession.

Each request is one JSON object per line: {"id", "method", "params"}.
Each response is {"id", "result"} or {"id", "error": {"code", "message"}}.
"""

import json
import logging
from typing import Any, Callable, Optional, TextIO

from ucdiag.exceptions import SessionStateError, UcdiagError
from ucdiag.session import DiagnosticSession
from ucdiag.timeline import HISTORY_LIMIT

__all__ = [
    "PARSE_ERROR",
    "METHOD_NOT_FOUND",
    "INVALID_PARAMS",
    "INVALID_STATE",
    "COMMAND_FAILED",
    "RpcServer",
]

logger = logging.getLogger(__name__)

PARSE_ERROR = -32700
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
COMMAND_FAILED = -32000
INVALID_STATE = -32001


class InvalidParams(Exception):
    pass


class RpcServer:
    """Dispatches JSON-lines requests onto session commands."""

    def __init__(self, session: DiagnosticSession) -> None:
        self._session = session
        self._running = True
        self._methods: dict[str, Callable[[Any], dict[str, Any]]] = {
            "connect": self._connect,
            "introspectSchema": self._introspect_schema,
            "runDiagnostics": self._run_diagnostics,
            "generateRecoveryPlan": self._generate_recovery_plan,
            "loadTimeline": self._load_timeline,
            "disconnect": self._disconnect,
            "status": self._status,
            "quit": self._quit,
        }

    @property
    def running(self) -> bool:
        return self._running

    def handle_line(self, line: str) -> Optional[str]:
        """Handle one request line; blank lines produce no response."""
        if not line.strip():
            return None
        return json.dumps(self.handle_request(line))

    def handle_request(self, line: str) -> dict[str, Any]:
        try:
            request = json.loads(line)
        except json.JSONDecodeError as e:
            return _error(None, PARSE_ERROR, f"Parse error: {e.msg}")

        if not isinstance(request, dict) or not isinstance(request.get("method"), str):
            request_id = request.get("id") if isinstance(request, dict) else None
            return _error(request_id, PARSE_ERROR, "Parse error: invalid request")

        request_id = request.get("id")
        method = request["method"]
        handler = self._methods.get(method)
        if handler is None:
            return _error(request_id, METHOD_NOT_FOUND, f"Method not found: {method}")

        logger.debug(f"RPC {method} (id={request_id})")
        try:
            result = handler(request.get("params"))
        except InvalidParams as e:
            return _error(request_id, INVALID_PARAMS, str(e))
        except SessionStateError as e:
            return _error(request_id, INVALID_STATE, str(e))
        except UcdiagError as e:
            return _error(request_id, COMMAND_FAILED, str(e))
        except Exception as e:
            logger.warning(f"RPC {method} failed unexpectedly: {e}")
            return _error(request_id, COMMAND_FAILED, str(e))
        return {"id": request_id, "result": result}

    def serve(self, stdin: TextIO, stdout: TextIO) -> None:
        """Read requests until quit or end of input, then disconnect."""
        try:
            for line in stdin:
                response = self.handle_line(line)
                if response is not None:
                    stdout.write(response + "\n")
                    stdout.flush()
                if not self._running:
                    break
        finally:
            self._session.disconnect()

    def _connect(self, params: Any) -> dict[str, Any]:
        if isinstance(params, str):
            connection_string = params
        elif isinstance(params, dict) and isinstance(
            params.get("connection_string"), str
        ):
            connection_string = params["connection_string"]
        else:
            raise InvalidParams("connect expects a connection string")
        if not connection_string.strip():
            raise InvalidParams("connect expects a connection string")
        state = self._session.connect(connection_string)
        result = state.to_dict()
        result["functional_dependencies"] = [
            fd.to_dict() for fd in state.functional_dependencies
        ]
        return result

    def _introspect_schema(self, params: Any) -> dict[str, Any]:
        state = self._session.introspect_schema()
        result = state.to_dict()
        result["functional_dependencies"] = [
            fd.to_dict() for fd in state.functional_dependencies
        ]
        return result

    def _run_diagnostics(self, params: Any) -> dict[str, Any]:
        state = self._session.run_diagnostics()
        result = state.to_dict()
        result["results"] = [r.to_dict() for r in state.check_results]
        return result

    def _generate_recovery_plan(self, params: Any) -> dict[str, Any]:
        state = self._session.generate_recovery_plan()
        result = state.to_dict()
        result["plan"] = state.plan.to_dict() if state.plan else None
        return result

    def _load_timeline(self, params: Any) -> dict[str, Any]:
        if params is None:
            params = {}
        limit = params.get("limit", HISTORY_LIMIT) if isinstance(params, dict) else None
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise InvalidParams("loadTimeline expects an optional positive 'limit'")
        state = self._session.load_timeline(limit)
        result = state.to_dict()
        result["timeline"] = [e.to_dict() for e in state.timeline_entries]
        return result

    def _disconnect(self, params: Any) -> dict[str, Any]:
        return self._session.disconnect().to_dict()

    def _status(self, params: Any) -> dict[str, Any]:
        return self._session.state.to_dict()

    def _quit(self, params: Any) -> dict[str, Any]:
        self._running = False
        return self._session.disconnect().to_dict()


def _error(request_id: Any, code: int, message: str) -> dict[str, Any]:
    return {"id": request_id, "error": {"code": code, "message": message}}
