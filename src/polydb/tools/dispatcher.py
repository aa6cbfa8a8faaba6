from __future__ import annotations

from typing import Any, Dict, List, Optional
import time

from jsonschema import Draft7Validator
from jsonschema.exceptions import best_match

from polydb.adapters.base import BackendAdapter
from polydb.exceptions.errors import BackendError, InvalidArguments, PolyDBError, UnknownOperation
from polydb.logging.logger import get_logger
from polydb.policy.gate import PolicyGate, PolicyMode
from polydb.tools.catalog import Catalog, build_catalog
from polydb.tools.envelope import ToolResponse
from polydb.tools.registry import Operation

log = get_logger("tools.dispatcher")


class Dispatcher:
    """Routes one invocation through Received -> Validated -> Authorized -> Executed -> Responded.

    Holds only immutable references (adapter, catalog, gate, compiled
    validators), so concurrent calls from worker threads share nothing
    mutable here. Thread safety of the adapter is the adapter's business.
    """

    def __init__(
        self,
        adapter: BackendAdapter,
        catalog: Optional[Catalog] = None,
        policy: PolicyMode = PolicyMode.READ_ONLY,
    ):
        self.adapter = adapter
        self.catalog = catalog if catalog is not None else build_catalog(adapter.kind)
        self.gate = PolicyGate(policy)
        self._validators = {op.name: Draft7Validator(op.parameter_schema) for op in self.catalog}

    def list_tools(self) -> List[Dict[str, Any]]:
        return self.catalog.listing()

    # -----------------------------
    # stages
    # -----------------------------
    def _receive(self, name: str) -> Operation:
        op = self.catalog.get(name)
        if op is None:
            raise UnknownOperation(name)
        return op

    def _validate(self, op: Operation, arguments: Any) -> Dict[str, Any]:
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise InvalidArguments(f"Arguments for {op.name} must be an object")
        error = best_match(self._validators[op.name].iter_errors(arguments))
        if error is not None:
            where = ".".join(str(p) for p in error.absolute_path)
            raise InvalidArguments(f"Invalid arguments for {op.name}: {(where + ': ') if where else ''}{error.message}")
        if op.check is not None:
            op.check(self.adapter, arguments)
        return arguments

    def _execute(self, op: Operation, arguments: Dict[str, Any]) -> Any:
        try:
            return op.handler(self.adapter, arguments)
        except PolyDBError:
            raise
        except Exception as e:
            raise BackendError(str(e) or type(e).__name__) from e

    def invoke(self, name: str, arguments: Any = None) -> Any:
        """Run the stages and return the raw payload; failures raise PolyDBError subclasses."""
        op = self._receive(name)
        args = self._validate(op, arguments)
        self.gate.check_allowed(op)
        return self._execute(op, args)

    def dispatch(self, name: str, arguments: Any = None) -> ToolResponse:
        started = time.perf_counter()
        try:
            response = ToolResponse.success(self.invoke(name, arguments))
        except PolyDBError as e:
            latency_ms = round((time.perf_counter() - started) * 1000, 2)
            log.warning(
                "Operation failed | operation=%s | error=%s",
                name,
                str(e),
                extra={
                    "operation": name,
                    "status": "error",
                    "error_type": type(e).__name__,
                    "latency_ms": latency_ms,
                },
                exc_info=isinstance(e, BackendError),
            )
            return ToolResponse.failure(str(e))

        log.info(
            "Operation completed",
            extra={
                "operation": name,
                "status": "ok",
                "latency_ms": round((time.perf_counter() - started) * 1000, 2),
            },
        )
        return response
