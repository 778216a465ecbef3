"""
CALLWARDEN Warden: the interception boundary

Ties the pieces together. The warden receives every trapped operation,
resolves the watched file/function it touches, asks the decision engine
for a verdict and reports a violation when the verdict is block.

It is NOT smart. It only routes.

Usage:
    interceptor = AuditHookInterceptor()
    interceptor.install()
    warden = configure(load_policy("policy.yaml"), interceptor)
"""

from __future__ import annotations

import os
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from loguru import logger

from callwarden.enforcement import (
    HALT_EXIT_CODE,
    Violation,
    ViolationKind,
    report,
)
from callwarden.governance import Action, WatchTable, build_watch_table, decide
from callwarden.interception import Interceptor
from callwarden.operations import HOOK_OPERATIONS, MUTATING_OPERATIONS, TrappedOperation
from callwarden.resolver import (
    is_interception_disable_attempt,
    resolve_file_target,
    resolve_function_target,
)


@dataclass(frozen=True)
class Incident:
    kind: ViolationKind
    subject: str
    operation: TrappedOperation


class Warden:
    """
    Decides on trapped operations against an injected WatchTable.

    process() is the handler interceptors call. When a violation is
    reported it either halts the process (halt_on_incident) or re-raises
    the violation to the code that attempted the operation.
    """

    def __init__(
        self,
        table: WatchTable,
        halt: Callable[[int], Any] = os._exit,
    ):
        self.table = table
        self._halt = halt

    @property
    def halt_on_incident(self) -> bool:
        return self.table.halt_on_incident

    def evaluate(self, op: TrappedOperation) -> Incident | None:
        """Return the incident `op` would cause, or None if it may proceed."""
        file = resolve_file_target(op, self.table.files)
        if file is not None:
            if decide(self.table.files[file], op) is Action.BLOCK:
                logger.warning(f"[WARDEN] Blocked {op.function} on {file} from {op.scope}")
                return Incident(ViolationKind.FILE, file, op)

        function = resolve_function_target(op, self.table.functions)
        if function is not None:
            if decide(self.table.functions[function], op) is Action.BLOCK:
                logger.warning(f"[WARDEN] Blocked {op.function} from {op.scope}")
                return Incident(ViolationKind.FUNCTION, function, op)

        if is_interception_disable_attempt(op):
            logger.warning(f"[WARDEN] Attempt to disable interception from {op.scope}")
            return Incident(ViolationKind.FUNCTION, op.function, op)

        return None

    def process(self, op: TrappedOperation) -> None:
        incident = self.evaluate(op)
        if incident is None:
            return
        try:
            report(incident.kind, incident.subject, incident.operation)
        except Violation as e:
            logger.critical(f"[WARDEN] {e}")
            if self.halt_on_incident:
                self._halt(HALT_EXIT_CODE)
            raise


def configure(
    policy: Any = None,
    interceptor: Interceptor | None = None,
    halt_on_incident: bool | None = None,
    halt: Callable[[int], Any] = os._exit,
) -> Warden:
    """
    Build the process-wide watchlist and register the warden.

    Callable once per process; a second call raises ConfigurationError.
    `halt_on_incident`, when given, overrides the policy's own flag.
    """
    if policy is None:
        policy = {}
    if halt_on_incident is not None:
        policy = _with_halt_flag(policy, halt_on_incident)

    table = build_watch_table(policy)
    warden = Warden(table, halt=halt)

    if interceptor is not None:
        # Every built-in mutator is trapped to check its file arguments
        for operation in MUTATING_OPERATIONS:
            interceptor._register(operation, warden.process)
        for function in table.functions:
            if function not in HOOK_OPERATIONS:
                interceptor._register(function, warden.process)
        # Last: nobody registers hooks after this point
        for operation in HOOK_OPERATIONS:
            interceptor._register(operation, warden.process)
        logger.info(f"[WARDEN] Registered with {type(interceptor).__name__}")

    return warden


def _with_halt_flag(policy: Any, halt_on_incident: bool) -> Any:
    if hasattr(policy, "model_copy"):
        return policy.model_copy(update={"halt_on_incident": halt_on_incident})
    updated = {k: v for k, v in dict(policy).items() if k not in ("haltOnIncident", "halt_on_incident")}
    updated["haltOnIncident"] = halt_on_incident
    return updated
