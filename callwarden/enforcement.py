"""
CALLWARDEN Enforcement

Violation errors and the reporter that raises them. Violations subclass
PermissionError: a blocked operation reads like any other refused access
to the code that attempted it.
"""

from __future__ import annotations

from enum import Enum
from typing import NoReturn

from callwarden.operations import TrappedOperation

HALT_EXIT_CODE = 78


class ViolationKind(str, Enum):
    FILE = "file"
    FUNCTION = "function"


class Violation(PermissionError):
    """A watched file or function was used where the policy blocks it."""

    kind: ViolationKind

    def __init__(self, message: str, subject: str, operation: TrappedOperation):
        super().__init__(message)
        self.subject = subject
        self.operation = operation


class FileViolation(Violation):
    kind = ViolationKind.FILE


class FunctionViolation(Violation):
    kind = ViolationKind.FUNCTION


def report(kind: ViolationKind, subject: str, op: TrappedOperation) -> NoReturn:
    """Raise the violation for `op`. Never returns."""
    if kind is ViolationKind.FILE:
        raise FileViolation(
            f"CallWarden : {subject} was being written to by {op.function}, "
            f"called in {op.scope} in {op.file}",
            subject,
            op,
        )
    raise FunctionViolation(
        f"CallWarden : {op.function} was being called by {op.scope} in {op.file}",
        subject,
        op,
    )
