"""
CALLWARDEN Operation Resolver

Works out which watched file and/or watched function a trapped
operation touches. File targets are only looked for when the operation
is one of the built-in mutating operations; its path arguments are then
compared against every watched file.
"""

from __future__ import annotations

import os
from collections.abc import Iterable, Mapping
from typing import Any

from loguru import logger

from callwarden.identifiers import similar
from callwarden.operations import (
    DISABLED_VALUES,
    INTERCEPTION_OPTION,
    MUTATING_OPERATIONS,
    OPTION_SETTER,
    TrappedOperation,
)


def resolve_mutator(
    op: TrappedOperation,
    mutators: Mapping[str, tuple[int, ...]] = MUTATING_OPERATIONS,
) -> str | None:
    """Find the built-in mutating operation `op` is an instance of."""
    if op.function in mutators:
        return op.function
    # "open()" sits inside "subprocess.Popen()", so exact names win above
    for suspect in mutators:
        if similar(suspect, op.function):
            return suspect
    return None


def _as_path(value: Any) -> str | None:
    if isinstance(value, str):
        return value
    if isinstance(value, (bytes, os.PathLike)):
        return os.fsdecode(value)
    return None


def extract_paths(op: TrappedOperation, positions: Iterable[int]) -> list[str]:
    """
    Pull path-like arguments out of the given positions.

    A sequence argument (a subprocess argv) is joined into one command
    line, so a watched path mentioned anywhere in it is found. File
    descriptors and other values are ignored.
    """
    paths = []
    for position in positions:
        if position >= len(op.arguments):
            continue
        value = op.arguments[position]
        if isinstance(value, (list, tuple)):
            parts = [_as_path(v) for v in value]
            paths.append(" ".join(p for p in parts if p is not None))
            continue
        path = _as_path(value)
        if path is not None:
            paths.append(path)
    return paths


def resolve_file_target(
    op: TrappedOperation,
    watched_files: Iterable[str],
    mutators: Mapping[str, tuple[int, ...]] = MUTATING_OPERATIONS,
) -> str | None:
    """Return the first watched file (table order) the operation targets."""
    mutator = resolve_mutator(op, mutators)
    if mutator is None:
        return None

    target_paths = extract_paths(op, mutators[mutator])
    if not target_paths:
        return None

    for suspect in watched_files:
        for path in target_paths:
            if similar(suspect, path):
                logger.debug(f"[RESOLVER] {op.function} touches watched file {suspect} via {path!r}")
                return suspect
    return None


def resolve_function_target(op: TrappedOperation, watched_functions: Iterable[str]) -> str | None:
    """Return the first watched function identifier similar to `op.function`."""
    for suspect in watched_functions:
        if similar(suspect, op.function):
            logger.debug(f"[RESOLVER] {op.function} is watched as {suspect}")
            return suspect
    return None


def is_disabled_value(value: Any) -> bool:
    if value is None or value is False:
        return True
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value == 0
    return str(value).strip().lower() in DISABLED_VALUES


def is_interception_disable_attempt(op: TrappedOperation) -> bool:
    """True if the operation tries to switch the interception layer off."""
    if op.function != OPTION_SETTER or len(op.arguments) < 2:
        return False
    name, value = op.arguments[0], op.arguments[1]
    return str(name).strip().lower() == INTERCEPTION_OPTION and is_disabled_value(value)
