"""
CALLWARDEN Call Stack Walker

Turns Python frames into call records. Each record describes one call:
the function called, the scope it was called from (the identifier of the
calling frame) and the file the call was made in. Module-level code has
no enclosing function and reports GLOBAL_SCOPE.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import FrameType

from callwarden.identifiers import GLOBAL_SCOPE, normalize
from callwarden.operations import TrappedOperation

# Wrappers around the real operation; their frames are not the caller.
DEFAULT_SKIP_MODULES = (
    "callwarden",
    "pathlib",
    "shutil",
    "subprocess",
    "os",
    "io",
    "codecs",
    "tempfile",
    "posixpath",
    "ntpath",
    "genericpath",
    "importlib",
)


@dataclass(frozen=True)
class CallRecord:
    function: str
    scope: str
    file: str
    lineno: int


def frame_identifier(frame: FrameType) -> str:
    code = frame.f_code
    if code.co_name == "<module>":
        return GLOBAL_SCOPE
    module = frame.f_globals.get("__name__") or ""
    qualname = code.co_qualname
    return normalize(f"{module}.{qualname}" if module else qualname) or GLOBAL_SCOPE


def _is_skipped(frame: FrameType, skip_modules: tuple[str, ...]) -> bool:
    module = frame.f_globals.get("__name__") or ""
    return any(module == m or module.startswith(m + ".") for m in skip_modules)


def walk_stack(
    function: str,
    frame: FrameType | None,
    skip_modules: tuple[str, ...] = DEFAULT_SKIP_MODULES,
) -> list[CallRecord]:
    """
    Walk outward from `frame`, the frame that made the call to `function`.

    Returns call records innermost first. Frames belonging to
    `skip_modules` are folded into the call they were making.
    """
    records: list[CallRecord] = []
    callee = normalize(function) or ""
    while frame is not None:
        if not _is_skipped(frame, skip_modules):
            caller = frame_identifier(frame)
            records.append(CallRecord(
                function=callee,
                scope=caller,
                file=frame.f_code.co_filename,
                lineno=frame.f_lineno,
            ))
            callee = caller
        frame = frame.f_back
    return records


def trapped_operation(
    function: str,
    arguments: tuple,
    frame: FrameType | None,
    skip_modules: tuple[str, ...] = DEFAULT_SKIP_MODULES,
) -> TrappedOperation:
    """Describe a call to `function` made from `frame`."""
    records = walk_stack(function, frame, skip_modules)
    if not records:
        return TrappedOperation.create(function, arguments)
    site = records[0]
    return TrappedOperation(
        function=site.function,
        scope=site.scope,
        file=site.file,
        arguments=tuple(arguments),
        lineno=site.lineno,
    )
