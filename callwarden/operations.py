"""
CALLWARDEN Operations

The trapped-operation record handed to the warden by an interceptor, and
the fixed catalogue of built-in operations the warden always watches.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from callwarden.identifiers import GLOBAL_SCOPE, normalize


@dataclass(frozen=True)
class TrappedOperation:
    """One intercepted call. Created per event, discarded after the decision."""

    function: str
    scope: str = GLOBAL_SCOPE
    file: str = ""
    arguments: tuple[Any, ...] = field(default_factory=tuple)
    lineno: int = 0

    @classmethod
    def create(
        cls,
        function: str,
        arguments: list[Any] | tuple[Any, ...] = (),
        scope: str | None = None,
        file: str = "",
        lineno: int = 0,
    ) -> "TrappedOperation":
        """Build a record from raw names, normalizing function and scope."""
        return cls(
            function=normalize(function) or "",
            scope=normalize(scope) or GLOBAL_SCOPE,
            file=file,
            arguments=tuple(arguments),
            lineno=lineno,
        )


# Operations exposed by every interceptor. Watched unconditionally so that
# nobody can register extra hooks or switch interception off.
SUBSCRIBE_BEFORE = "Interceptor.subscribe_before()"
SUBSCRIBE_AFTER = "Interceptor.subscribe_after()"
OPTION_SETTER = "Interceptor.set_option()"
HOOK_OPERATIONS = (SUBSCRIBE_AFTER, SUBSCRIBE_BEFORE)

INTERCEPTION_OPTION = "intercept.enable"
DISABLED_VALUES = frozenset({"", "0", "false", "off", "no", "disabled"})

# Built-in operations that can change a file's mode, ownership or contents,
# mapped to the argument positions that may carry a path. Identifiers are
# CPython audit event names. If you add one here, list its path positions.
MUTATING_OPERATIONS: dict[str, tuple[int, ...]] = {
    OPTION_SETTER: (),
    "os.chmod()": (0,),              # (path, mode, dir_fd)
    "os.chown()": (0,),              # (path, uid, gid, dir_fd)
    "shutil.copyfile()": (0, 1),     # (src, dst)
    "shutil.copytree()": (0, 1),     # (src, dst)
    "os.system()": (0,),             # (command,)
    "os.exec()": (0,),               # (path, args, env)
    "subprocess.Popen()": (0, 1),    # (executable, args, cwd, env)
    "open()": (0,),                  # (path, mode, flags)
    "os.link()": (0, 1),             # (src, dst, src_dir_fd, dst_dir_fd)
    "os.symlink()": (0, 1),          # (src, dst, dir_fd)
    "shutil.move()": (0, 1),         # (src, dst)
    "os.rename()": (0, 1),           # (src, dst, src_dir_fd, dst_dir_fd)
    "os.utime()": (0,),              # (path, times, ns, dir_fd)
    "os.truncate()": (0,),           # (path, length)
    "os.remove()": (0,),             # (path, dir_fd)
    "os.rmdir()": (0,),              # (path, dir_fd)
    "shutil.rmtree()": (0,),         # (path, dir_fd)
}
