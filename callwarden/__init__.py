"""
CALLWARDEN: runtime access-policy enforcement for files and functions.

A declarative watchlist says which files and functions are watched, what
happens by default (allow/block) and which (scope, file) combinations are
exceptions. Every trapped call is decided before it runs.
"""

from callwarden.config_loader import PolicyConfig, PolicyLoadError, load_policy
from callwarden.enforcement import (
    FileViolation,
    FunctionViolation,
    Violation,
    ViolationKind,
)
from callwarden.governance import (
    AccessRule,
    Action,
    ConfigurationError,
    ExceptionSpecifier,
    WatchTable,
    build_watch_table,
    compile_watchlist,
    decide,
)
from callwarden.identifiers import GLOBAL_SCOPE, normalize, similar
from callwarden.interception import FunctionInterceptor, InterceptionError, Interceptor
from callwarden.interception.audit import AuditHookInterceptor
from callwarden.operations import TrappedOperation
from callwarden.warden import Incident, Warden, configure

__version__ = "0.1.0"

__all__ = [
    "AccessRule",
    "Action",
    "AuditHookInterceptor",
    "ConfigurationError",
    "ExceptionSpecifier",
    "FileViolation",
    "FunctionInterceptor",
    "FunctionViolation",
    "GLOBAL_SCOPE",
    "Incident",
    "InterceptionError",
    "Interceptor",
    "PolicyConfig",
    "PolicyLoadError",
    "TrappedOperation",
    "Violation",
    "ViolationKind",
    "Warden",
    "WatchTable",
    "build_watch_table",
    "compile_watchlist",
    "configure",
    "decide",
    "load_policy",
    "normalize",
    "similar",
]
