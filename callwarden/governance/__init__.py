"""
CALLWARDEN Governance: Policy Store + Decision Engine

Compiles a declarative watchlist into two rule tables (files, functions)
and decides, per trapped operation, whether a watched entity may be used.

Policy shape:

    files:
      logs.log:
        default: allow          # mandatory, allow|block
        except:                 # each combination inverts the default
          - file: upload.py
    functions:
      target_function:
        default: block
        except:
          - scope: AllowedClass.allowed_method
            file: allowed_file.py
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any

from loguru import logger

from callwarden.config_loader import PolicyConfig
from callwarden.identifiers import CALL_SUFFIX, normalize, similar
from callwarden.operations import HOOK_OPERATIONS, TrappedOperation

# The package itself; any attempt to touch it is blocked.
ENGINE_SOURCE = str(Path(__file__).resolve().parent.parent)


# ---------------------------------------------------------------------------
# Rule Model
# ---------------------------------------------------------------------------

class ConfigurationError(Exception):
    """Raised when the watchlist is defined a second time."""
    pass


class Action(str, Enum):
    ALLOW = "allow"
    BLOCK = "block"

    @property
    def inverse(self) -> "Action":
        return Action.ALLOW if self is Action.BLOCK else Action.BLOCK

    @classmethod
    def parse(cls, value: Any) -> "Action | None":
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


@dataclass(frozen=True)
class ExceptionSpecifier:
    """A (scope, file) combination; absent fields match anything."""

    scope: str | None = None
    file: str | None = None

    def matches(self, op: TrappedOperation) -> bool:
        # Both fields are and-ed: the combination applies only if each matches
        if self.scope is not None and not similar(self.scope, op.scope):
            return False
        if self.file is not None and not similar(self.file, op.file):
            return False
        return True


@dataclass(frozen=True)
class AccessRule:
    default: Action
    exceptions: tuple[ExceptionSpecifier, ...] = ()


@dataclass(frozen=True)
class WatchTable:
    files: Mapping[str, AccessRule] = field(default_factory=lambda: MappingProxyType({}))
    functions: Mapping[str, AccessRule] = field(default_factory=lambda: MappingProxyType({}))
    halt_on_incident: bool = True

    def summary(self) -> dict[str, int]:
        return {
            "files": len(self.files),
            "functions": len(self.functions),
            "exceptions": sum(
                len(rule.exceptions)
                for table in (self.files, self.functions)
                for rule in table.values()
            ),
        }


# ---------------------------------------------------------------------------
# Decision Engine
# ---------------------------------------------------------------------------

def decide(rule: AccessRule, op: TrappedOperation) -> Action:
    """
    Resolve the verdict for a watched entity.

    Exceptions are scanned in configuration order and the first one that
    matches inverts the default. No match means the default stands.
    """
    for specifier in rule.exceptions:
        if specifier.matches(op):
            return rule.default.inverse
    return rule.default


# ---------------------------------------------------------------------------
# Policy Store
# ---------------------------------------------------------------------------

class _RuleDraft:
    def __init__(self, default: Action):
        self.default = default
        self.exceptions: list[ExceptionSpecifier] = []

    def freeze(self) -> AccessRule:
        return AccessRule(default=self.default, exceptions=tuple(self.exceptions))


def _policy_config(policy: Any) -> PolicyConfig:
    # Mappings and PolicyConfig-like objects go through the same validation,
    # so "false" means False whichever way the policy arrives
    if isinstance(policy, PolicyConfig):
        return policy
    if isinstance(policy, Mapping):
        return PolicyConfig.model_validate(dict(policy))
    return PolicyConfig.model_validate({
        "files": getattr(policy, "files", None),
        "functions": getattr(policy, "functions", None),
        "halt_on_incident": getattr(policy, "halt_on_incident", True),
    })


def _is_blank(identifier: str | None) -> bool:
    # "()" alone sits inside every identifier
    return identifier is None or not identifier.removesuffix(CALL_SUFFIX).strip()


def _parse_specifier(raw: Any) -> ExceptionSpecifier | None:
    if not isinstance(raw, Mapping) or not raw:
        return None
    scope = normalize(raw["scope"]) if raw.get("scope") is not None else None
    if _is_blank(scope):
        scope = None
    file = str(raw["file"]) if raw.get("file") is not None else None
    if file is not None and not file.strip():
        # A blank path is inside every path
        file = None
    if scope is None and file is None:
        return None
    return ExceptionSpecifier(scope=scope, file=file)


def _compile_section(
    section: Any,
    target: dict[str, _RuleDraft],
    files: dict[str, _RuleDraft],
    normalize_keys: bool,
) -> None:
    if not isinstance(section, Mapping):
        return

    for raw_key, filters in section.items():
        # An entry is unusable without a default action
        if not isinstance(filters, Mapping) or "default" not in filters:
            logger.debug(f"[POLICY] Skipping entry without default: {raw_key!r}")
            continue
        default = Action.parse(filters["default"])
        if default is None:
            logger.debug(f"[POLICY] Skipping entry with unknown default: {raw_key!r}")
            continue

        key = normalize(raw_key) if normalize_keys else str(raw_key)
        if _is_blank(key):
            logger.debug(f"[POLICY] Skipping empty identifier: {raw_key!r}")
            continue

        target[key] = _RuleDraft(default)

        excepts = filters.get("except")
        if not isinstance(excepts, (list, tuple)):
            continue

        for raw in excepts:
            specifier = _parse_specifier(raw)
            if specifier is None:
                logger.debug(f"[POLICY] Skipping malformed exception for {key}: {raw!r}")
                continue
            if default is Action.BLOCK and specifier.file is not None:
                # Allowed access originates from this file, so nothing may
                # rewrite it to smuggle code past the watchlist
                files[specifier.file] = _RuleDraft(Action.BLOCK)
            target[key].exceptions.append(specifier)


def compile_watchlist(policy: Any) -> WatchTable:
    """
    Compile a policy mapping into an immutable WatchTable.

    Malformed entries are skipped, not rejected. The engine's own source
    and the hook-registration operations are always blocked, whatever the
    policy says.
    """
    config = _policy_config(policy)

    files: dict[str, _RuleDraft] = {}
    functions: dict[str, _RuleDraft] = {}

    _compile_section(config.files, files, files, normalize_keys=False)
    _compile_section(config.functions, functions, files, normalize_keys=True)

    files[ENGINE_SOURCE] = _RuleDraft(Action.BLOCK)
    for operation in HOOK_OPERATIONS:
        functions[operation] = _RuleDraft(Action.BLOCK)

    table = WatchTable(
        files=MappingProxyType({k: v.freeze() for k, v in files.items()}),
        functions=MappingProxyType({k: v.freeze() for k, v in functions.items()}),
        halt_on_incident=config.halt_on_incident,
    )
    logger.debug(f"[POLICY] Compiled watchlist: {table.summary()}")
    return table


_configure_lock = threading.Lock()
_configured = False


def build_watch_table(policy: Any) -> WatchTable:
    """
    Build the process-wide WatchTable. Callable exactly once.

    Raises ConfigurationError on any later attempt; the first table stays
    in force.
    """
    global _configured
    with _configure_lock:
        if _configured:
            raise ConfigurationError("CallWarden : Attempt to redefine watchlist.")
        # Only a successfully compiled table marks the process configured
        table = compile_watchlist(policy)
        _configured = True
    logger.info(f"[POLICY] Watchlist configured: {table.summary()}")
    return table


def is_configured() -> bool:
    return _configured
