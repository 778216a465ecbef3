"""
CALLWARDEN Interception

The capability the warden registers with. An interceptor calls every
handler subscribed to an operation synchronously, before the real
operation runs, with a TrappedOperation describing the call.

Lifecycle:
    interceptor = FunctionInterceptor()
    configure(policy, interceptor)      # warden subscribes its handlers

    @interceptor.intercept
    def func1(): ...                    # calls now go through the warden

The interceptor's own registration and option methods are trapped too,
so once the warden is configured they are policed like anything else.
"""

from __future__ import annotations

import functools
import sys
import threading
from collections.abc import Callable
from types import FrameType
from typing import Any

from loguru import logger

from callwarden.identifiers import normalize, similar
from callwarden.interception.stack import DEFAULT_SKIP_MODULES, trapped_operation
from callwarden.operations import (
    INTERCEPTION_OPTION,
    OPTION_SETTER,
    SUBSCRIBE_AFTER,
    SUBSCRIBE_BEFORE,
    TrappedOperation,
)
from callwarden.resolver import is_disabled_value

Handler = Callable[[TrappedOperation], None]


class InterceptionError(Exception):
    pass


class Interceptor:
    """
    Base interceptor: subscriptions keyed by exact call identifier.

    Subclasses decide where trapped calls come from; everything funnels
    into trap(), which never re-enters itself on the same thread.
    """

    def __init__(self, skip_modules: tuple[str, ...] = DEFAULT_SKIP_MODULES):
        self.skip_modules = skip_modules
        self.options: dict[str, Any] = {INTERCEPTION_OPTION: True}
        self._subscriptions: dict[str, list[Handler]] = {}
        self._lock = threading.Lock()
        self._local = threading.local()

    @property
    def enabled(self) -> bool:
        return not is_disabled_value(self.options.get(INTERCEPTION_OPTION, True))

    @property
    def subscriptions(self) -> dict[str, list[Handler]]:
        return {k: list(v) for k, v in self._subscriptions.items()}

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def subscribe_before(self, operation: str, handler: Handler) -> None:
        """Run `handler` before every call to `operation`."""
        self.trap(SUBSCRIBE_BEFORE, (operation, handler), sys._getframe(1))
        self._register(operation, handler)

    def _register(self, operation: str, handler: Handler) -> None:
        # Untrapped; the warden registers itself through here
        identifier = normalize(operation)
        if identifier is None:
            raise InterceptionError(f"Cannot subscribe to an empty operation: {operation!r}")
        with self._lock:
            handlers = self._subscriptions.setdefault(identifier, [])
            if handler not in handlers:
                handlers.append(handler)
        logger.debug(f"[INTERCEPT] Subscribed before {identifier}")

    def subscribe_after(self, operation: str, handler: Handler) -> None:
        """After-hooks are not supported: decisions are made before the call."""
        self.trap(SUBSCRIBE_AFTER, (operation, handler), sys._getframe(1))
        raise InterceptionError(f"After-hooks are not supported: {operation!r}")

    def set_option(self, name: str, value: Any) -> None:
        self.trap(OPTION_SETTER, (name, value), sys._getframe(1))
        self.options[str(name).strip().lower()] = value
        logger.info(f"[INTERCEPT] Option {name} = {value!r}")

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def handlers_for(self, function: str) -> list[Handler]:
        return list(self._subscriptions.get(function, ()))

    def trap(self, function: str, arguments: tuple, frame: FrameType | None) -> None:
        """
        Hand a call to `function` over to its subscribers.

        `frame` is the frame making the call. Handlers raise to stop the
        call; returning normally lets it proceed.
        """
        if not self.enabled or getattr(self._local, "active", False):
            return
        identifier = normalize(function) or ""
        handlers = self.handlers_for(identifier)
        if not handlers:
            return

        self._local.active = True
        try:
            op = trapped_operation(identifier, arguments, frame, self.skip_modules)
            for handler in handlers:
                handler(op)
        finally:
            self._local.active = False


class FunctionInterceptor(Interceptor):
    """
    Intercepts Python callables wrapped with intercept() or patch().

    Subscriptions match wrapped callables by similarity, so a watched
    "func1()" catches "myapp.tasks.func1()".
    """

    def handlers_for(self, function: str) -> list[Handler]:
        handlers: list[Handler] = []
        with self._lock:
            for operation, subscribed in self._subscriptions.items():
                if not similar(operation, function):
                    continue
                for handler in subscribed:
                    if handler not in handlers:
                        handlers.append(handler)
        return handlers

    def intercept(self, func: Callable, identifier: str | None = None) -> Callable:
        """Wrap `func` so each call is trapped first. Usable as a decorator."""
        name = identifier or f"{func.__module__}.{func.__qualname__}"

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            self.trap(name, args + tuple(kwargs.values()), sys._getframe(1))
            return func(*args, **kwargs)

        wrapper.__callwarden_identifier__ = normalize(name)
        return wrapper

    def patch(self, owner: Any, attribute: str, identifier: str | None = None) -> Callable:
        """Replace `owner.attribute` with an intercepted wrapper; returns the original."""
        original = getattr(owner, attribute)
        if identifier is None:
            prefix = getattr(owner, "__name__", type(owner).__name__)
            identifier = f"{prefix}.{attribute}"
        setattr(owner, attribute, self.intercept(original, identifier))
        logger.debug(f"[INTERCEPT] Patched {identifier}")
        return original


__all__ = [
    "FunctionInterceptor",
    "Handler",
    "InterceptionError",
    "Interceptor",
]
