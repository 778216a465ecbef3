"""
CALLWARDEN Audit Hook Interception

Feeds CPython audit events (PEP 578) into the warden. Events such as
"open", "os.chmod" or "subprocess.Popen" are raised by the interpreter
before the operation runs, which is exactly when a decision is needed.

Audit hooks cannot be removed once added, so install() is one-way and
idempotent.
"""

from __future__ import annotations

import sys

from loguru import logger

from callwarden.identifiers import normalize
from callwarden.interception import FunctionInterceptor


class AuditHookInterceptor(FunctionInterceptor):
    """
    Interceptor backed by sys.addaudithook.

    Also able to wrap Python callables (inherited), since watched
    functions in application code raise no audit events.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._installed = False

    @property
    def installed(self) -> bool:
        return self._installed

    def install(self) -> None:
        with self._lock:
            if self._installed:
                return
            sys.addaudithook(self.on_event)
            self._installed = True
        logger.info("[AUDIT] Audit hook installed")

    def on_event(self, event: str, args: tuple) -> None:
        """Audit hook entry point; only subscribed events are trapped."""
        if not self._subscriptions:
            return
        identifier = normalize(event)
        if identifier not in self._subscriptions:
            return
        # Frame 1 is the Python code that triggered the event
        self.trap(identifier, tuple(args), sys._getframe(1))
