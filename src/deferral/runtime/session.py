"""
Process-wide buffer for actions deferred on the top-level scope.

The top-level (session) scope never exits on its own, so its handlers are
held here until ``release()`` runs them or ``discard()`` drops them. The first
time the buffer becomes non-empty it installs one ``atexit`` fallback that
releases whatever is still pending when the interpreter shuts down.

Lifecycle:
    SessionBuffer.get_instance()    # lazily created singleton
    SessionBuffer.reset_instance()  # close the current buffer (tests)
"""

from __future__ import annotations

import atexit
from typing import Optional

from deferral.config.environment import Environment
from deferral.config.logging_config import get_logger
from deferral.runtime.handlers import Handler, HandlerRegistry, Priority, Thunk, run_handlers

log = get_logger(__name__)

SESSION_NOTICE = (
    "Setting global deferred event(s).\n"
    "i These will be run:\n"
    "  * Automatically, when the Python session ends.\n"
    "  * On demand, if you call `deferral.runtime.deferred_run()`.\n"
    "i Use `deferral.runtime.deferred_clear()` to clear them without executing."
)


class SessionBuffer:
    """Pending handlers of the top-level regime."""

    _instance: Optional["SessionBuffer"] = None

    def __init__(self) -> None:
        self.registry = HandlerRegistry()
        self._teardown_installed = False
        self._closed = False

    @classmethod
    def get_instance(cls) -> "SessionBuffer":
        """Get the process-wide buffer, creating it on first use."""
        if cls._instance is None:
            cls._instance = SessionBuffer()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Close the current buffer without running it and forget it."""
        if cls._instance is not None:
            cls._instance.close()
        cls._instance = None

    @property
    def teardown_installed(self) -> bool:
        return self._teardown_installed

    def __len__(self) -> int:
        return len(self.registry)

    def pending(self) -> tuple[Handler, ...]:
        return self.registry.snapshot()

    def register(self, action: Handler | Thunk, priority: Priority | str = Priority.FIRST) -> Handler:
        """Buffer an action for the next release."""
        handler = action if isinstance(action, Handler) else Handler(action, Priority.coerce(priority))
        was_empty = not self.registry

        self.registry.register(handler)

        if was_empty:
            if not self._teardown_installed:
                atexit.register(self._teardown)
                self._teardown_installed = True
                log.debug("Installed session teardown hook")
            if Environment.is_interactive():
                log.info(SESSION_NOTICE)
        return handler

    def release(self, quiet: bool = False) -> int:
        """
        Run and remove every pending action.

        Handlers registered while this runs stay pending for the next release.

        Args:
            quiet: Skip the summary log lines.

        Returns:
            The number of actions that completed without raising.

        Raises:
            The first exception raised by an action, after all have run.
        """
        handlers = self.registry.drain()
        if not handlers:
            if not quiet:
                log.info("No deferred actions to run")
            return 0

        report = run_handlers(handlers, label="session deferred action")
        if not quiet:
            log.info(f"Ran {report.completed}/{report.total} deferred actions")
        report.raise_first()
        return report.completed

    def discard(self) -> int:
        """Drop every pending action without running it. Returns how many."""
        count = len(self.registry)
        self.registry.clear()
        return count

    def close(self) -> None:
        """Drop pending actions and unregister the teardown hook."""
        self.registry.clear()
        if self._teardown_installed:
            atexit.unregister(self._teardown)
            self._teardown_installed = False
        self._closed = True

    def _teardown(self) -> None:
        if self._closed or not self.registry:
            return
        self.release(quiet=True)

    def __repr__(self) -> str:
        return f"SessionBuffer(pending={len(self.registry)}, teardown_installed={self._teardown_installed})"
