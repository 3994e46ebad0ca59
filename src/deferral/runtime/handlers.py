"""
Handler registry for deferred scope-exit actions.

A registry keeps its handlers in run order at all times:

    [first-priority handlers, newest first] ++ [last-priority handlers, oldest first]

so ``first`` handlers behave like a stack, ``last`` handlers like a queue, and
the whole ``first`` group runs before the ``last`` group.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from deferral.config.logging_config import get_logger
from deferral.runtime.errors import InvalidActionError, InvalidPriorityError

log = get_logger(__name__)

Thunk = Callable[[], Any]


class Priority(str, Enum):
    FIRST = "first"
    LAST = "last"

    @classmethod
    def coerce(cls, value: Priority | str) -> Priority:
        """Return the Priority for ``value`` or raise InvalidPriorityError."""
        if isinstance(value, Priority):
            return value
        if isinstance(value, str):
            try:
                return cls(value.lower())
            except ValueError:
                pass
        raise InvalidPriorityError(f"priority must be 'first' or 'last', got {value!r}")


@dataclass(frozen=True)
class Handler:
    """A zero-argument deferred action and its priority."""

    action: Thunk
    priority: Priority = Priority.FIRST

    def __post_init__(self) -> None:
        if not callable(self.action):
            raise InvalidActionError(f"deferred action must be callable, got {type(self.action).__name__}")
        object.__setattr__(self, "priority", Priority.coerce(self.priority))

    def __call__(self) -> Any:
        return self.action()

    def describe(self) -> str:
        return getattr(self.action, "__qualname__", None) or repr(self.action)


@dataclass
class RunReport:
    """Outcome of running a batch of deferred actions."""

    total: int
    completed: int = 0
    errors: list[Exception] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def raise_first(self) -> None:
        """Re-raise the first failure, if any."""
        if self.errors:
            raise self.errors[0]


def run_handlers(actions: Iterable[Thunk], label: str = "deferred action") -> RunReport:
    """
    Run every action in order, even when earlier ones raise.

    Failures are logged and collected on the returned report; the caller
    decides when to surface the first one with ``report.raise_first()``.
    """
    batch = tuple(actions)
    report = RunReport(total=len(batch))
    for index, action in enumerate(batch):
        try:
            action()
        except Exception as e:
            log.warning(f"{label} {index + 1}/{report.total} failed: {e!r}")
            report.errors.append(e)
        else:
            report.completed += 1
    return report


class HandlerRegistry:
    """Ordered pending handlers for exactly one scope."""

    def __init__(self, handlers: Iterable[Handler] = ()) -> None:
        self._first: list[Handler] = []
        self._last: list[Handler] = []
        for handler in handlers:
            self.register(handler)

    def register(self, handler: Handler | Thunk, priority: Priority | str | None = None) -> Handler:
        """
        Insert a handler according to its priority.

        Args:
            handler: A Handler, or a bare callable to wrap in one.
            priority: Overrides the handler's own priority when given.

        Returns:
            The registered Handler.
        """
        if not isinstance(handler, Handler):
            handler = Handler(handler, Priority.coerce(priority or Priority.FIRST))
        elif priority is not None:
            handler = Handler(handler.action, Priority.coerce(priority))

        if handler.priority is Priority.FIRST:
            # Kept oldest-first; reversed when read
            self._first.append(handler)
        else:
            self._last.append(handler)
        return handler

    def snapshot(self) -> tuple[Handler, ...]:
        """Return the pending handlers in run order without removing them."""
        return tuple(reversed(self._first)) + tuple(self._last)

    def drain(self) -> tuple[Handler, ...]:
        """Remove and return all pending handlers in run order."""
        handlers = self.snapshot()
        self._first = []
        self._last = []
        return handlers

    def clear(self) -> None:
        """Remove all pending handlers without running them."""
        self._first = []
        self._last = []

    def __len__(self) -> int:
        return len(self._first) + len(self._last)

    def __bool__(self) -> bool:
        return bool(self._first or self._last)

    def __iter__(self):
        return iter(self.snapshot())

    def __repr__(self) -> str:
        return f"HandlerRegistry(first={len(self._first)}, last={len(self._last)})"
