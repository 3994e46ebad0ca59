"""
Dynamic execution scopes.

A Scope is the unit deferred actions attach to. Entering a scope binds it as
the current scope through a contextvar (so asyncio tasks and threads each see
their own stack); leaving it runs its native exit actions. ``GLOBAL_SCOPE`` is
the distinguished top-level scope that sits beneath every stack and is never
left, except through explicit activations (``with GLOBAL_SCOPE:``) which unwind
like ordinary frames.
"""

from __future__ import annotations

import contextvars
import functools
import inspect
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Optional, TypeVar

from deferral.config.logging_config import get_logger
from deferral.runtime.errors import InvalidActionError, ScopeStateError
from deferral.runtime.handlers import Thunk, run_handlers

log = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

_NEW = "new"
_ACTIVE = "active"
_EXITING = "exiting"
_CLOSED = "closed"

# ContextVar holding the stack of currently bound scopes, innermost last
_scope_stack: contextvars.ContextVar[tuple[Scope, ...]] = contextvars.ContextVar("_deferral_scope_stack", default=())


def current_scope() -> Scope:
    """Return the innermost bound scope, or GLOBAL_SCOPE when none is bound."""
    stack = _scope_stack.get()
    return stack[-1] if stack else GLOBAL_SCOPE


def scope_stack() -> tuple[Scope, ...]:
    """Return the currently bound scopes, outermost first."""
    return _scope_stack.get()


def parent_scope() -> Scope:
    """Return the scope enclosing the current one.

    Inside a ``@scoped`` helper this is the scope of the helper's caller.
    """
    stack = _scope_stack.get()
    return stack[-2] if len(stack) >= 2 else GLOBAL_SCOPE


class Scope:
    """A single-use dynamic execution context with native exit actions.

    Exit actions run when the ``with`` block ends, normally or through an
    exception. Every action runs even if an earlier one raises; the first
    failure is re-raised afterwards.
    """

    def __init__(self, name: Optional[str] = None) -> None:
        self.name = name
        self.parent: Optional[Scope] = None
        self._exit_actions: list[Thunk] = []
        self._attributes: dict[str, Any] = {}
        self._token: Optional[contextvars.Token] = None
        self._state = _NEW

    # ------------------------------------------------------------------
    # Native exit mechanism
    # ------------------------------------------------------------------

    def exit_actions(self) -> tuple[Thunk, ...]:
        """Return the registered exit actions in run order."""
        return tuple(self._exit_actions)

    def set_exit_actions(self, actions: Iterable[Thunk]) -> None:
        """Replace the exit actions with ``actions`` (in run order)."""
        actions = list(actions)
        for action in actions:
            if not callable(action):
                raise InvalidActionError(f"exit action must be callable, got {type(action).__name__}")
        self._exit_actions = actions

    def on_exit(self, action: Thunk, after: bool = True) -> None:
        """Add an exit action after (default) or before the existing ones."""
        actions = list(self._exit_actions)
        if after:
            actions.append(action)
        else:
            actions.insert(0, action)
        self.set_exit_actions(actions)

    def clear_exit_actions(self) -> tuple[Thunk, ...]:
        """Remove and return the exit actions without running them."""
        actions = tuple(self._exit_actions)
        self._exit_actions = []
        return actions

    # ------------------------------------------------------------------
    # Per-scope attributes
    # ------------------------------------------------------------------

    def get_attribute(self, key: str, default: Any = None) -> Any:
        return self._attributes.get(key, default)

    def set_attribute(self, key: str, value: Any) -> None:
        self._attributes[key] = value

    def pop_attribute(self, key: str, default: Any = None) -> Any:
        return self._attributes.pop(key, default)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_active(self) -> bool:
        return self._state in (_ACTIVE, _EXITING)

    @property
    def is_closed(self) -> bool:
        return self._state == _CLOSED

    def _bind(self) -> None:
        self.parent = current_scope()
        self._token = _scope_stack.set(_scope_stack.get() + (self,))

    def _check_innermost(self) -> None:
        stack = _scope_stack.get()
        if any(s is self for s in stack) and stack[-1] is not self:
            raise ScopeStateError(f"{self!r} exited while {stack[-1]!r} is still active")

    def _unbind(self) -> None:
        stack = _scope_stack.get()
        if self._token is not None:
            try:
                _scope_stack.reset(self._token)
            except ValueError:
                # Token was created in a different context (e.g., another task)
                _scope_stack.set(tuple(s for s in stack if s is not self))
            self._token = None

    def _run_exit_actions(self) -> None:
        # Actions added while unwinding run in the same exit
        errors: list[Exception] = []
        while self._exit_actions:
            actions = self.clear_exit_actions()
            errors.extend(run_handlers(actions, label=f"exit action of {self!r}").errors)
        if errors:
            raise errors[0]

    def __enter__(self) -> Scope:
        if self._state != _NEW:
            raise ScopeStateError(f"{self!r} cannot be entered twice")
        self._bind()
        self._state = _ACTIVE
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self._check_innermost()
        self._state = _EXITING
        try:
            self._unbind()
            self._run_exit_actions()
        finally:
            self._state = _CLOSED
            self._attributes.clear()

    async def __aenter__(self) -> Scope:
        return self.__enter__()

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.__exit__(exc_type, exc_val, exc_tb)

    def __repr__(self) -> str:
        label = self.name or hex(id(self))
        return f"<Scope {label} {self._state}>"


@dataclass(eq=False)
class _Activation:
    """One ``with GLOBAL_SCOPE:`` frame and the tokens that undo it."""

    actions: list[Thunk] = field(default_factory=list)
    stack_token: Optional[contextvars.Token] = None
    token: Optional[contextvars.Token] = None


# ContextVar holding the open activations of the global scope, innermost last
_global_activations: contextvars.ContextVar[tuple[_Activation, ...]] = contextvars.ContextVar(
    "_deferral_global_activations", default=()
)


def _reset_var(var: contextvars.ContextVar, token: Optional[contextvars.Token], fallback: Any) -> None:
    if token is None:
        var.set(fallback)
        return
    try:
        var.reset(token)
    except ValueError:
        # Token was created in a different context (e.g., another task)
        var.set(fallback)


class GlobalScope(Scope):
    """The top-level session scope.

    It has no natural exit. Each ``with GLOBAL_SCOPE:`` block is an activation
    that behaves like an ordinary frame: exit actions registered while it is
    the innermost activation run when that block ends. Activations are held in
    a contextvar, so each asyncio task and thread sees only its own.
    """

    _instance: Optional[GlobalScope] = None

    def __new__(cls) -> GlobalScope:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        if getattr(self, "_initialized", False):
            return
        super().__init__(name="global")
        self._state = _ACTIVE
        self._initialized = True

    @property
    def depth(self) -> int:
        """Number of activations open in the current context."""
        return len(_global_activations.get())

    @property
    def is_closed(self) -> bool:
        return False

    @property
    def _exit_actions(self) -> list[Thunk]:  # type: ignore[override]
        activations = _global_activations.get()
        if not activations:
            return []
        return activations[-1].actions

    @_exit_actions.setter
    def _exit_actions(self, actions: list[Thunk]) -> None:
        activations = _global_activations.get()
        if not activations:
            if actions:
                raise ScopeStateError("the global scope has no active frame to attach exit actions to")
            return
        activations[-1].actions[:] = actions

    def __enter__(self) -> GlobalScope:
        activation = _Activation()
        activation.stack_token = _scope_stack.set(_scope_stack.get() + (self,))
        activation.token = _global_activations.set(_global_activations.get() + (activation,))
        log.debug(f"Entered {self!r}")
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        activations = _global_activations.get()
        if not activations:
            raise ScopeStateError(f"{self!r} exited without an open activation")
        self._check_innermost()
        try:
            self._run_exit_actions()
        finally:
            activation = activations[-1]
            stack = _scope_stack.get()
            _reset_var(_global_activations, activation.token, activations[:-1])
            _reset_var(_scope_stack, activation.stack_token, stack[:-1] if stack and stack[-1] is self else stack)

    def reset(self) -> None:
        """Forget the activations of the current context and all attributes."""
        _global_activations.set(())
        self._attributes.clear()

    def __repr__(self) -> str:
        return f"<GlobalScope depth={self.depth}>"


GLOBAL_SCOPE = GlobalScope()


def is_global(scope: Scope) -> bool:
    return scope is GLOBAL_SCOPE


@contextmanager
def evaluating_in(scope: Scope) -> Iterator[Scope]:
    """Bind ``scope`` as the current scope without entering or exiting it.

    Engines use this to evaluate code "in" an existing scope, the way a script
    runs in its caller's namespace.
    """
    token = _scope_stack.set(_scope_stack.get() + (scope,))
    try:
        yield scope
    finally:
        try:
            _scope_stack.reset(token)
        except ValueError:
            stack = _scope_stack.get()
            _scope_stack.set(stack[:-1] if stack and stack[-1] is scope else stack)


def scoped(func: F) -> F:
    """Run every call of ``func`` in its own fresh Scope.

    Works for plain and async functions. Actions deferred inside the call run
    when it returns or raises.
    """
    name = getattr(func, "__qualname__", None)

    if inspect.iscoroutinefunction(func):

        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            with Scope(name=name):
                return await func(*args, **kwargs)

        return async_wrapper  # type: ignore[return-value]

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        with Scope(name=name):
            return func(*args, **kwargs)

    return wrapper  # type: ignore[return-value]
