"""
Attach deferred handlers to a scope's native exit actions.

Two operations:

- ``merge`` places one handler directly before (``first``) or after
  (``last``) everything already registered on the scope, native actions
  included. Interleaving with native actions therefore follows registration
  order, e.g. native 1, first 2, native 3, native-before 4, last 5 runs as
  4, 2, 1, 3, 5.
- ``bind`` installs a single drain-and-run trampoline for a whole
  HandlerRegistry. It is idempotent per (scope, registry): binding twice never
  duplicates the trampoline.
"""

from __future__ import annotations

from deferral.config.logging_config import get_logger
from deferral.runtime.handlers import Handler, HandlerRegistry, Priority, run_handlers
from deferral.runtime.scope import Scope

log = get_logger(__name__)

_BOUND_ATTRIBUTE = "deferral.bound_registries"


def merge(scope: Scope, handler: Handler) -> None:
    """Insert ``handler`` into ``scope``'s native exit actions."""
    existing = scope.exit_actions()
    if handler.priority is Priority.FIRST:
        combined = (handler,) + existing
    else:
        combined = existing + (handler,)
    scope.set_exit_actions(combined)
    log.debug(f"Merged {handler.describe()} ({handler.priority.value}) into {scope!r}")


class _Trampoline:
    """Drains a registry at scope exit and runs every handler."""

    def __init__(self, registry: HandlerRegistry, label: str) -> None:
        self.registry = registry
        self.label = label

    def __call__(self) -> None:
        handlers = self.registry.drain()
        if not handlers:
            return
        log.debug(f"Running {len(handlers)} buffered handlers for {self.label}")
        run_handlers(handlers, label=f"deferred action of {self.label}").raise_first()

    def __repr__(self) -> str:
        return f"<trampoline {self.label}>"


def is_bound(scope: Scope, registry: HandlerRegistry) -> bool:
    bound = scope.get_attribute(_BOUND_ATTRIBUTE, ())
    return any(r is registry for r in bound)


def bind(scope: Scope, registry: HandlerRegistry, priority: Priority | str = Priority.FIRST) -> bool:
    """
    Install the drain-and-run trampoline for ``registry`` on ``scope``.

    Args:
        scope: The scope whose exit should drain the registry.
        registry: The buffered handlers.
        priority: Placement of the trampoline relative to existing actions.

    Returns:
        True if a trampoline was installed, False if one was already bound.
    """
    if is_bound(scope, registry):
        return False
    trampoline = _Trampoline(registry, label=repr(scope))
    merge(scope, Handler(trampoline, Priority.coerce(priority)))
    scope.set_attribute(_BOUND_ATTRIBUTE, scope.get_attribute(_BOUND_ATTRIBUTE, ()) + (registry,))
    return True


def forget_bindings(scope: Scope) -> None:
    """Forget bound trampolines after the scope's exit actions were cleared."""
    scope.pop_attribute(_BOUND_ATTRIBUTE, None)
