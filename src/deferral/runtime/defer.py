"""
Public entry points for deferring actions to scope exit.

Example:
    from deferral.runtime import defer, defer_parent, scoped

    @scoped
    def local_file(path):
        open(path, "w").close()
        defer_parent(lambda: os.remove(path))

    @scoped
    def work(path):
        local_file(path)
        assert os.path.exists(path)

    work(path)  # the file is gone once work() returns

Actions deferred on the top-level scope (outside any ``Scope``) are buffered
for the session: run them with ``deferred_run()``, drop them with
``deferred_clear()``, or let the interpreter run them at exit.
"""

from __future__ import annotations

from typing import Optional

from deferral.config.logging_config import get_logger
from deferral.runtime import binder
from deferral.runtime.classifier import Regime, classify, validate_scope
from deferral.runtime.handlers import Handler, Priority, Thunk, run_handlers
from deferral.runtime.scope import Scope, current_scope, parent_scope
from deferral.runtime.session import SessionBuffer

log = get_logger(__name__)


def defer(
    action: Thunk,
    scope: Optional[Scope] = None,
    priority: Priority | str = Priority.FIRST,
) -> Handler:
    """
    Run ``action`` when ``scope`` exits.

    Args:
        action: Zero-argument callable.
        scope: Target scope; defaults to the current scope.
        priority: "first" runs before the scope's other exit actions,
            "last" after them.

    Returns:
        The registered Handler.

    Raises:
        InvalidPriorityError: For an unknown priority.
        InvalidActionError: If ``action`` is not callable.
        InvalidScopeError: If ``scope`` is not a live Scope.
    """
    handler = Handler(action, Priority.coerce(priority))
    target = current_scope() if scope is None else validate_scope(scope)
    placement = classify(target)

    if placement.regime is Regime.SESSION:
        return SessionBuffer.get_instance().register(handler)

    if placement.regime is Regime.RENDER:
        registry = placement.unit.registry  # type: ignore[union-attr]
        if not registry:
            binder.bind(placement.target, registry)
        registry.register(handler)
        log.debug(f"Buffered {handler.describe()} for render unit {placement.unit.name}")  # type: ignore[union-attr]
        return handler

    if placement.regime is Regime.BATCH:
        log.debug(f"Redirected {handler.describe()} to batch unit {placement.unit.name}")  # type: ignore[union-attr]

    binder.merge(placement.target, handler)
    return handler


def defer_parent(action: Thunk, priority: Priority | str = Priority.FIRST) -> Handler:
    """Run ``action`` when the scope enclosing the current one exits."""
    return defer(action, scope=parent_scope(), priority=priority)


def global_defer(action: Thunk, priority: Priority | str = Priority.FIRST) -> Handler:
    """Buffer ``action`` in the session buffer regardless of the current scope."""
    return SessionBuffer.get_instance().register(Handler(action, Priority.coerce(priority)))


def deferred_run(scope: Optional[Scope] = None) -> int:
    """
    Run and remove the pending actions of ``scope`` now.

    For the top-level scope this releases the session buffer. For other
    scopes every pending exit action runs, native ones included.

    Returns:
        Number of actions that completed; 0 when nothing was pending.

    Raises:
        The first exception raised by an action, after all have run.
    """
    target = current_scope() if scope is None else validate_scope(scope)
    placement = classify(target)

    if placement.regime is Regime.SESSION:
        return SessionBuffer.get_instance().release()

    if placement.regime is Regime.RENDER:
        actions = placement.unit.registry.drain()  # type: ignore[union-attr]
    else:
        actions = placement.target.clear_exit_actions()
        binder.forget_bindings(placement.target)

    if not actions:
        log.info("No deferred actions to run")
        return 0

    report = run_handlers(actions)
    log.info(f"Ran {report.completed}/{report.total} deferred actions")
    report.raise_first()
    return report.completed


def deferred_clear(scope: Optional[Scope] = None) -> int:
    """Remove the pending actions of ``scope`` without running them.

    Returns:
        Number of actions removed.
    """
    target = current_scope() if scope is None else validate_scope(scope)
    placement = classify(target)

    if placement.regime is Regime.SESSION:
        return SessionBuffer.get_instance().discard()

    if placement.regime is Regime.RENDER:
        registry = placement.unit.registry  # type: ignore[union-attr]
        count = len(registry)
        registry.clear()
        return count

    count = len(placement.target.clear_exit_actions())
    binder.forget_bindings(placement.target)
    return count
