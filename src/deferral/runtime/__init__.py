"""
Deferred scope-exit execution.

Actions deferred with ``defer()`` run exactly once when their scope exits,
normally or through an exception. Scopes are bound via contextvars; the
top-level scope buffers its actions for the whole session.
"""

from .binder import bind, merge
from .boundary import BatchUnit, RenderUnit, active_unit, batch_unit, chunk, render_unit
from .classifier import Classification, Regime, classify
from .defer import defer, defer_parent, deferred_clear, deferred_run, global_defer
from .errors import (
    DeferralError,
    InvalidActionError,
    InvalidPriorityError,
    InvalidScopeError,
    ScopeStateError,
)
from .handlers import Handler, HandlerRegistry, Priority, RunReport, run_handlers
from .scope import GLOBAL_SCOPE, GlobalScope, Scope, current_scope, evaluating_in, parent_scope, scoped
from .session import SessionBuffer

__all__ = [
    "GLOBAL_SCOPE",
    "BatchUnit",
    "Classification",
    "DeferralError",
    "GlobalScope",
    "Handler",
    "HandlerRegistry",
    "InvalidActionError",
    "InvalidPriorityError",
    "InvalidScopeError",
    "Priority",
    "Regime",
    "RenderUnit",
    "RunReport",
    "Scope",
    "ScopeStateError",
    "SessionBuffer",
    "active_unit",
    "batch_unit",
    "bind",
    "chunk",
    "classify",
    "current_scope",
    "defer",
    "defer_parent",
    "deferred_clear",
    "deferred_run",
    "evaluating_in",
    "global_defer",
    "merge",
    "parent_scope",
    "render_unit",
    "run_handlers",
    "scoped",
]
