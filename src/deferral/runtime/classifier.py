"""Decide which registration regime applies to a target scope."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from deferral.config.environment import Environment
from deferral.runtime import boundary
from deferral.runtime.errors import InvalidScopeError
from deferral.runtime.scope import GLOBAL_SCOPE, Scope, is_global


class Regime(str, Enum):
    ORDINARY = "ordinary"
    SESSION = "session"
    BATCH = "batch"
    RENDER = "render"


@dataclass(frozen=True)
class Classification:
    """Where a registration on a scope should go.

    ``target`` is the scope whose exit will run the handler; for the session
    regime it is the global scope itself and the handler is buffered.
    ``unit`` is the boundary marker responsible for a redirect, if any.
    """

    regime: Regime
    target: Scope
    unit: Optional[boundary.BoundaryMarker] = None


def validate_scope(scope: object) -> Scope:
    if not isinstance(scope, Scope):
        raise InvalidScopeError(f"expected a Scope, got {type(scope).__name__}")
    if scope.is_closed:
        raise InvalidScopeError(f"{scope!r} has already exited")
    return scope


def classify(scope: Scope) -> Classification:
    """
    Classify ``scope``; first match wins:

    1. render: ``scope`` is the document of an active render unit and render
       hooking is enabled; redirect to the render unit.
    2. batch: a running batch unit evaluates in ``scope`` and either ``scope``
       is the global scope or batch detection is enabled; redirect to the
       innermost such unit.
    3. session: ``scope`` is the global scope with no open activation.
    4. ordinary.
    """
    validate_scope(scope)

    if not boundary.active_markers():
        # Fast path: without a running unit only the global scope is special
        if is_global(scope) and GLOBAL_SCOPE.depth == 0:
            return Classification(Regime.SESSION, scope)
        return Classification(Regime.ORDINARY, scope)

    render = boundary.find_render_unit(scope)
    if render is not None and Environment.hook_render():
        return Classification(Regime.RENDER, render.scope, render)

    batch = boundary.find_batch_unit(scope)
    if batch is not None and (is_global(scope) or Environment.hook_source()):
        return Classification(Regime.BATCH, batch.scope, batch)

    if is_global(scope) and GLOBAL_SCOPE.depth == 0:
        return Classification(Regime.SESSION, scope)

    return Classification(Regime.ORDINARY, scope)
