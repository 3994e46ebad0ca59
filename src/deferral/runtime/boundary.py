"""
Batch-script and chunked-render boundary markers.

Engines that evaluate code in somebody else's scope (a script runner executing
a file in its caller's namespace, a document renderer executing chunk after
chunk in a shared document namespace) push a marker for the duration of the
unit. The classifier consults the marker stack to redirect registrations to
the unit's own scope, so actions fire when the whole unit ends rather than
after each statement or chunk.
"""

from __future__ import annotations

import contextvars
from collections.abc import Iterator
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass, field
from typing import Optional, Union

from deferral.config.logging_config import get_logger
from deferral.runtime.handlers import HandlerRegistry
from deferral.runtime.scope import Scope, current_scope, evaluating_in

log = get_logger(__name__)


@dataclass(eq=False)
class BatchUnit:
    """A running batch script.

    Attributes:
        target: The scope the script's code is evaluated in.
        scope: The scope of the run itself; redirected handlers attach here.
    """

    target: Scope
    scope: Scope
    name: str = "<script>"


@dataclass(eq=False)
class RenderUnit:
    """A document being rendered chunk by chunk.

    Handlers registered from any chunk are buffered in ``registry`` and run
    together, once, when ``scope`` (the render call) exits.
    """

    document: Scope
    scope: Scope
    name: str = "<document>"
    registry: HandlerRegistry = field(default_factory=HandlerRegistry)
    chunks_started: int = 0


BoundaryMarker = Union[BatchUnit, RenderUnit]

# ContextVar holding the stack of active boundary markers, innermost last
_boundary_stack: contextvars.ContextVar[tuple[BoundaryMarker, ...]] = contextvars.ContextVar(
    "_deferral_boundary_stack", default=()
)


def push(marker: BoundaryMarker) -> contextvars.Token:
    """Mark the start of a unit. Returns a token for ``pop``."""
    log.debug(f"Boundary start: {type(marker).__name__} {marker.name}")
    return _boundary_stack.set(_boundary_stack.get() + (marker,))


def pop(marker: BoundaryMarker, token: Optional[contextvars.Token] = None) -> None:
    """Mark the end of a unit."""
    log.debug(f"Boundary end: {type(marker).__name__} {marker.name}")
    if token is not None:
        try:
            _boundary_stack.reset(token)
            return
        except ValueError:
            # Token was created in a different context (e.g., another task)
            pass
    _boundary_stack.set(tuple(m for m in _boundary_stack.get() if m is not marker))


def active_markers() -> tuple[BoundaryMarker, ...]:
    return _boundary_stack.get()


def active_unit() -> Optional[BoundaryMarker]:
    """Return the innermost active marker, if any."""
    stack = _boundary_stack.get()
    return stack[-1] if stack else None


def find_batch_unit(scope: Scope) -> Optional[BatchUnit]:
    """Return the innermost running batch unit evaluating in ``scope``."""
    for marker in reversed(_boundary_stack.get()):
        if isinstance(marker, BatchUnit) and marker.target is scope:
            return marker
    return None


def find_render_unit(scope: Scope) -> Optional[RenderUnit]:
    """Return the innermost render unit whose document scope is ``scope``."""
    for marker in reversed(_boundary_stack.get()):
        if isinstance(marker, RenderUnit) and marker.document is scope:
            return marker
    return None


@contextmanager
def batch_unit(target: Optional[Scope] = None, name: str = "<script>") -> Iterator[BatchUnit]:
    """
    Run a batch unit evaluating in ``target`` (default: the current scope).

    The unit gets its own Scope; while the block runs, ``target`` is bound as
    the current scope so code inside behaves as if it ran there directly.
    """
    target = target if target is not None else current_scope()
    with Scope(name=f"batch:{name}") as unit_scope:
        marker = BatchUnit(target=target, scope=unit_scope, name=name)
        token = push(marker)
        try:
            with evaluating_in(target):
                yield marker
        finally:
            pop(marker, token)


@contextmanager
def render_unit(document: Optional[Scope] = None, name: str = "<document>") -> Iterator[RenderUnit]:
    """
    Render a document whose chunks all evaluate in ``document``.

    Without a ``document``, a fresh document scope is opened for the render.

    Chunk code should run inside ``chunk(marker)`` blocks; handlers they
    register are buffered on the unit and run when this block ends.
    """
    with ExitStack() as stack:
        unit_scope = stack.enter_context(Scope(name=f"render:{name}"))
        if document is None:
            document = stack.enter_context(Scope(name=f"document:{name}"))
        marker = RenderUnit(document=document, scope=unit_scope, name=name)
        token = push(marker)
        try:
            yield marker
        finally:
            pop(marker, token)


@contextmanager
def chunk(marker: RenderUnit) -> Iterator[Scope]:
    """Evaluate one chunk of ``marker``'s document."""
    marker.chunks_started += 1
    with evaluating_in(marker.document):
        yield marker.document
