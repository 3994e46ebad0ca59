"""
Generic save/restore adapters.

Any piece of global state that has a setter, an inverse setter and (optionally)
a getter can be scoped with two factories:

- ``local_(set_fn, reset_fn, get=...)`` builds ``local_x(new, ..., scope=None)``
  that applies ``new`` now and defers the restore on ``scope`` (default: the
  current scope).
- ``with_(set_fn, reset_fn, get=...)`` builds a context manager ``with_x(new)``
  that applies ``new`` for the duration of the block.

``set_fn(new, *args, **kwargs)`` must return the previous value unless ``get``
is supplied, in which case ``get(new, *args, **kwargs)`` is read before
setting. ``reset_fn(old)`` restores it; it defaults to ``set_fn``.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any, Optional

from deferral.runtime.classifier import validate_scope
from deferral.runtime.defer import defer
from deferral.runtime.handlers import Priority
from deferral.runtime.scope import Scope

SetFn = Callable[..., Any]
ResetFn = Callable[[Any], Any]
GetFn = Callable[..., Any]


def _apply(set_fn: SetFn, get: Optional[GetFn], new: Any, args: tuple, kwargs: dict) -> Any:
    if get is not None:
        old = get(new, *args, **kwargs)
        set_fn(new, *args, **kwargs)
        return old
    return set_fn(new, *args, **kwargs)


def local_(
    set_fn: SetFn,
    reset_fn: Optional[ResetFn] = None,
    get: Optional[GetFn] = None,
) -> Callable[..., Any]:
    """Build a ``local_*`` function from a setter/inverse setter pair."""
    reset = reset_fn or set_fn

    def local_fn(
        new: Any,
        *args: Any,
        scope: Optional[Scope] = None,
        priority: Priority | str = Priority.FIRST,
        **kwargs: Any,
    ) -> Any:
        priority = Priority.coerce(priority)
        if scope is not None:
            validate_scope(scope)
        old = _apply(set_fn, get, new, args, kwargs)
        defer(lambda: reset(old), scope=scope, priority=priority)
        return old

    return local_fn


def with_(
    set_fn: SetFn,
    reset_fn: Optional[ResetFn] = None,
    get: Optional[GetFn] = None,
) -> Callable[..., Any]:
    """Build a ``with_*`` context manager from a setter/inverse setter pair."""
    reset = reset_fn or set_fn

    @contextmanager
    def with_fn(new: Any, *args: Any, **kwargs: Any) -> Iterator[Any]:
        old = _apply(set_fn, get, new, args, kwargs)
        try:
            yield old
        finally:
            reset(old)

    return with_fn
