"""Scoped module search path (``sys.path``)."""

from __future__ import annotations

import os
import sys
from collections.abc import Iterable
from pathlib import Path
from typing import Literal, Union

from deferral.state.adapter import local_, with_

PathAction = Literal["replace", "prefix", "suffix"]
PathsArg = Union[str, os.PathLike, Iterable[Union[str, os.PathLike]]]

_ACTIONS = ("replace", "prefix", "suffix")


def _normalize(paths: PathsArg) -> list[str]:
    if isinstance(paths, (str, os.PathLike)):
        paths = [paths]
    # Missing directories are an error, like a search path typo would be
    return [str(Path(p).resolve(strict=True)) for p in paths]


def merge_paths(old: list[str], new: list[str], action: PathAction) -> list[str]:
    """Combine ``old`` and ``new`` entries, dropping duplicates of ``new``."""
    if action not in _ACTIONS:
        raise ValueError(f"action must be one of {', '.join(_ACTIONS)}, got {action!r}")
    if action == "replace":
        return list(new)
    rest = [p for p in old if p not in new]
    if action == "prefix":
        return list(new) + rest
    return rest + list(new)


def set_syspath(paths: PathsArg, action: PathAction = "prefix") -> list[str]:
    """Update ``sys.path`` in place. Returns the previous entries."""
    if action not in _ACTIONS:
        raise ValueError(f"action must be one of {', '.join(_ACTIONS)}, got {action!r}")
    new = _normalize(paths)
    old = list(sys.path)
    sys.path[:] = merge_paths(old, new, action)
    return old


def reset_syspath(old: list[str]) -> None:
    sys.path[:] = old


local_syspath = local_(set_syspath, reset_syspath)
with_syspath = with_(set_syspath, reset_syspath)
