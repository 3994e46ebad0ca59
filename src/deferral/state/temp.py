"""Temporary files and directories removed at scope exit."""

from __future__ import annotations

import shutil
import tempfile
import uuid
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

from deferral.runtime.classifier import validate_scope
from deferral.runtime.defer import defer
from deferral.runtime.handlers import Priority
from deferral.runtime.scope import Scope


def _temp_path(prefix: str, suffix: str, directory: Optional[str | Path]) -> Path:
    base = Path(directory) if directory is not None else Path(tempfile.gettempdir())
    return base / f"{prefix}{uuid.uuid4().hex}{suffix}"


def _write_lines(path: Path, lines: Iterable[str]) -> None:
    # Every line ends with "\n" regardless of platform
    path.write_bytes("".join(f"{line}\n" for line in lines).encode("utf-8"))


def remove_path(path: Path) -> None:
    """Delete a file or directory tree if it exists."""
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    else:
        path.unlink(missing_ok=True)


def local_tempfile(
    lines: Optional[Iterable[str]] = None,
    *,
    prefix: str = "file",
    suffix: str = "",
    directory: Optional[str | Path] = None,
    scope: Optional[Scope] = None,
    priority: Priority | str = Priority.FIRST,
) -> Path:
    """
    Return a fresh temporary path that is deleted when ``scope`` exits.

    The file is only created when ``lines`` is given; they are written as
    UTF-8, one per line. Whatever exists at the path on exit (file or
    directory) is removed.
    """
    priority = Priority.coerce(priority)
    if scope is not None:
        validate_scope(scope)
    path = _temp_path(prefix, suffix, directory)
    if lines is not None:
        _write_lines(path, lines)
    defer(lambda: remove_path(path), scope=scope, priority=priority)
    return path


def local_tempdir(
    *,
    prefix: str = "dir",
    directory: Optional[str | Path] = None,
    scope: Optional[Scope] = None,
    priority: Priority | str = Priority.FIRST,
) -> Path:
    """Create a temporary directory that is deleted when ``scope`` exits."""
    priority = Priority.coerce(priority)
    if scope is not None:
        validate_scope(scope)
    path = Path(tempfile.mkdtemp(prefix=prefix, dir=directory))
    defer(lambda: remove_path(path), scope=scope, priority=priority)
    return path


@contextmanager
def with_tempfile(
    lines: Optional[Iterable[str]] = None,
    *,
    prefix: str = "file",
    suffix: str = "",
    directory: Optional[str | Path] = None,
) -> Iterator[Path]:
    """Yield a temporary path that is deleted when the block ends."""
    path = _temp_path(prefix, suffix, directory)
    if lines is not None:
        _write_lines(path, lines)
    try:
        yield path
    finally:
        remove_path(path)
