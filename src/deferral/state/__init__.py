"""
Scoped changes to process state.

Each helper comes in two flavours: ``local_*`` applies a change and defers its
undo to the current scope, ``with_*`` is a context manager.
"""

from .adapter import local_, with_
from .dirs import local_dir, set_dir, with_dir
from .envvar import local_envvar, set_envvar, with_envvar
from .syspath import local_syspath, merge_paths, set_syspath, with_syspath
from .temp import local_tempdir, local_tempfile, with_tempfile

__all__ = [
    "local_",
    "local_dir",
    "local_envvar",
    "local_syspath",
    "local_tempdir",
    "local_tempfile",
    "merge_paths",
    "set_dir",
    "set_envvar",
    "set_syspath",
    "with_",
    "with_dir",
    "with_envvar",
    "with_syspath",
    "with_tempfile",
]
