"""Scoped working directory."""

from __future__ import annotations

import os

from deferral.state.adapter import local_, with_


def set_dir(path: str | os.PathLike) -> str:
    """Change the working directory. Returns the previous one."""
    old = os.getcwd()
    os.chdir(path)
    return old


local_dir = local_(set_dir)
with_dir = with_(set_dir)
