"""Scoped environment variables."""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Optional

from deferral.state.adapter import local_, with_


def set_envvar(new: Mapping[str, Optional[str]]) -> dict[str, Optional[str]]:
    """Set environment variables; ``None`` unsets. Returns the previous values."""
    old = {name: os.environ.get(name) for name in new}
    for name, value in new.items():
        if value is None:
            os.environ.pop(name, None)
        else:
            os.environ[name] = str(value)
    return old


local_envvar = local_(set_envvar)
with_envvar = with_(set_envvar)
