"""
Batch script runner.

Executes Python source as a single batch unit. Actions deferred at the top
level of the script (or from helpers deferring into it) run when the whole
script finishes, not when the scope the script evaluates in exits.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Any, Optional, Sequence

from deferral.config.logging_config import get_logger
from deferral.runtime.boundary import batch_unit
from deferral.runtime.scope import Scope
from deferral.state.adapter import with_
from deferral.state.syspath import with_syspath

log = get_logger(__name__)


def set_argv(new: Sequence[str]) -> list[str]:
    old = list(sys.argv)
    sys.argv[:] = list(new)
    return old


with_argv = with_(set_argv)


def run_script(
    source: str,
    namespace: Optional[dict[str, Any]] = None,
    scope: Optional[Scope] = None,
    filename: str = "<script>",
) -> dict[str, Any]:
    """
    Execute ``source`` as one batch unit.

    Args:
        source: Python source code.
        namespace: Globals to execute in; a fresh ``__main__`` namespace by default.
        scope: Scope the script evaluates in; defaults to the current scope.
        filename: Name used in tracebacks.

    Returns:
        The namespace after execution.
    """
    if namespace is None:
        namespace = {"__name__": "__main__"}
    code = compile(source, filename, "exec")

    log.debug(f"Running script {filename}")
    with batch_unit(scope, name=filename):
        exec(code, namespace)
    return namespace


def run_path(
    path: str | os.PathLike,
    argv: Sequence[str] = (),
    scope: Optional[Scope] = None,
) -> dict[str, Any]:
    """Run a script file the way ``python path args...`` would, as one batch unit."""
    script = Path(path)
    source = script.read_text(encoding="utf-8")
    namespace: dict[str, Any] = {"__name__": "__main__", "__file__": str(script)}
    with with_argv([str(script), *argv]), with_syspath(script.parent, action="prefix"):
        return run_script(source, namespace=namespace, scope=scope, filename=str(script))
