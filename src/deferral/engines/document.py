"""
Chunked document renderer.

Executes the fenced ``python`` code chunks of a Markdown document in order,
in one shared namespace, capturing each chunk's standard output. The whole
document is one render unit: actions deferred from any chunk run together
once the last chunk has finished.
"""

from __future__ import annotations

import io
import os
import re
from contextlib import redirect_stdout
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from deferral.config.logging_config import get_logger
from deferral.runtime.boundary import chunk as chunk_boundary
from deferral.runtime.boundary import render_unit
from deferral.runtime.errors import DeferralError
from deferral.runtime.scope import Scope

log = get_logger(__name__)

# ```python, ```py, ```{python}, ```{python label, opts}
_FENCE_OPEN = re.compile(r"^(?P<indent>[ \t]*)(?P<fence>`{3,})\s*\{?\s*(?:python|py)\b[^`\n]*$")


@dataclass(frozen=True)
class Chunk:
    index: int
    source: str
    line: int


@dataclass
class ChunkResult:
    chunk: Chunk
    output: str


class ChunkExecutionError(DeferralError):
    """Raised when a chunk fails; the original exception is chained."""

    def __init__(self, chunk: Chunk, error: BaseException):
        self.chunk = chunk
        self.error = error
        super().__init__(f"chunk {chunk.index + 1} (line {chunk.line}) failed: {error!r}")


def extract_chunks(text: str) -> list[Chunk]:
    """Return the python code chunks of a Markdown document in order."""
    chunks: list[Chunk] = []
    lines = text.splitlines()
    i = 0
    while i < len(lines):
        match = _FENCE_OPEN.match(lines[i])
        if not match:
            i += 1
            continue
        fence = match.group("fence")
        indent = len(match.group("indent"))
        start = i + 1
        body: list[str] = []
        i += 1
        while i < len(lines) and not lines[i].strip().startswith(fence):
            # Strip the fence's indentation from the body
            line = lines[i]
            body.append(line[indent:] if line[:indent].strip() == "" else line)
            i += 1
        chunks.append(Chunk(index=len(chunks), source="\n".join(body) + "\n", line=start + 1))
        i += 1
    return chunks


def render_document(
    text: str,
    namespace: Optional[dict[str, Any]] = None,
    document: Optional[Scope] = None,
    name: str = "<document>",
) -> list[ChunkResult]:
    """
    Execute every python chunk of ``text`` as one render unit.

    Args:
        text: Markdown source.
        namespace: Shared globals for all chunks.
        document: Scope the chunks evaluate in; a fresh one by default.
        name: Name used in tracebacks and logs.

    Returns:
        One ChunkResult per chunk with its captured stdout.

    Raises:
        ChunkExecutionError: If a chunk raises. Deferred actions still run.
    """
    if namespace is None:
        namespace = {"__name__": "__main__"}
    chunks = extract_chunks(text)
    results: list[ChunkResult] = []

    with render_unit(document, name=name) as unit:
        for chunk in chunks:
            code = compile(chunk.source, f"{name}:chunk-{chunk.index + 1}", "exec")
            buffer = io.StringIO()
            try:
                with chunk_boundary(unit), redirect_stdout(buffer):
                    exec(code, namespace)
            except Exception as e:
                raise ChunkExecutionError(chunk, e) from e
            results.append(ChunkResult(chunk=chunk, output=buffer.getvalue()))
    log.debug(f"Rendered {len(results)} chunks from {name}")
    return results


def render_path(path: str | os.PathLike) -> list[ChunkResult]:
    document_path = Path(path)
    text = document_path.read_text(encoding="utf-8")
    namespace: dict[str, Any] = {"__name__": "__main__", "__file__": str(document_path)}
    return render_document(text, namespace=namespace, name=str(document_path))
