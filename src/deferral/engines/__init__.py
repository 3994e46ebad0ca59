"""Execution engines that define batch and render unit boundaries."""

from .document import Chunk, ChunkExecutionError, ChunkResult, extract_chunks, render_document, render_path
from .script import run_path, run_script

__all__ = [
    "Chunk",
    "ChunkExecutionError",
    "ChunkResult",
    "extract_chunks",
    "render_document",
    "render_path",
    "run_path",
    "run_script",
]
