"""Loop model: specification, bindings, scope capture, chunking, tasks, reduction.

Example:
    >>> from chunkloop.loop import LoopSpec, Scope, capture_scope, plan_chunks
    >>> loop = LoopSpec(iterables={"x": [1, 2, 3]}, expr="x * k")
    >>> captured = capture_scope(loop.expr, Scope({"k": 10}), loop_names=loop.argnames)
    >>> captured.names
    ('k',)
"""

from chunkloop.loop.accumulator import COMBINERS, Accumulator, resolve_combine
from chunkloop.loop.analysis import expression_source, free_names, parse_expression
from chunkloop.loop.bindings import Binding, enumerate_bindings, iter_bindings
from chunkloop.loop.capture import CapturedScope, capture_scope, package_of
from chunkloop.loop.chunks import Chunk, chunk_ranges, count_chunks, plan_chunks, validate_chunk_size
from chunkloop.loop.scope import Closure, Scope
from chunkloop.loop.spec import MISSING, LoopSpec
from chunkloop.loop.task import ChunkTask, build_task

__all__ = [
    "Accumulator",
    "COMBINERS",
    "resolve_combine",
    "expression_source",
    "free_names",
    "parse_expression",
    "Binding",
    "enumerate_bindings",
    "iter_bindings",
    "CapturedScope",
    "capture_scope",
    "package_of",
    "Chunk",
    "chunk_ranges",
    "count_chunks",
    "plan_chunks",
    "validate_chunk_size",
    "Closure",
    "Scope",
    "MISSING",
    "LoopSpec",
    "ChunkTask",
    "build_task",
]
