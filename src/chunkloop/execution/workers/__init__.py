"""Isolated worker adapters.

All workers implement the same protocol (payload in, payload out), so the
dispatcher is indifferent to how a chunk is isolated.

Available workers:
- SubprocessWorker: fresh interpreter per chunk (default)
- ProcessPoolWorker: ProcessPoolExecutor children
- InlineWorker: in-process (testing, dry runs)

Example:
    >>> from chunkloop.execution.workers import make_worker
    >>> worker = make_worker("subprocess", timeout=30)
"""

from __future__ import annotations

from chunkloop.core.errors import InvalidLoopError
from chunkloop.execution.workers.inline import InlineWorker
from chunkloop.execution.workers.pool import ProcessPoolWorker
from chunkloop.execution.workers.process import SubprocessWorker
from chunkloop.execution.workers.protocol import Worker


def make_worker(kind: str, *, timeout: float | None = None, max_workers: int | None = None) -> Worker:
    """Build a worker by kind name (``subprocess``, ``pool``, ``inline``)."""
    if kind == "subprocess":
        return SubprocessWorker(timeout=timeout)
    if kind == "pool":
        # One chunk per child: no module state survives into the next chunk.
        return ProcessPoolWorker(max_workers=max_workers, max_tasks_per_child=1, timeout=timeout)
    if kind == "inline":
        return InlineWorker()
    raise InvalidLoopError(f"unknown worker kind: {kind!r}", field="worker")


__all__ = [
    "Worker",
    "InlineWorker",
    "ProcessPoolWorker",
    "SubprocessWorker",
    "make_worker",
]
