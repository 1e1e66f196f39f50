"""Chunk dispatcher — serialize, hand to a worker, deserialize, fold.

Manifesto:
    One chunk is one unit of isolated work.  The dispatcher owns the loop
    over chunks: it turns each ``ChunkTask`` into an opaque payload, gives
    it to a ``Worker``, turns the answer back into values and folds them
    into the accumulator.  It is the only code that touches the
    accumulator, and the natural place to retry a crashed chunk.

ARCHITECTURE
────────────
::

    ChunkDispatcher(worker, max_workers=1, retry=NoRetry())
      └── .dispatch(tasks, accumulator)

    max_workers == 1  (serial)
      for task: dumps → worker.invoke → loads → accumulator.fold
      chunk i+1 is not submitted before chunk i is folded

    max_workers > 1  (bounded pool)
      ThreadPoolExecutor, at most max_workers chunks in flight
      fold on the dispatch thread as chunks complete
      accumulator's reorder buffer restores iteration order
      first failure → cancel outstanding chunks, re-raise

    per chunk:  RetryContext(retry).run(invoke)   — transient errors only

Related modules:
    workers/        — Worker protocol and implementations
    outcome.py      — worker-side envelope
    retry.py        — retry strategies
    loop/accumulator.py

Tags:
    chunkloop, execution, dispatcher, map-reduce, retry

Doc-Types:
    api-reference
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Any

from chunkloop.core.errors import InvalidLoopError, LoopError, PayloadError, is_retryable
from chunkloop.core.logging import get_logger
from chunkloop.core.serialization import dumps, loads
from chunkloop.execution.outcome import read_outcome
from chunkloop.execution.retry import NoRetry, RetryContext, RetryStrategy
from chunkloop.execution.workers.protocol import Worker
from chunkloop.loop.accumulator import Accumulator
from chunkloop.loop.task import ChunkTask

logger = get_logger(__name__)


class ChunkDispatcher:
    """Runs chunk tasks on isolated workers and folds their results.

    Parameters
    ----------
    worker : Worker
        Isolated worker every chunk is handed to.
    max_workers : int
        Chunks in flight at once; 1 is fully serial.
    retry : RetryStrategy | None
        Re-submission policy for transient worker failures.

    Example:
        >>> dispatcher = ChunkDispatcher(SubprocessWorker(), max_workers=4)
        >>> dispatcher.dispatch(tasks, accumulator)
        >>> accumulator.result()
    """

    def __init__(
        self,
        worker: Worker,
        *,
        max_workers: int = 1,
        retry: RetryStrategy | None = None,
    ) -> None:
        if isinstance(max_workers, bool) or not isinstance(max_workers, int) or max_workers < 1:
            raise InvalidLoopError(f"max_workers must be a positive integer, got {max_workers!r}", field="max_workers")
        self.worker = worker
        self.max_workers = max_workers
        self.retry = retry or NoRetry()
        self._aborted = threading.Event()
        self.chunks_dispatched = 0
        self.retries = 0

    # ── Single chunk ─────────────────────────────────────────────────

    def _invoke(self, task: ChunkTask, payload: bytes) -> list[Any]:
        raw = self.worker.invoke(payload)
        outcome = read_outcome(raw)
        outcome.raise_for_error()
        if len(outcome.results) != len(task.bindings):
            raise PayloadError(
                f"worker returned {len(outcome.results)} results for {len(task.bindings)} iterations"
            )
        logger.debug("dispatcher.chunk_returned", chunk=task.chunk_index, worker_pid=outcome.pid)
        return [loads(item) for item in outcome.results]

    def _on_retry(self, task: ChunkTask) -> Any:
        def log_retry(attempt: int, error: Exception, delay: float) -> None:
            self.retries += 1
            logger.warning(
                "dispatcher.chunk_retry",
                chunk=task.chunk_index,
                attempt=attempt,
                delay=round(delay, 3),
                error=str(error),
            )
        return log_retry

    def run_chunk(self, task: ChunkTask) -> list[Any]:
        """Serialize ``task``, run it on the worker, return its values in order.

        The payload is built once; retries re-submit the same bytes.
        """
        payload = dumps(task)
        context = RetryContext(
            self.retry,
            on_retry=self._on_retry(task),
            retry_on=lambda e: is_retryable(e) and not self._aborted.is_set(),
        )
        try:
            return context.run(self._invoke, task, payload)
        except LoopError as exc:
            exc.with_context(
                chunk_index=task.chunk_index,
                start=task.indices.start,
                stop=task.indices.stop,
                worker=getattr(self.worker, "name", None),
            )
            raise

    # ── Whole loop ───────────────────────────────────────────────────

    def dispatch(self, tasks: Iterable[ChunkTask], accumulator: Accumulator) -> None:
        """Run every task and fold each result into ``accumulator``.

        Raises the first failure; nothing is folded after it.
        """
        self._aborted.clear()
        if self.max_workers == 1:
            self._dispatch_serial(iter(tasks), accumulator)
        else:
            self._dispatch_concurrent(iter(tasks), accumulator)

    def _fold(self, task: ChunkTask, values: list[Any], accumulator: Accumulator) -> None:
        accumulator.fold(values, task.indices)
        self.chunks_dispatched += 1
        logger.info(
            "dispatcher.chunk_folded",
            chunk=task.chunk_index,
            start=task.indices.start,
            stop=task.indices.stop,
            folded=accumulator.folded,
            total=accumulator.total,
        )

    def _dispatch_serial(self, tasks: Iterator[ChunkTask], accumulator: Accumulator) -> None:
        for task in tasks:
            self._fold(task, self.run_chunk(task), accumulator)

    def _dispatch_concurrent(self, tasks: Iterator[ChunkTask], accumulator: Accumulator) -> None:
        pending: dict[Future, ChunkTask] = {}
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="chunkloop") as pool:

            def submit_next() -> None:
                task = next(tasks, None)
                if task is not None:
                    pending[pool.submit(self.run_chunk, task)] = task

            for _ in range(self.max_workers):
                submit_next()
            try:
                while pending:
                    done, _ = wait(pending, return_when=FIRST_COMPLETED)
                    for future in done:
                        task = pending.pop(future)
                        self._fold(task, future.result(), accumulator)
                        submit_next()
            except BaseException:
                self._abort(pending)
                raise

    def _abort(self, pending: dict[Future, ChunkTask]) -> None:
        self._aborted.set()
        for future in pending:
            future.cancel()
        self.worker.cancel()
        logger.warning("dispatcher.aborted", outstanding=len(pending))


__all__ = ["ChunkDispatcher"]
