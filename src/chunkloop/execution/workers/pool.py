"""Process Pool Worker — chunks run in ``ProcessPoolExecutor`` children.

Cheaper than a fresh interpreter per chunk: children are started once and
reused.  ``max_tasks_per_child=1`` gives every chunk its own process again
while keeping the pool's bookkeeping.

Only ``execute_payload`` (a top-level, picklable function) and the opaque
payload bytes cross the process boundary.
"""

from __future__ import annotations

import threading
from concurrent.futures import Future, ProcessPoolExecutor
from concurrent.futures.process import BrokenProcessPool
from typing import Any

from chunkloop.core.errors import WorkerCrashError, WorkerTimeoutError
from chunkloop.core.logging import get_logger
from chunkloop.execution.outcome import execute_payload

logger = get_logger(__name__)


class ProcessPoolWorker:
    """``ProcessPoolExecutor``-based worker.

    Parameters
    ----------
    max_workers : int | None
        Pool size (defaults to the executor's own default).
    max_tasks_per_child : int | None
        Recycle a child after this many chunks.
    timeout : float | None
        Seconds to wait for one chunk.
    mp_context : Any
        ``multiprocessing`` context for the pool.
    """

    name = "pool"

    def __init__(
        self,
        max_workers: int | None = None,
        *,
        max_tasks_per_child: int | None = None,
        timeout: float | None = None,
        mp_context: Any = None,
    ) -> None:
        self.max_workers = max_workers
        self.max_tasks_per_child = max_tasks_per_child
        self.timeout = timeout
        self.mp_context = mp_context
        self._pool: ProcessPoolExecutor | None = None
        self._futures: set[Future] = set()
        self._lock = threading.Lock()

    def _get_pool(self) -> ProcessPoolExecutor:
        with self._lock:
            if self._pool is None:
                self._pool = ProcessPoolExecutor(
                    max_workers=self.max_workers,
                    mp_context=self.mp_context,
                    max_tasks_per_child=self.max_tasks_per_child,
                )
                logger.debug("pool_worker.started", max_workers=self.max_workers)
            return self._pool

    def _discard_pool(self) -> None:
        with self._lock:
            pool, self._pool = self._pool, None
        if pool is not None:
            pool.shutdown(wait=False, cancel_futures=True)

    def invoke(self, payload: bytes) -> bytes:
        future = self._get_pool().submit(execute_payload, payload)
        with self._lock:
            self._futures.add(future)
        try:
            return future.result(timeout=self.timeout)
        except TimeoutError:
            future.cancel()
            raise WorkerTimeoutError(self.timeout).with_context(worker=self.name) from None
        except BrokenProcessPool as exc:
            # A dead child poisons the whole pool; start a new one on retry.
            self._discard_pool()
            raise WorkerCrashError(f"worker pool broke: {exc}", cause=exc).with_context(worker=self.name) from exc
        finally:
            with self._lock:
                self._futures.discard(future)

    def cancel(self) -> None:
        """Cancel chunks that have not started yet."""
        with self._lock:
            pending = list(self._futures)
        for future in pending:
            future.cancel()

    def close(self) -> None:
        with self._lock:
            pool, self._pool = self._pool, None
        if pool is not None:
            pool.shutdown(wait=True, cancel_futures=True)
            logger.debug("pool_worker.shutdown")
