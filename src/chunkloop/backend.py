"""Backend registration and the loop entry point.

Manifesto:
    A loop host calls one function with a loop specification and gets the
    reduced value back.  Everything in between (scope capture, chunk
    planning, task building, dispatch, reduction) is this backend's job.
    ``register_backend`` fixes the dispatch options once; ``run_loop``
    executes loops with them until the backend is re-registered.

ARCHITECTURE
────────────
::

    register_backend(chunk_size=1, worker=..., max_workers=..., retry=...)
      └── Backend  (module-level, replaced on re-registration)

    run_loop(loop, scope=None)
      │
      ├── 1. validate LoopSpec                       → InvalidLoopError
      ├── 2. enumerate bindings (N)
      ├── 3. Accumulator.from_loop(loop, N)
      ├── 4. capture_scope(expr, caller scope)       → UnresolvedExportError
      ├── 5. plan_chunks(bindings, chunk_size)       (lazy)
      ├── 6. build_task per chunk                    (lazy)
      ├── 7. ChunkDispatcher.dispatch(tasks, acc)
      └── 8. acc.result()

    Steps 1-4 finish before any worker is invoked.

Related modules:
    loop/         — spec, scope capture, chunking, tasks, accumulator
    execution/    — workers, dispatcher, retry
    core/settings — defaults for every option not passed explicitly

Tags:
    chunkloop, backend, registration, entry-point

Doc-Types:
    api-reference
"""

from __future__ import annotations

import inspect
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from chunkloop.core.errors import InvalidLoopError
from chunkloop.core.logging import LogContext, get_logger
from chunkloop.core.settings import get_settings
from chunkloop.execution.dispatcher import ChunkDispatcher
from chunkloop.execution.retry import ExponentialBackoff, NoRetry, RetryStrategy
from chunkloop.execution.workers import Worker, make_worker
from chunkloop.loop.accumulator import Accumulator
from chunkloop.loop.analysis import expression_source
from chunkloop.loop.bindings import enumerate_bindings
from chunkloop.loop.capture import capture_scope
from chunkloop.loop.chunks import count_chunks, plan_chunks, validate_chunk_size
from chunkloop.loop.scope import Scope
from chunkloop.loop.spec import LoopSpec
from chunkloop.loop.task import build_task

logger = get_logger(__name__)


@dataclass
class Backend:
    """Registered dispatch configuration.

    Attributes:
        chunk_size: Upper bound on iterations per task
        worker: Isolated worker every chunk is handed to
        max_workers: Chunks in flight at once
        retry: Re-submission policy for crashed chunks
    """

    chunk_size: int = 1
    worker: Worker = field(default_factory=lambda: make_worker("subprocess"))
    max_workers: int = 1
    retry: RetryStrategy = field(default_factory=NoRetry)

    def __post_init__(self) -> None:
        validate_chunk_size(self.chunk_size)
        if not isinstance(self.worker, Worker):
            raise InvalidLoopError(
                f"worker must implement invoke/cancel/close, got {type(self.worker).__name__}",
                field="worker",
            )

    def run(self, loop: LoopSpec, scope: Scope | Mapping[str, Any]) -> Any:
        """Execute ``loop`` against the caller's ``scope`` and return the reduced value."""
        if not isinstance(loop, LoopSpec):
            raise InvalidLoopError(f"expected a LoopSpec, got {type(loop).__name__}", field="loop")
        if not isinstance(scope, Scope):
            scope = Scope(scope, kind="global")

        run_id = uuid.uuid4().hex[:12]
        with LogContext(run_id=run_id):
            bindings = enumerate_bindings(loop.iterables)
            accumulator = Accumulator.from_loop(loop, len(bindings))
            captured = capture_scope(
                loop.expr,
                scope,
                loop_names=loop.argnames,
                export=loop.export,
                noexport=loop.noexport,
                packages=loop.packages,
                parent_namespace=loop.parent_namespace,
            )
            source = expression_source(loop.expr)

            logger.info(
                "backend.run_started",
                iterations=len(bindings),
                chunk_size=self.chunk_size,
                chunks=count_chunks(len(bindings), self.chunk_size),
                worker=self.worker.name,
                captured=list(captured.names),
                packages=list(captured.packages),
                labels=loop.metadata or None,
            )

            tasks = (build_task(captured, source, chunk) for chunk in plan_chunks(bindings, self.chunk_size))
            dispatcher = ChunkDispatcher(self.worker, max_workers=self.max_workers, retry=self.retry)
            try:
                dispatcher.dispatch(tasks, accumulator)
            except Exception as exc:
                logger.error("backend.run_failed", error_type=type(exc).__name__, error=str(exc))
                raise
            result = accumulator.result()
            logger.info(
                "backend.run_completed",
                chunks=dispatcher.chunks_dispatched,
                retries=dispatcher.retries,
            )
            return result

    def close(self) -> None:
        self.worker.close()


_backend: Backend | None = None


def register_backend(
    chunk_size: int | None = None,
    *,
    worker: Worker | str | None = None,
    max_workers: int | None = None,
    retry: RetryStrategy | None = None,
) -> Backend:
    """Register the chunked backend used by :func:`run_loop`.

    Options left as ``None`` come from :class:`~chunkloop.core.settings.LoopSettings`.
    ``chunk_size`` stays fixed until the backend is registered again.

    Args:
        chunk_size: Iterations per task (positive integer, default 1).
        worker: A ``Worker`` instance or a worker kind name.
        max_workers: Chunks in flight at once.
        retry: Retry strategy for crashed chunks.

    Raises:
        InvalidLoopError: ``chunk_size`` is not a positive integer.

    Example:
        >>> backend = register_backend(chunk_size=3, worker="inline")
        >>> run_loop(LoopSpec(iterables={"x": range(6)}, expr="x * x"))
        [0, 1, 4, 9, 16, 25]
    """
    global _backend
    settings = get_settings()

    chunk_size = validate_chunk_size(settings.chunk_size if chunk_size is None else chunk_size)
    max_workers = settings.max_workers if max_workers is None else max_workers
    if retry is None:
        retry = ExponentialBackoff(max_retries=settings.max_retries) if settings.max_retries else NoRetry()
    if worker is None or isinstance(worker, str):
        worker = make_worker(worker or settings.worker, timeout=settings.worker_timeout, max_workers=max_workers)

    backend = Backend(chunk_size=chunk_size, worker=worker, max_workers=max_workers, retry=retry)
    if _backend is not None and _backend.worker is not backend.worker:
        _backend.close()
    _backend = backend
    logger.debug(
        "backend.registered",
        chunk_size=chunk_size,
        worker=worker.name,
        max_workers=max_workers,
        retry=type(retry).__name__,
    )
    return backend


def get_backend() -> Backend:
    """The registered backend, registering defaults on first use."""
    if _backend is None:
        return register_backend()
    return _backend


def clear_backend() -> None:
    """Forget the registered backend and release its worker."""
    global _backend
    if _backend is not None:
        _backend.close()
    _backend = None


def run_loop(loop: LoopSpec, scope: Scope | Mapping[str, Any] | None = None, *, backend: Backend | None = None) -> Any:
    """Run ``loop`` on the registered backend.

    When ``scope`` is omitted the calling frame's locals and globals are
    used as the capture scope.
    """
    if scope is None:
        frame = inspect.currentframe().f_back
        try:
            scope = Scope.from_frame(frame)
        finally:
            del frame
    return (backend or get_backend()).run(loop, scope)


__all__ = ["Backend", "register_backend", "get_backend", "clear_backend", "run_loop"]
