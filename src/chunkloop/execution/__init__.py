"""Execution layer: isolated workers, the chunk dispatcher, retry strategies.

Example:
    >>> from chunkloop.execution import ChunkDispatcher, SubprocessWorker
    >>> dispatcher = ChunkDispatcher(SubprocessWorker(timeout=60), max_workers=2)
"""

from chunkloop.execution.dispatcher import ChunkDispatcher
from chunkloop.execution.outcome import WorkerOutcome, execute_payload, read_outcome
from chunkloop.execution.retry import (
    ConstantBackoff,
    ExponentialBackoff,
    NoRetry,
    RetryContext,
    RetryStrategy,
)
from chunkloop.execution.workers import (
    InlineWorker,
    ProcessPoolWorker,
    SubprocessWorker,
    Worker,
    make_worker,
)

__all__ = [
    "ChunkDispatcher",
    "WorkerOutcome",
    "execute_payload",
    "read_outcome",
    "ConstantBackoff",
    "ExponentialBackoff",
    "NoRetry",
    "RetryContext",
    "RetryStrategy",
    "InlineWorker",
    "ProcessPoolWorker",
    "SubprocessWorker",
    "Worker",
    "make_worker",
]
