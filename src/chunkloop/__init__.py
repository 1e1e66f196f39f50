"""
chunkloop — chunked map/reduce over isolated worker processes.

A loop specification names iteration variables, a work expression and a
reduction policy.  The backend captures the minimal scope the expression
needs, splits the iterations into contiguous chunks, evaluates each chunk
in an isolated worker process and folds the results back in iteration
order.

Example:
    >>> from chunkloop import LoopSpec, register_backend, run_loop
    >>> backend = register_backend(chunk_size=2)
    >>> k = 10
    >>> run_loop(LoopSpec(iterables={"x": [1, 2, 3]}, expr="x * k"))
    [10, 20, 30]
"""

from chunkloop.backend import Backend, clear_backend, get_backend, register_backend, run_loop
from chunkloop.core.errors import (
    InvalidLoopError,
    LoopError,
    PackageLoadError,
    TaskEvaluationError,
    UnresolvedExportError,
    UnresolvedNameError,
    WorkerCrashError,
)
from chunkloop.loop.scope import Closure, Scope
from chunkloop.loop.spec import LoopSpec

__version__ = "0.1.0"

__all__ = [
    "Backend",
    "clear_backend",
    "get_backend",
    "register_backend",
    "run_loop",
    "InvalidLoopError",
    "LoopError",
    "PackageLoadError",
    "TaskEvaluationError",
    "UnresolvedExportError",
    "UnresolvedNameError",
    "WorkerCrashError",
    "Closure",
    "Scope",
    "LoopSpec",
    "__version__",
]
