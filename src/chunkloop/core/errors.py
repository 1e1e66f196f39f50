"""
Structured error types for chunkloop.

Every failure a loop run can surface is a ``LoopError`` subclass carrying a
category, an explicit retry flag, a structured context (chunk index, index
range, symbol, worker) and the chained cause.  The dispatcher relies on the
``retryable`` flag to decide whether a chunk may be re-submitted to a fresh
worker; everything else is fatal and aborts the run.

Manifesto:
    - **Typed hierarchy:** one error class per failure kind of a loop run
    - **Explicit retry semantics:** only worker crashes are transient
    - **Rich context:** errors say which chunk, which iteration, which name
    - **All-or-nothing:** no error carries a partial result

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────┐
        │                         LoopError                            │
        │     (category, retryable, context, cause)                    │
        ├─────────────────────────────────────────────────────────────┤
        │                                                              │
        │  InvalidLoopError      ScopeError          PackageLoadError  │
        │  (VALIDATION)          (SCOPE)             (PACKAGE)         │
        │                            │                                 │
        │                  UnresolvedExportError                       │
        │                  UnresolvedNameError                         │
        │                                                              │
        │  WorkerError           TaskEvaluationError AccumulatorError  │
        │  (WORKER)              (EVALUATION)        (INTERNAL)        │
        │      │                                                       │
        │  WorkerCrashError (retryable)                                │
        │  WorkerTimeoutError (retryable)                              │
        │  PayloadError                                                │
        └─────────────────────────────────────────────────────────────┘

Examples:
    >>> error = UnresolvedExportError("helper")
    >>> error.symbol
    'helper'
    >>> error.retryable
    False

    >>> crash = WorkerCrashError("worker exited with status -9")
    >>> crash.with_context(chunk_index=3).context.chunk_index
    3

Tags:
    error-handling, exception-hierarchy, retry-logic, chunkloop

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Error categories used for classification and log routing."""

    VALIDATION = "VALIDATION"      # Malformed loop specification
    SCOPE = "SCOPE"                # Names that cannot be captured
    PACKAGE = "PACKAGE"            # Module import failed on a worker
    WORKER = "WORKER"              # Crash, timeout, unreadable payload
    EVALUATION = "EVALUATION"      # The work expression raised
    INTERNAL = "INTERNAL"          # Bugs, unexpected state


@dataclass
class ErrorContext:
    """
    Structured metadata attached to a ``LoopError``.

    Only the fields relevant to a failure are set; ``to_dict()`` drops the
    rest so log lines stay short.

    Attributes:
        run_id: Identifier of the loop run
        chunk_index: Zero-based index of the chunk that failed
        start: First global iteration index of the chunk
        stop: One past the last global iteration index of the chunk
        iteration: Global index of the iteration that raised
        symbol: Name that failed to resolve
        worker: Worker kind that ran the chunk
        metadata: Additional key-value pairs
    """

    run_id: str | None = None
    chunk_index: int | None = None
    start: int | None = None
    stop: int | None = None
    iteration: int | None = None
    symbol: str | None = None
    worker: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["run_id", "chunk_index", "start", "stop", "iteration",
                    "symbol", "worker"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class LoopError(Exception):
    """
    Base exception for all chunkloop errors.

    Subclasses set ``default_category`` and ``default_retryable``; callers may
    override either per instance.  ``cause`` is chained onto ``__cause__`` so
    tracebacks keep the original failure.

    Examples:
        >>> error = LoopError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.to_dict()["retryable"]
        False
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> LoopError:
        """
        Add context to this error (fluent API).

        Usage:
            raise WorkerCrashError("exit 1").with_context(chunk_index=2, start=4, stop=6)
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# INPUT ERRORS (pre-dispatch)
# =============================================================================


class InvalidLoopError(LoopError):
    """
    The loop specification (or a dispatch option) is malformed.

    Never retryable - the caller must fix the input.
    """

    default_category = ErrorCategory.VALIDATION

    def __init__(self, message: str, *, field: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.field = field

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        return result


class ScopeError(LoopError):
    """A name required by the work expression cannot be captured."""

    default_category = ErrorCategory.SCOPE

    def __init__(self, symbol: str, message: str, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.symbol = symbol
        self.context.symbol = symbol


class UnresolvedExportError(ScopeError):
    """An explicitly exported name is not visible from the caller's scope."""

    def __init__(self, symbol: str, message: str | None = None, **kwargs: Any):
        super().__init__(symbol, message or f'unable to find variable "{symbol}"', **kwargs)


class UnresolvedNameError(ScopeError):
    """A free name of the expression is defined nowhere the worker could see it."""

    def __init__(self, symbol: str, message: str | None = None, **kwargs: Any):
        super().__init__(
            symbol,
            message or f'name "{symbol}" is free in the expression but not defined',
            **kwargs,
        )


# =============================================================================
# WORKER-SIDE ERRORS
# =============================================================================


class PackageLoadError(LoopError):
    """A required module could not be imported on the worker."""

    default_category = ErrorCategory.PACKAGE

    def __init__(self, package: str, message: str | None = None, **kwargs: Any):
        super().__init__(message or f"unable to load package {package!r}", **kwargs)
        self.package = package


class TaskEvaluationError(LoopError):
    """
    The work expression raised while a worker evaluated an iteration.

    The original exception does not cross the process boundary; its type
    name, message and formatted traceback do.
    """

    default_category = ErrorCategory.EVALUATION

    def __init__(
        self,
        message: str,
        *,
        error_type: str | None = None,
        remote_traceback: str | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.error_type = error_type
        self.remote_traceback = remote_traceback

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.error_type:
            result["remote_error_type"] = self.error_type
        return result


class WorkerError(LoopError):
    """The isolated worker did not hand back a usable payload."""

    default_category = ErrorCategory.WORKER


class WorkerCrashError(WorkerError):
    """
    The worker process died or exited non-zero without an error report.

    Retryable - the same payload may succeed on a fresh worker.
    """

    default_retryable = True

    def __init__(self, message: str, *, exit_code: int | None = None,
                 stderr: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.exit_code = exit_code
        self.stderr = stderr


class WorkerTimeoutError(WorkerCrashError):
    """The worker did not finish within the configured timeout."""

    def __init__(self, timeout: float, **kwargs: Any):
        super().__init__(f"worker did not finish within {timeout}s", **kwargs)
        self.timeout = timeout


class PayloadError(WorkerError):
    """A payload could not be serialized or deserialized."""


# =============================================================================
# DISPATCH-SIDE ERRORS
# =============================================================================


class AccumulatorError(LoopError):
    """The accumulator was folded or read inconsistently."""

    default_category = ErrorCategory.INTERNAL


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: Exception) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, LoopError):
        return error.retryable
    return isinstance(error, (BrokenPipeError, ConnectionError))


def categorize_error(error: Exception) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, LoopError):
        return error.category
    if isinstance(error, (ImportError, ModuleNotFoundError)):
        return ErrorCategory.PACKAGE
    return ErrorCategory.EVALUATION


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "LoopError",
    "InvalidLoopError",
    "ScopeError",
    "UnresolvedExportError",
    "UnresolvedNameError",
    "PackageLoadError",
    "TaskEvaluationError",
    "WorkerError",
    "WorkerCrashError",
    "WorkerTimeoutError",
    "PayloadError",
    "AccumulatorError",
    "is_retryable",
    "categorize_error",
]
