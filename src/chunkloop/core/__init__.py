"""Core primitives shared by every chunkloop module: errors, logging, settings."""

from chunkloop.core.errors import (
    AccumulatorError,
    ErrorCategory,
    ErrorContext,
    InvalidLoopError,
    LoopError,
    PackageLoadError,
    PayloadError,
    ScopeError,
    TaskEvaluationError,
    UnresolvedExportError,
    UnresolvedNameError,
    WorkerCrashError,
    WorkerError,
    WorkerTimeoutError,
    is_retryable,
)
from chunkloop.core.logging import LogContext, configure_logging, get_logger
from chunkloop.core.settings import LoopSettings, get_settings

__all__ = [
    "AccumulatorError",
    "ErrorCategory",
    "ErrorContext",
    "InvalidLoopError",
    "LoopError",
    "PackageLoadError",
    "PayloadError",
    "ScopeError",
    "TaskEvaluationError",
    "UnresolvedExportError",
    "UnresolvedNameError",
    "WorkerCrashError",
    "WorkerError",
    "WorkerTimeoutError",
    "is_retryable",
    "LogContext",
    "configure_logging",
    "get_logger",
    "LoopSettings",
    "get_settings",
]
