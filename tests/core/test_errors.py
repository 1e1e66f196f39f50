"""Tests for chunkloop.core.errors — hierarchy, retry flags, context."""

import pytest

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
    categorize_error,
    is_retryable,
)


class TestErrorContext:
    """Tests for ErrorContext."""

    def test_to_dict_drops_unset_fields(self):
        ctx = ErrorContext(chunk_index=2, start=4, stop=6)
        assert ctx.to_dict() == {"chunk_index": 2, "start": 4, "stop": 6}

    def test_to_dict_merges_metadata(self):
        ctx = ErrorContext(symbol="helper", metadata={"pid": 123})
        assert ctx.to_dict() == {"symbol": "helper", "pid": 123}

    def test_empty_context(self):
        assert ErrorContext().to_dict() == {}


class TestLoopError:
    """Tests for the LoopError base class."""

    def test_defaults(self):
        error = LoopError("boom")
        assert error.message == "boom"
        assert error.category == ErrorCategory.INTERNAL
        assert error.retryable is False
        assert error.cause is None

    def test_cause_is_chained(self):
        cause = ValueError("inner")
        error = LoopError("outer", cause=cause)
        assert error.__cause__ is cause
        assert error.to_dict()["cause"] == "inner"

    def test_with_context_sets_known_fields_and_metadata(self):
        error = LoopError("boom").with_context(chunk_index=3, worker="inline", pid=42)
        assert error.context.chunk_index == 3
        assert error.context.worker == "inline"
        assert error.context.metadata == {"pid": 42}

    def test_with_context_is_fluent(self):
        error = WorkerCrashError("exit 1")
        assert error.with_context(start=0) is error

    def test_to_dict(self):
        error = InvalidLoopError("bad chunk size", field="chunk_size")
        data = error.to_dict()
        assert data["error_type"] == "InvalidLoopError"
        assert data["category"] == "VALIDATION"
        assert data["retryable"] is False
        assert data["field"] == "chunk_size"

    def test_retryable_override(self):
        assert LoopError("x", retryable=True).retryable is True
        assert WorkerCrashError("x", retryable=False).retryable is False

    def test_repr(self):
        assert repr(PayloadError("bad bytes")) == "PayloadError('bad bytes', category=WORKER)"


class TestScopeErrors:
    """Tests for the scope-capture errors."""

    def test_unresolved_export_names_symbol(self):
        error = UnresolvedExportError("helper")
        assert isinstance(error, ScopeError)
        assert error.symbol == "helper"
        assert error.context.symbol == "helper"
        assert str(error) == 'unable to find variable "helper"'
        assert error.category == ErrorCategory.SCOPE

    def test_unresolved_name_names_symbol(self):
        error = UnresolvedNameError("ghost")
        assert error.symbol == "ghost"
        assert "ghost" in str(error)

    def test_custom_message(self):
        assert str(UnresolvedExportError("x", "nope")) == "nope"


class TestWorkerErrors:
    """Tests for worker-side errors and their retry flags."""

    def test_crash_is_retryable(self):
        error = WorkerCrashError("exit -9", exit_code=-9, stderr="Killed")
        assert error.retryable is True
        assert error.exit_code == -9
        assert error.stderr == "Killed"
        assert isinstance(error, WorkerError)

    def test_timeout_is_a_retryable_crash(self):
        error = WorkerTimeoutError(2.5)
        assert isinstance(error, WorkerCrashError)
        assert error.retryable is True
        assert error.timeout == 2.5
        assert "2.5" in str(error)

    def test_payload_error_not_retryable(self):
        assert PayloadError("truncated").retryable is False

    def test_evaluation_error_keeps_remote_details(self):
        error = TaskEvaluationError("task 1 failed", error_type="ZeroDivisionError", remote_traceback="tb")
        assert error.category == ErrorCategory.EVALUATION
        assert error.to_dict()["remote_error_type"] == "ZeroDivisionError"
        assert error.remote_traceback == "tb"

    def test_package_error(self):
        error = PackageLoadError("numpy")
        assert error.package == "numpy"
        assert error.category == ErrorCategory.PACKAGE
        assert "numpy" in str(error)


class TestHelpers:
    """Tests for is_retryable / categorize_error."""

    @pytest.mark.parametrize(
        "error, expected",
        [
            (WorkerCrashError("x"), True),
            (WorkerTimeoutError(1.0), True),
            (TaskEvaluationError("x"), False),
            (AccumulatorError("x"), False),
            (BrokenPipeError(), True),
            (ValueError(), False),
        ],
    )
    def test_is_retryable(self, error, expected):
        assert is_retryable(error) is expected

    def test_categorize(self):
        assert categorize_error(UnresolvedExportError("x")) == ErrorCategory.SCOPE
        assert categorize_error(ModuleNotFoundError("x")) == ErrorCategory.PACKAGE
        assert categorize_error(KeyError("x")) == ErrorCategory.EVALUATION
