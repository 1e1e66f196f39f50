"""Tests for retry strategies."""

import pytest
from unittest.mock import MagicMock

from chunkloop.core.errors import TaskEvaluationError, WorkerCrashError
from chunkloop.execution.retry import (
    ConstantBackoff,
    ExponentialBackoff,
    NoRetry,
    RetryContext,
)


class TestExponentialBackoff:
    """Tests for ExponentialBackoff strategy."""

    def test_default_configuration(self):
        """Test default configuration values."""
        strategy = ExponentialBackoff()
        assert strategy.max_retries == 3
        assert strategy.base_delay == 1.0
        assert strategy.max_delay == 60.0
        assert strategy.multiplier == 2.0
        assert strategy.jitter is True

    def test_should_retry_within_limit(self):
        """Test retry allowed within max_retries."""
        strategy = ExponentialBackoff(max_retries=3)
        assert strategy.should_retry(0) is True
        assert strategy.should_retry(2) is True
        assert strategy.should_retry(3) is False

    def test_delay_calculation_no_jitter(self):
        """Test delay calculation without jitter."""
        strategy = ExponentialBackoff(base_delay=1.0, multiplier=2.0, jitter=False)
        assert [strategy.next_delay(i) for i in range(5)] == [1.0, 2.0, 4.0, 8.0, 16.0]

    def test_delay_capped_at_max(self):
        """Test delay capped at max_delay."""
        strategy = ExponentialBackoff(base_delay=10.0, max_delay=30.0, jitter=False)
        assert strategy.next_delay(5) == 30.0

    def test_jitter_stays_in_range(self):
        """Test jittered delay stays within jitter_range of the base delay."""
        strategy = ExponentialBackoff(base_delay=4.0, jitter=True, jitter_range=0.25)
        for _ in range(50):
            assert 3.0 <= strategy.next_delay(0) <= 5.0


class TestOtherStrategies:
    """Tests for ConstantBackoff and NoRetry."""

    def test_constant(self):
        strategy = ConstantBackoff(max_retries=2, delay=0.5)
        assert strategy.next_delay(7) == 0.5
        assert strategy.should_retry(1) is True
        assert strategy.should_retry(2) is False

    def test_no_retry(self):
        strategy = NoRetry()
        assert strategy.should_retry(0) is False
        assert strategy.next_delay(0) == 0.0


class TestRetryContext:
    """Tests for RetryContext.run."""

    def test_success_first_try(self):
        ctx = RetryContext(ConstantBackoff(delay=0))
        assert ctx.run(lambda: "ok") == "ok"
        assert ctx.attempts == 1

    def test_retries_transient_errors(self):
        func = MagicMock(side_effect=[WorkerCrashError("exit -9"), WorkerCrashError("exit -9"), "ok"])
        sleeps = []
        on_retry = MagicMock()
        ctx = RetryContext(ConstantBackoff(max_retries=3, delay=0.25), on_retry=on_retry, sleep=sleeps.append)

        assert ctx.run(func, b"payload") == "ok"
        assert ctx.attempts == 3
        assert sleeps == [0.25, 0.25]
        assert on_retry.call_count == 2
        func.assert_called_with(b"payload")

    def test_gives_up_after_max_retries(self):
        func = MagicMock(side_effect=WorkerCrashError("exit -9"))
        ctx = RetryContext(ConstantBackoff(max_retries=2, delay=0), sleep=lambda _: None)
        with pytest.raises(WorkerCrashError):
            ctx.run(func)
        assert func.call_count == 3
        assert len(ctx.errors) == 3

    def test_non_retryable_error_propagates_immediately(self):
        func = MagicMock(side_effect=TaskEvaluationError("division by zero"))
        ctx = RetryContext(ConstantBackoff(max_retries=5, delay=0), sleep=lambda _: None)
        with pytest.raises(TaskEvaluationError):
            ctx.run(func)
        assert func.call_count == 1

    def test_custom_retry_predicate(self):
        func = MagicMock(side_effect=[ValueError("flaky"), "ok"])
        ctx = RetryContext(
            ConstantBackoff(delay=0),
            retry_on=lambda e: isinstance(e, ValueError),
            sleep=lambda _: None,
        )
        assert ctx.run(func) == "ok"
        assert isinstance(ctx.last_error, ValueError)
