"""Re-submission policies for chunks whose worker crashed.

A crashed chunk (a transient ``WorkerCrashError``, timeouts included) is
re-submitted with the same payload bytes.  Nothing else is retried: a work
expression that raised will raise again.

Example:
    >>> policy = ExponentialBackoff(max_retries=2, base_delay=0.5)
    >>> RetryContext(policy).run(worker.invoke, payload)
"""

import random
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, TypeVar

from chunkloop.core.errors import is_retryable

T = TypeVar("T")


class RetryStrategy(ABC):
    """How often a crashed chunk is re-submitted, and how long to wait first."""

    max_retries: int = 0

    @abstractmethod
    def next_delay(self, attempt: int) -> float:
        """Seconds to wait before re-submission number ``attempt`` (zero-based)."""

    def should_retry(self, attempt: int, error: Exception | None = None) -> bool:
        """True while fewer than ``max_retries`` re-submissions were made."""
        return attempt < self.max_retries


@dataclass
class ExponentialBackoff(RetryStrategy):
    """``base_delay * multiplier ** attempt``, capped at ``max_delay``.

    With ``jitter`` the delay is spread by ``jitter_range`` either way so
    chunks that crashed together are not re-submitted together.
    """

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    multiplier: float = 2.0
    jitter: bool = True
    jitter_range: float = 0.25

    def next_delay(self, attempt: int) -> float:
        delay = min(self.base_delay * self.multiplier**attempt, self.max_delay)
        if not self.jitter:
            return delay
        spread = delay * self.jitter_range
        return max(0.0, delay + random.uniform(-spread, spread))


@dataclass
class ConstantBackoff(RetryStrategy):
    """Same wait before every re-submission."""

    max_retries: int = 3
    delay: float = 1.0

    def next_delay(self, attempt: int) -> float:
        return self.delay


@dataclass
class NoRetry(RetryStrategy):
    """Fail the run on the first crash."""

    max_retries: int = 0

    def next_delay(self, attempt: int) -> float:
        return 0.0


@dataclass
class RetryContext:
    """Calls one chunk invocation until it succeeds or the policy gives up.

    ``retry_on`` filters which errors may be re-submitted (retryable ones by
    default); ``on_retry(attempt, error, delay)`` is told about each one.
    """

    strategy: RetryStrategy
    on_retry: Callable[[int, Exception, float], None] | None = None
    retry_on: Callable[[Exception], bool] = is_retryable
    sleep: Callable[[float], None] = time.sleep
    attempts: int = field(default=0, init=False)
    errors: list[Exception] = field(default_factory=list, init=False)

    @property
    def last_error(self) -> Exception | None:
        return self.errors[-1] if self.errors else None

    def run(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Return ``func(*args, **kwargs)``, re-raising the final failure."""
        while True:
            self.attempts += 1
            try:
                return func(*args, **kwargs)
            except Exception as exc:
                self.errors.append(exc)
                resubmissions = self.attempts - 1
                if not (self.retry_on(exc) and self.strategy.should_retry(resubmissions, exc)):
                    raise
                delay = self.strategy.next_delay(resubmissions)
                if self.on_retry is not None:
                    self.on_retry(self.attempts, exc, delay)
                self.sleep(delay)


__all__ = [
    "RetryStrategy",
    "ExponentialBackoff",
    "ConstantBackoff",
    "NoRetry",
    "RetryContext",
]
