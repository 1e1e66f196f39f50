"""
Shared pytest fixtures and configuration for chunkloop tests.

This module provides:
- Backend / settings / logging reset fixtures for test isolation
- Scripted fake workers for dispatcher tests
- A caller scope holding sibling closures

Workers run tasks from serialized payloads, so tests ship work as
expression source or ``Closure`` objects rather than functions defined in
test modules.
"""

import logging
import sys
import threading
import time
from pathlib import Path

import pytest
import structlog

# Ensure chunkloop package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from chunkloop.backend import clear_backend
from chunkloop.core.errors import WorkerCrashError
from chunkloop.core.serialization import loads
from chunkloop.core.settings import clear_settings_cache
from chunkloop.execution.outcome import execute_payload
from chunkloop.loop.scope import Closure, Scope


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark tests without explicit markers as unit tests."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "slow"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_chunkloop_state(monkeypatch):
    """Forget the registered backend, cached settings and logging config."""
    for key in ("CHUNKLOOP_CHUNK_SIZE", "CHUNKLOOP_MAX_WORKERS", "CHUNKLOOP_WORKER",
                "CHUNKLOOP_WORKER_TIMEOUT", "CHUNKLOOP_MAX_RETRIES"):
        monkeypatch.delenv(key, raising=False)
    clear_backend()
    clear_settings_cache()
    yield
    clear_backend()
    clear_settings_cache()
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()
    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)
    logging.getLogger("chunkloop").setLevel(logging.NOTSET)


# =============================================================================
# Fake Workers
# =============================================================================


class RecordingWorker:
    """In-process worker that records which chunks it ran, in call order."""

    name = "recording"

    def __init__(self, delays: dict[int, float] | None = None):
        self.delays = delays or {}
        self.calls: list[int] = []
        self.cancelled = False
        self.closed = False
        self._lock = threading.Lock()

    def invoke(self, payload: bytes) -> bytes:
        task = loads(payload)
        with self._lock:
            self.calls.append(task.chunk_index)
        delay = self.delays.get(task.chunk_index)
        if delay:
            time.sleep(delay)
        return execute_payload(payload)

    def cancel(self) -> None:
        self.cancelled = True

    def close(self) -> None:
        self.closed = True


class FlakyWorker(RecordingWorker):
    """Crashes the first ``failures`` invocations of each listed chunk."""

    name = "flaky"

    def __init__(self, failures: dict[int, int]):
        super().__init__()
        self.remaining = dict(failures)

    def invoke(self, payload: bytes) -> bytes:
        task = loads(payload)
        with self._lock:
            if self.remaining.get(task.chunk_index, 0) > 0:
                self.remaining[task.chunk_index] -= 1
                self.calls.append(task.chunk_index)
                raise WorkerCrashError("worker exited with status -9", exit_code=-9)
        return super().invoke(payload)


@pytest.fixture
def recording_worker():
    return RecordingWorker()


@pytest.fixture
def slow_worker():
    """Build a RecordingWorker that sleeps on the given chunk indices."""
    return lambda delays: RecordingWorker(delays)


@pytest.fixture
def flaky_worker():
    """Build a FlakyWorker from a chunk index -> crash count map."""
    return lambda failures: FlakyWorker(failures)


# =============================================================================
# Scopes
# =============================================================================


@pytest.fixture
def sibling_scope():
    """Caller scope where ``h`` calls ``g`` and both are closures over it."""
    caller = Scope({"secret": "not shipped", "offset": 1}, kind="global", name="caller")
    caller["g"] = Closure.from_lambda("lambda x: x + offset", caller, name="g")
    caller["h"] = Closure.from_lambda("lambda x: g(x) * 2", caller, name="h")
    return caller
