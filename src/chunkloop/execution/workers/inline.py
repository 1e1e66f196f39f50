"""Inline worker — the payload protocol without a process boundary.

Runs ``execute_payload`` in the calling process.  Every payload is still
serialized and deserialized, so a task sees its own copy of the captured
scope exactly as it would in a child process.  Used for tests and dry
runs; it isolates state, not crashes.
"""

from __future__ import annotations

import threading

from chunkloop.core.logging import get_logger
from chunkloop.execution.outcome import execute_payload

logger = get_logger(__name__)


class InlineWorker:
    """In-process worker.

    Example:
        >>> worker = InlineWorker()
        >>> raw = worker.invoke(dumps(task))
        >>> worker.invocations
        1
    """

    name = "inline"

    def __init__(self) -> None:
        self.invocations = 0
        self._lock = threading.Lock()

    def invoke(self, payload: bytes) -> bytes:
        with self._lock:
            self.invocations += 1
        logger.debug("inline_worker.invoke", size=len(payload))
        return execute_payload(payload)

    def cancel(self) -> None:
        """Not supported: an inline call cannot be interrupted."""

    def close(self) -> None:
        """Nothing to release."""
