"""Worker outcome envelope - what a worker hands back for one chunk.

Exceptions raised inside a worker do not cross the process boundary as
objects.  ``execute_payload`` runs a serialized task and always answers
with a serialized ``WorkerOutcome``: either the per-iteration results, or a
plain-data description of the failure that ``raise_for_error`` turns back
into the matching ``LoopError`` on the dispatcher side.
"""

from __future__ import annotations

import os
import traceback
from dataclasses import dataclass, field
from typing import Any, Literal

from chunkloop.core.errors import (
    LoopError,
    PackageLoadError,
    PayloadError,
    TaskEvaluationError,
    WorkerError,
)
from chunkloop.core.logging import get_logger
from chunkloop.core.serialization import dumps, loads

logger = get_logger(__name__)

ErrorKind = Literal["evaluation", "package", "payload", "internal"]


@dataclass
class WorkerOutcome:
    """Result envelope for one chunk."""

    ok: bool
    results: list[bytes] = field(default_factory=list)
    error_kind: ErrorKind | None = None
    error_type: str | None = None
    message: str | None = None
    remote_traceback: str | None = None
    context: dict[str, Any] = field(default_factory=dict)
    package: str | None = None
    pid: int = field(default_factory=os.getpid)

    @classmethod
    def from_error(cls, error: Exception) -> WorkerOutcome:
        """Describe ``error`` as plain data."""
        outcome = cls(
            ok=False,
            error_type=type(error).__name__,
            message=str(error),
            remote_traceback=traceback.format_exc(),
        )
        if isinstance(error, LoopError):
            outcome.context = error.context.to_dict()
        if isinstance(error, TaskEvaluationError):
            outcome.error_kind = "evaluation"
            outcome.error_type = error.error_type
            outcome.remote_traceback = error.remote_traceback
        elif isinstance(error, PackageLoadError):
            outcome.error_kind = "package"
            outcome.package = error.package
        elif isinstance(error, PayloadError):
            outcome.error_kind = "payload"
        else:
            outcome.error_kind = "internal"
        return outcome

    def raise_for_error(self) -> None:
        """Re-raise the failure this outcome describes, if any."""
        if self.ok:
            return
        context = {k: v for k, v in self.context.items() if k in ("chunk_index", "iteration")}
        if self.error_kind == "evaluation":
            raise TaskEvaluationError(
                self.message or "task failed",
                error_type=self.error_type,
                remote_traceback=self.remote_traceback,
            ).with_context(**context)
        if self.error_kind == "package":
            raise PackageLoadError(self.package or "?", self.message).with_context(**context)
        if self.error_kind == "payload":
            raise PayloadError(f"worker could not read task: {self.message}")
        raise WorkerError(
            f"worker failed - {self.error_type}: {self.message}"
        ).with_context(remote_traceback=self.remote_traceback)


def execute_payload(payload: bytes) -> bytes:
    """Deserialize a task, call it, and serialize the outcome.

    This is the whole worker-side protocol; every worker kind runs it.
    """
    try:
        task = loads(payload)
        results = task()
        outcome = WorkerOutcome(ok=True, results=list(results))
    except Exception as exc:
        logger.warning("worker.task_failed", error_type=type(exc).__name__, error=str(exc))
        outcome = WorkerOutcome.from_error(exc)
    return dumps(outcome)


def read_outcome(raw: bytes) -> WorkerOutcome:
    """Deserialize a worker's answer, rejecting anything that is not an outcome."""
    outcome = loads(raw)
    if not isinstance(outcome, WorkerOutcome):
        raise PayloadError(f"worker returned {type(outcome).__name__}, expected WorkerOutcome")
    return outcome


__all__ = ["WorkerOutcome", "execute_payload", "read_outcome"]
