"""Worker Protocol — the isolated-worker boundary.

Manifesto:
The dispatcher does not care how a chunk is isolated (a fresh
interpreter, a pool child, or nothing at all in tests).  ``Worker`` is a
``typing.Protocol``: any object that turns one opaque payload into another
satisfies it, no base class required.

ARCHITECTURE
────────────
::

    Worker (Protocol)
      ├── .invoke(payload) ─ run one serialized task, return serialized outcome
      ├── .cancel()        ─ best-effort stop of in-flight invocations
      └── .close()         ─ release processes / pools

    Implementations:
      SubprocessWorker   ─ fresh interpreter per chunk   (default)
      ProcessPoolWorker  ─ ProcessPoolExecutor           (reused children)
      InlineWorker       ─ in-process, same payloads     (testing)

Tags:
    chunkloop, execution, worker, protocol, interface

Doc-Types:
    api-reference
"""

from typing import Protocol, runtime_checkable


@runtime_checkable
class Worker(Protocol):
    """Isolated worker adapter - how one chunk gets executed.

    Example implementation:
        >>> class EchoWorker:
        ...     name = "echo"
        ...     def invoke(self, payload: bytes) -> bytes:
        ...         return execute_payload(payload)
        ...     def cancel(self) -> None: ...
        ...     def close(self) -> None: ...
    """

    name: str

    def invoke(self, payload: bytes) -> bytes:
        """Run one serialized task to completion.

        Args:
            payload: Serialized ``ChunkTask``

        Returns:
            Serialized ``WorkerOutcome``

        Raises:
            WorkerCrashError: The worker died or exited abnormally
            WorkerTimeoutError: The worker exceeded its time budget
        """
        ...

    def cancel(self) -> None:
        """Stop in-flight invocations (best-effort)."""
        ...

    def close(self) -> None:
        """Release any processes or pools held by the worker."""
        ...
