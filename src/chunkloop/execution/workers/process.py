"""Subprocess Worker — one fresh interpreter per chunk.

Manifesto:
The strongest isolation a chunk can get without leaving the machine is a
brand-new Python process: no inherited globals, no shared memory, and a
crash takes down only that chunk.  ``SubprocessWorker`` starts
``python -m chunkloop.execution.worker_main``, writes the payload to its
stdin and reads the outcome from its stdout.

ARCHITECTURE
────────────
::

    SubprocessWorker(timeout=30)
      ├── .invoke(payload)  ─ spawn, payload → stdin, stdout → outcome
      ├── .cancel()         ─ kill live children
      └── .close()          ─ same as cancel

    exit status != 0  → WorkerCrashError (retryable, stderr attached)
    timeout expired   → WorkerTimeoutError (child killed)

    The child inherits the parent's ``sys.path`` through ``PYTHONPATH``
    so functions shipped by reference import the same way they did here.

Related modules:
    worker_main.py — the child-side entry point
    pool.py        — ProcessPoolExecutor variant (children are reused)

Tags:
    chunkloop, execution, worker, subprocess, isolation

Doc-Types:
    api-reference
"""

from __future__ import annotations

import os
import subprocess
import sys
import threading
from collections.abc import Mapping

from chunkloop.core.errors import WorkerCrashError, WorkerTimeoutError
from chunkloop.core.logging import get_logger

logger = get_logger(__name__)

WORKER_MODULE = "chunkloop.execution.worker_main"

_STDERR_TAIL = 4000


class SubprocessWorker:
    """Runs each payload in a freshly started interpreter.

    Parameters
    ----------
    python : str | None
        Interpreter to start (defaults to ``sys.executable``).
    timeout : float | None
        Seconds one invocation may take; ``None`` waits forever.
    env : Mapping[str, str] | None
        Base environment for the child (defaults to ``os.environ``).
    """

    name = "subprocess"

    def __init__(
        self,
        *,
        python: str | None = None,
        timeout: float | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self.python = python or sys.executable
        self.timeout = timeout
        self._env = dict(env) if env is not None else None
        self._live: set[subprocess.Popen] = set()
        self._lock = threading.Lock()

    def command(self) -> list[str]:
        return [self.python, "-m", WORKER_MODULE]

    def environment(self) -> dict[str, str]:
        """Child environment with the parent's import path."""
        env = dict(os.environ if self._env is None else self._env)
        paths = [entry or os.getcwd() for entry in sys.path]
        if env.get("PYTHONPATH"):
            paths.append(env["PYTHONPATH"])
        env["PYTHONPATH"] = os.pathsep.join(dict.fromkeys(paths))
        return env

    def invoke(self, payload: bytes) -> bytes:
        proc = subprocess.Popen(
            self.command(),
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            env=self.environment(),
        )
        with self._lock:
            self._live.add(proc)
        logger.debug("subprocess_worker.started", pid=proc.pid, size=len(payload))
        try:
            try:
                stdout, stderr = proc.communicate(payload, timeout=self.timeout)
            except subprocess.TimeoutExpired:
                proc.kill()
                proc.communicate()
                raise WorkerTimeoutError(self.timeout).with_context(worker=self.name, pid=proc.pid)
        finally:
            with self._lock:
                self._live.discard(proc)

        tail = stderr.decode("utf-8", errors="replace")[-_STDERR_TAIL:]
        if proc.returncode != 0:
            raise WorkerCrashError(
                f"worker process {proc.pid} exited with status {proc.returncode}",
                exit_code=proc.returncode,
                stderr=tail,
            ).with_context(worker=self.name)
        if not stdout:
            raise WorkerCrashError(
                f"worker process {proc.pid} produced no payload",
                exit_code=proc.returncode,
                stderr=tail,
            ).with_context(worker=self.name)
        logger.debug("subprocess_worker.finished", pid=proc.pid, size=len(stdout))
        return stdout

    def cancel(self) -> None:
        """Kill every child that is still running."""
        with self._lock:
            live = list(self._live)
        for proc in live:
            if proc.poll() is None:
                proc.kill()
                logger.info("subprocess_worker.killed", pid=proc.pid)

    def close(self) -> None:
        self.cancel()
