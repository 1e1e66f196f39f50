"""Child-side entry point for ``SubprocessWorker``.

Reads one payload from stdin, runs it, writes one outcome to stdout::

    python -m chunkloop.execution.worker_main < task.bin > outcome.bin

The original stdout descriptor is reserved for the outcome; anything the
work expression prints goes to stderr instead.
"""

from __future__ import annotations

import os
import sys

from chunkloop.core.logging import configure_logging
from chunkloop.core.settings import get_settings
from chunkloop.execution.outcome import execute_payload


def main() -> int:
    settings = get_settings()
    configure_logging(level=settings.log_level, json_format=True, service="chunkloop-worker", stream=sys.stderr)

    payload = sys.stdin.buffer.read()

    sys.stdout.flush()
    result_fd = os.dup(1)
    os.dup2(2, 1)
    sys.stdout = sys.stderr

    outcome = execute_payload(payload)

    with os.fdopen(result_fd, "wb") as out:
        out.write(outcome)
    return 0


if __name__ == "__main__":
    sys.exit(main())
