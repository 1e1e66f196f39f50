"""Serialization boundary between the dispatcher and its workers.

Everything that crosses a process boundary goes through ``dumps`` / ``loads``:
task closures on the way out, per-iteration results and worker outcomes on
the way back.  ``dill`` is used instead of ``pickle`` so closures, lambdas
and locally defined functions captured from the caller survive the trip.
"""

from __future__ import annotations

from typing import Any

import dill

from chunkloop.core.errors import PayloadError


def dumps(obj: Any) -> bytes:
    """Serialize ``obj`` to an opaque payload.

    Raises:
        PayloadError: ``obj`` (or something it references) cannot be serialized.
    """
    try:
        return dill.dumps(obj, protocol=dill.HIGHEST_PROTOCOL, recurse=True)
    except Exception as exc:
        raise PayloadError(f"cannot serialize {type(obj).__name__}: {exc}", cause=exc) from exc


def loads(payload: bytes) -> Any:
    """Deserialize a payload produced by :func:`dumps`.

    Raises:
        PayloadError: ``payload`` is empty, truncated or otherwise unreadable.
    """
    if not payload:
        raise PayloadError("empty payload")
    try:
        return dill.loads(payload)
    except Exception as exc:
        raise PayloadError(f"cannot deserialize payload: {exc}", cause=exc) from exc


__all__ = ["dumps", "loads"]
