"""Binding enumeration: iteration sources → ordered per-iteration bindings."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from typing import Any

from chunkloop.core.errors import InvalidLoopError

Binding = dict[str, Any]


def iter_bindings(iterables: Mapping[str, Iterable[Any]]) -> Iterator[Binding]:
    """Walk the sources in lock-step, yielding one binding set per iteration.

    Stops at the shortest source.  The position of a binding in the stream is
    its global iteration index.
    """
    names = list(iterables)
    try:
        sources = [iter(iterables[name]) for name in names]
    except TypeError as exc:
        raise InvalidLoopError("every iteration source must be iterable", field="iterables", cause=exc) from exc
    for values in zip(*sources):
        yield dict(zip(names, values))


def enumerate_bindings(iterables: Mapping[str, Iterable[Any]]) -> list[Binding]:
    """Materialize every binding set, in iteration order."""
    return list(iter_bindings(iterables))


__all__ = ["Binding", "iter_bindings", "enumerate_bindings"]
