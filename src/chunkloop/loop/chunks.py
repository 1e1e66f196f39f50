"""Chunk planning: contiguous, bounded slices of the iteration range.

Chunk ``i`` covers global indices ``[i * chunk_size, min((i + 1) * chunk_size, n))``.
Chunks are disjoint, in order, and together cover ``[0, n)`` exactly once;
a binding set is never split across chunks.
"""

from __future__ import annotations

import math
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from typing import Any

from chunkloop.core.errors import InvalidLoopError


@dataclass(frozen=True)
class Chunk:
    """One contiguous group of iterations dispatched as a unit."""

    index: int
    start: int
    stop: int
    bindings: tuple[dict[str, Any], ...]

    @property
    def indices(self) -> range:
        """Global iteration indices covered by this chunk."""
        return range(self.start, self.stop)

    def __len__(self) -> int:
        return self.stop - self.start


def validate_chunk_size(chunk_size: Any) -> int:
    """Return ``chunk_size`` if it is a positive integer, else raise."""
    if isinstance(chunk_size, bool) or not isinstance(chunk_size, int) or chunk_size < 1:
        raise InvalidLoopError(
            f"chunk_size must be a positive integer, got {chunk_size!r}",
            field="chunk_size",
        )
    return chunk_size


def count_chunks(total: int, chunk_size: int) -> int:
    """``ceil(total / chunk_size)``."""
    return math.ceil(total / validate_chunk_size(chunk_size))


def chunk_ranges(total: int, chunk_size: int) -> Iterator[range]:
    """Index ranges of each chunk for ``total`` iterations."""
    for i in range(count_chunks(total, chunk_size)):
        yield range(i * chunk_size, min((i + 1) * chunk_size, total))


def plan_chunks(bindings: Sequence[dict[str, Any]], chunk_size: int) -> Iterator[Chunk]:
    """Lazily partition ``bindings`` into chunks of at most ``chunk_size``.

    Example:
        >>> [(c.start, c.stop) for c in plan_chunks([{}] * 5, 2)]
        [(0, 2), (2, 4), (4, 5)]
    """
    for index, span in enumerate(chunk_ranges(len(bindings), chunk_size)):
        yield Chunk(
            index=index,
            start=span.start,
            stop=span.stop,
            bindings=tuple(bindings[span.start:span.stop]),
        )


__all__ = ["Chunk", "validate_chunk_size", "count_chunks", "chunk_ranges", "plan_chunks"]
