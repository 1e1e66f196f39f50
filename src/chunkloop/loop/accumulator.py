"""Incremental reduction of chunk results.

Manifesto:
    Chunks finish one at a time (or, with a worker pool, in any order).
    The accumulator is the one piece of mutable state in a loop run: it is
    built before the first chunk is dispatched, folded once per completed
    chunk by the dispatch thread, and read once at the end.

    - **Global order:** order-sensitive policies see results in iteration
      order no matter which chunk finished first (reorder buffer)
    - **All or nothing:** ``result()`` refuses to answer until every
      iteration has been folded

ARCHITECTURE
────────────
::

    Accumulator(total, combine, init, final, inorder, multicombine, maxcombine)
      ├── .fold(results, indices)  ─ once per chunk
      │       ├── collect:  values[i] = result
      │       └── combine:  buffer → drain contiguous run → combine(acc, ...)
      └── .result()                ─ final(acc) after the last fold

Policies:
    collect        combine is None / "list"       → ordered list
    pairwise       combine(acc, value)            → running value
    multicombine   combine(acc, v1, ..., vk)      → k < maxcombine
    final          final(reduced)                 → post-processing

Tags:
    chunkloop, accumulator, reduction, combine, reorder-buffer

Doc-Types:
    api-reference
"""

from __future__ import annotations

import operator
from collections.abc import Callable, Sequence
from typing import Any

from chunkloop.core.errors import AccumulatorError, InvalidLoopError
from chunkloop.core.logging import get_logger
from chunkloop.loop.spec import MISSING, LoopSpec

logger = get_logger(__name__)


def _concat(left: Any, right: Any) -> list[Any]:
    """Flattening concatenation: scalars become one-element lists."""
    head = list(left) if isinstance(left, (list, tuple)) else [left]
    tail = list(right) if isinstance(right, (list, tuple)) else [right]
    return head + tail


def _merge(left: dict[Any, Any], right: dict[Any, Any]) -> dict[Any, Any]:
    return {**left, **right}


COMBINERS: dict[str, Callable[..., Any] | None] = {
    "list": None,
    "sum": operator.add,
    "+": operator.add,
    "*": operator.mul,
    "append": _concat,
    "c": _concat,
    "max": max,
    "min": min,
    "and": lambda a, b: a and b,
    "or": lambda a, b: a or b,
    "dict": _merge,
}


def resolve_combine(combine: Callable[..., Any] | str | None) -> Callable[..., Any] | None:
    """Map a combiner name to its function; ``None`` means collect."""
    if combine is None or callable(combine):
        return combine
    try:
        return COMBINERS[combine]
    except KeyError:
        raise InvalidLoopError(f"unknown combine function: {combine!r}", field="combine") from None


class Accumulator:
    """Folds per-chunk results into the loop's final value.

    Example:
        >>> acc = Accumulator(4, combine="sum", init=0)
        >>> acc.fold([2, 3], range(2, 4))   # second chunk first
        >>> acc.fold([0, 1], range(0, 2))
        >>> acc.result()
        6
    """

    def __init__(
        self,
        total: int,
        *,
        combine: Callable[..., Any] | str | None = None,
        init: Any = MISSING,
        final: Callable[[Any], Any] | None = None,
        inorder: bool = True,
        multicombine: bool = False,
        maxcombine: int = 100,
    ) -> None:
        if total < 0:
            raise InvalidLoopError("total must be >= 0", field="total")
        if maxcombine < 2:
            raise InvalidLoopError("maxcombine must be >= 2", field="maxcombine")
        self.total = total
        self.combine = resolve_combine(combine)
        self.final = final
        self.inorder = inorder
        self.multicombine = multicombine
        self.maxcombine = maxcombine

        self._folded: set[int] = set()
        self._values: list[Any] = [None] * total if self.combine is None else []
        self._buffer: dict[int, Any] = {}
        self._next = 0
        self._acc = init
        self._has_value = init is not MISSING
        self._failure: Exception | None = None

    @classmethod
    def from_loop(cls, loop: LoopSpec, total: int) -> Accumulator:
        """Accumulator configured from a loop's reduction policy."""
        return cls(
            total,
            combine=loop.combine,
            init=loop.init,
            final=loop.final,
            inorder=loop.inorder,
            multicombine=loop.multicombine,
            maxcombine=loop.maxcombine,
        )

    # ── Folding ──────────────────────────────────────────────────────

    @property
    def folded(self) -> int:
        """Number of iterations folded so far."""
        return len(self._folded)

    @property
    def complete(self) -> bool:
        return len(self._folded) == self.total

    def fold(self, results: Sequence[Any], indices: Sequence[int]) -> None:
        """Fold one chunk's results.

        Args:
            results: Per-iteration values, in the chunk's internal order.
            indices: Global iteration index of each value.

        Raises:
            AccumulatorError: Length mismatch, an index out of range, an
                index that was already folded, or an earlier combine failure.
            Exception: Whatever ``combine`` raises; the accumulator is then
                unusable.
        """
        self._raise_if_failed()
        indices = list(indices)
        if len(results) != len(indices):
            raise AccumulatorError(
                f"chunk returned {len(results)} results for {len(indices)} iterations"
            )
        if len(set(indices)) != len(indices):
            raise AccumulatorError("chunk indices contain duplicates")
        for index in indices:
            if not 0 <= index < self.total:
                raise AccumulatorError(f"iteration index {index} outside [0, {self.total})")
            if index in self._folded:
                raise AccumulatorError(f"iteration {index} folded twice")
        try:
            self._store(results, indices)
        except Exception as exc:
            self._failure = exc
            raise
        self._folded.update(indices)

    def _store(self, results: Sequence[Any], indices: list[int]) -> None:
        if self.combine is None:
            for index, value in zip(indices, results):
                self._values[index] = value
            return

        if not self.inorder:
            if results:
                self._apply(list(results))
            return

        self._buffer.update(zip(indices, results))
        ready: list[Any] = []
        while self._next in self._buffer:
            ready.append(self._buffer.pop(self._next))
            self._next += 1
        if ready:
            self._apply(ready)
        logger.debug(
            "accumulator.folded",
            applied=len(ready),
            buffered=len(self._buffer),
            next_index=self._next,
        )

    def _raise_if_failed(self) -> None:
        if self._failure is not None:
            raise AccumulatorError(
                f"combine failed earlier - {type(self._failure).__name__}: {self._failure}",
                cause=self._failure,
            )

    def _apply(self, values: list[Any]) -> None:
        if not self._has_value:
            self._acc = values.pop(0)
            self._has_value = True
        if not self.multicombine:
            for value in values:
                self._acc = self.combine(self._acc, value)
            return
        step = self.maxcombine - 1
        for offset in range(0, len(values), step):
            self._acc = self.combine(self._acc, *values[offset:offset + step])

    # ── Result ───────────────────────────────────────────────────────

    def result(self) -> Any:
        """The reduced value, after every iteration has been folded.

        Raises:
            AccumulatorError: Called before all iterations were folded, or
                after a combine raised.
        """
        self._raise_if_failed()
        if not self.complete:
            raise AccumulatorError(
                f"result requested after {self.folded} of {self.total} iterations"
            )
        if self.combine is None:
            value = list(self._values)
        else:
            value = self._acc if self._has_value else None
        return self.final(value) if self.final is not None else value


__all__ = ["Accumulator", "COMBINERS", "resolve_combine"]
