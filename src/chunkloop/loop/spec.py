"""Loop specification - what to iterate, what to evaluate, how to reduce.

``LoopSpec`` is the read-only input to a loop run.  It names the iteration
variables and their sources, the work expression, the export overrides and
the reduction policy.  Everything downstream (scope capture, chunk planning,
the accumulator) reads from it and never writes back.

Example:
    >>> loop = LoopSpec(
    ...     iterables={"x": range(4)},
    ...     expr="scale * x",
    ...     combine="sum",
    ... )
    >>> loop.argnames
    ('x',)

Tags:
    chunkloop, loop, spec, request-model

Doc-Types:
    api-reference
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from chunkloop.core.errors import InvalidLoopError
from chunkloop.loop.analysis import Expression, parse_expression


class _Missing:
    """Sentinel type for "no initial value"."""

    _instance: _Missing | None = None

    def __new__(cls) -> _Missing:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __reduce__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()

COMBINE_NAMES = frozenset({"list", "sum", "+", "*", "append", "c", "max", "min", "and", "or", "dict"})


@dataclass(frozen=True)
class LoopSpec:
    """Declarative description of one loop run.

    Iteration sources are walked in lock-step: iteration ``i`` binds every
    name to the ``i``-th element of its source, and the loop stops at the
    shortest source.
    """

    # === WHAT TO ITERATE ===
    iterables: Mapping[str, Iterable[Any]]
    """Ordered mapping of iteration-variable name to its source"""

    expr: Expression
    """Work expression evaluated once per iteration"""

    # === SCOPE OVERRIDES ===
    export: tuple[str, ...] = ()
    """Names to ship to workers even if the expression does not mention them"""

    noexport: tuple[str, ...] = ()
    """Names never shipped to workers"""

    packages: tuple[str, ...] = ()
    """Modules every worker imports before evaluating"""

    parent_namespace: str | None = None
    """Module whose namespace becomes the worker-side parent scope"""

    # === REDUCTION ===
    combine: Callable[..., Any] | str | None = None
    """Pairwise combine function or a named combiner; None collects a list"""

    init: Any = MISSING
    """Initial accumulator value for ``combine``"""

    final: Callable[[Any], Any] | None = None
    """Post-processing applied to the reduced value"""

    inorder: bool = True
    """Apply results in iteration order (False: in completion order)"""

    multicombine: bool = False
    """``combine`` accepts more than two arguments"""

    maxcombine: int = 100
    """Upper bound on arguments per ``combine`` call when multicombine"""

    metadata: dict[str, Any] = field(default_factory=dict)
    """Free-form context (labels for logs)"""

    def __post_init__(self) -> None:
        if not isinstance(self.iterables, Mapping):
            raise InvalidLoopError("iterables must be a mapping of name to iterable", field="iterables")
        if not self.iterables:
            raise InvalidLoopError("a loop needs at least one iteration variable", field="iterables")
        for name in self.iterables:
            if not isinstance(name, str) or not name.isidentifier():
                raise InvalidLoopError(f"invalid iteration variable name: {name!r}", field="iterables")
        parse_expression(self.expr)

        for attr in ("export", "noexport", "packages"):
            value = getattr(self, attr)
            if isinstance(value, str):
                value = (value,)
            object.__setattr__(self, attr, tuple(value))

        if isinstance(self.combine, str) and self.combine not in COMBINE_NAMES:
            raise InvalidLoopError(f"unknown combine function: {self.combine!r}", field="combine")
        if self.combine is not None and not isinstance(self.combine, str) and not callable(self.combine):
            raise InvalidLoopError("combine must be callable, a combiner name, or None", field="combine")
        if self.final is not None and not callable(self.final):
            raise InvalidLoopError("final must be callable", field="final")
        if isinstance(self.maxcombine, bool) or not isinstance(self.maxcombine, int) or self.maxcombine < 2:
            raise InvalidLoopError("maxcombine must be an integer >= 2", field="maxcombine")

    @property
    def argnames(self) -> tuple[str, ...]:
        """Iteration-variable names, in declaration order."""
        return tuple(self.iterables)


__all__ = ["LoopSpec", "MISSING", "COMBINE_NAMES"]
