"""Explicit lexical scopes and closures.

A ``Scope`` is a mapping of names to values with an optional parent; name
lookup walks the chain from the innermost scope outwards.  Assignment always
lands in the innermost scope, so a child never writes through to a parent.

A ``Closure`` is an explicit (code, scope) pair: a parameter list, an
expression body, and the scope the body's free names resolve in.  Because
the scope is a plain attribute, moving a closure into another environment
is a matter of building a copy with a different ``scope``
(:meth:`Closure.rebind`) rather than mutating any ambient state.

ARCHITECTURE
────────────
::

    Scope.from_frame(frame)

      locals ──▶ globals (kind="global") ──▶ builtins (kind="builtins")

    Closure(params=("x",), body="g(x) + 1", scope=<Scope>)
      └── __call__(*args) ─ child Scope(params) ─▶ eval(body)

Tags:
    chunkloop, scope, closure, environment

Doc-Types:
    api-reference
"""

from __future__ import annotations

import ast
import builtins
import dataclasses
from collections.abc import Iterator, Mapping, MutableMapping
from types import FrameType
from typing import Any, Literal

ScopeKind = Literal["local", "global", "builtins"]


class Scope(MutableMapping):
    """A name → value mapping with a parent chain.

    Reads fall through to the parent; writes and deletes only touch this
    scope's own bindings.  ``parent`` may be another ``Scope`` or any
    read-only ``Mapping`` (a module ``__dict__``, for example).

    Example:
        >>> root = Scope({"a": 1}, kind="global")
        >>> child = root.child({"b": 2})
        >>> child["a"], child["b"]
        (1, 2)
        >>> child["a"] = 10
        >>> root["a"]
        1
    """

    def __init__(
        self,
        bindings: Mapping[str, Any] | None = None,
        parent: Mapping[str, Any] | None = None,
        *,
        kind: ScopeKind = "local",
        name: str | None = None,
    ) -> None:
        self.bindings: dict[str, Any] = dict(bindings or {})
        self.parent = parent
        self.kind = kind
        self.name = name

    # ── Construction ─────────────────────────────────────────────────

    @classmethod
    def builtin_root(cls) -> Scope:
        """Root scope holding Python's builtins."""
        return cls(vars(builtins), kind="builtins", name="builtins")

    @classmethod
    def from_frame(cls, frame: FrameType) -> Scope:
        """Build the lexical chain visible from ``frame``.

        The chain is locals → module globals → builtins.  Locals are copied
        (frame locals are a snapshot); the globals level wraps the module
        dictionary itself and is only ever read.
        """
        global_scope = cls(
            parent=cls.builtin_root(),
            kind="global",
            name=frame.f_globals.get("__name__"),
        )
        # Share the module dict rather than copying it; Scope never writes
        # to a parent level.
        global_scope.bindings = frame.f_globals
        if frame.f_locals is frame.f_globals:
            return global_scope
        return cls(dict(frame.f_locals), parent=global_scope, name=frame.f_code.co_name)

    def child(self, bindings: Mapping[str, Any] | None = None) -> Scope:
        """New innermost scope whose parent is this one."""
        return Scope(bindings, parent=self)

    # ── Mapping protocol ─────────────────────────────────────────────

    def __getitem__(self, name: str) -> Any:
        if name in self.bindings:
            return self.bindings[name]
        if self.parent is not None:
            return self.parent[name]
        raise KeyError(name)

    def __setitem__(self, name: str, value: Any) -> None:
        self.bindings[name] = value

    def __delitem__(self, name: str) -> None:
        del self.bindings[name]

    def __contains__(self, name: object) -> bool:
        if name in self.bindings:
            return True
        return self.parent is not None and name in self.parent

    def __iter__(self) -> Iterator[str]:
        seen: set[str] = set()
        for level in self.chain():
            for name in level:
                if name not in seen:
                    seen.add(name)
                    yield name

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def __repr__(self) -> str:
        label = f" {self.name!r}" if self.name else ""
        return f"<Scope{label} kind={self.kind} names={len(self.bindings)}>"

    # ── Chain helpers ────────────────────────────────────────────────

    def chain(self) -> Iterator[Mapping[str, Any]]:
        """Yield the binding mappings from innermost to outermost."""
        level: Mapping[str, Any] | None = self
        while level is not None:
            if isinstance(level, Scope):
                yield level.bindings
                level = level.parent
            else:
                yield level
                level = None

    def lookup(self, name: str) -> tuple[Any, Mapping[str, Any]]:
        """Resolve ``name`` and return ``(value, owning scope)``.

        Raises:
            KeyError: ``name`` is bound nowhere in the chain.
        """
        level: Mapping[str, Any] | None = self
        while level is not None:
            if isinstance(level, Scope):
                if name in level.bindings:
                    return level.bindings[name], level
                level = level.parent
            else:
                if name in level:
                    return level[name], level
                level = None
        raise KeyError(name)

    def global_scope(self) -> Scope:
        """The nearest ``kind="global"`` level, or the outermost ``Scope``."""
        level: Scope = self
        while True:
            if level.kind == "global":
                return level
            if not isinstance(level.parent, Scope) or level.parent.kind == "builtins":
                return level
            level = level.parent

    def as_namespace(self) -> dict[str, Any]:
        """Flatten the chain into a plain dict usable as ``eval`` globals.

        ``eval`` resolves names inside lambdas and comprehensions through
        its globals dict only, so the chain is materialized outermost-first
        with inner bindings shadowing outer ones.
        """
        namespace: dict[str, Any] = {}
        for level in reversed(list(self.chain())):
            namespace.update(level)
        namespace["__builtins__"] = builtins
        return namespace


def is_builtin_name(name: str) -> bool:
    """True if ``name`` resolves in Python's builtins."""
    return hasattr(builtins, name)


@dataclasses.dataclass(frozen=True, eq=False)
class Closure:
    """A callable expression body bound to an explicit scope.

    Attributes:
        params: Positional parameter names
        body: Python expression source evaluated on each call
        scope: Scope the body's free names resolve in (None = builtins only)
        name: Label used in reprs and error messages

    Example:
        >>> env = Scope({"k": 3})
        >>> triple = Closure(("x",), "k * x", env, name="triple")
        >>> triple(5)
        15
    """

    params: tuple[str, ...]
    body: str
    scope: Scope | None = None
    name: str = "<closure>"

    def __post_init__(self) -> None:
        object.__setattr__(self, "params", tuple(self.params))
        object.__setattr__(self, "_code", compile(self.body, f"<closure {self.name}>", "eval"))

    @classmethod
    def from_lambda(cls, source: str, scope: Scope | None = None, *, name: str | None = None) -> Closure:
        """Build a closure from ``lambda`` source, e.g. ``"lambda x: g(x) + 1"``."""
        tree = ast.parse(source.strip(), mode="eval")
        if not isinstance(tree.body, ast.Lambda):
            raise ValueError(f"expected a lambda expression, got: {source!r}")
        args = tree.body.args
        if args.vararg or args.kwarg or args.kwonlyargs or args.defaults:
            raise ValueError("closures take plain positional parameters only")
        params = tuple(a.arg for a in [*args.posonlyargs, *args.args])
        return cls(params, ast.unparse(tree.body.body), scope, name=name or "<lambda>")

    def rebind(self, scope: Scope) -> Closure:
        """Copy of this closure whose free names resolve in ``scope``."""
        return dataclasses.replace(self, scope=scope)

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        if len(args) > len(self.params):
            raise TypeError(
                f"{self.name}() takes {len(self.params)} positional arguments but {len(args)} were given"
            )
        frame = dict(zip(self.params, args))
        for key, value in kwargs.items():
            if key not in self.params:
                raise TypeError(f"{self.name}() got an unexpected keyword argument {key!r}")
            if key in frame:
                raise TypeError(f"{self.name}() got multiple values for argument {key!r}")
            frame[key] = value
        missing = [p for p in self.params if p not in frame]
        if missing:
            raise TypeError(f"{self.name}() missing required arguments: {', '.join(missing)}")
        local = Scope(frame, parent=self.scope if self.scope is not None else Scope.builtin_root())
        return eval(self._code, local.as_namespace())

    def __getstate__(self) -> dict[str, Any]:
        return {"params": self.params, "body": self.body, "scope": self.scope, "name": self.name}

    def __setstate__(self, state: dict[str, Any]) -> None:
        for key, value in state.items():
            object.__setattr__(self, key, value)
        object.__setattr__(self, "_code", compile(self.body, f"<closure {self.name}>", "eval"))

    def __repr__(self) -> str:
        return f"Closure({self.name}: lambda {', '.join(self.params)}: {self.body})"


__all__ = ["Scope", "ScopeKind", "Closure", "is_builtin_name"]
