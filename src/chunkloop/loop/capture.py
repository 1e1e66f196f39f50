"""Scope capture - the minimal isolated environment a work expression needs.

Manifesto:
    A worker process has none of the caller's state.  Everything the
    expression reads must be shipped with the task, and nothing else should
    be: shipping the caller's whole environment is slow and often
    unpicklable.  ``capture_scope`` computes the closure of the expression
    over the caller's lexical chain and copies exactly those bindings into a
    fresh, parentless ``Scope``.

ARCHITECTURE
────────────
::

    capture_scope(expr, caller, loop_names, export, noexport, packages, parent_namespace)
      │
      ├── 1. free names of expr  (minus loop names and noexport)
      │       └── resolve in caller chain → copy into isolated scope
      │           module values → imports (alias → module name)
      │           caller-level Closures → rebound to isolated scope,
      │                                    their free names captured too
      ├── 2. packages = declared ∪ discovered ∪ parent_namespace
      └── 3. explicit exports not yet captured
              └── must resolve (else UnresolvedExportError)

    The caller's scope is read, never written.

Related modules:
    scope.py     — Scope / Closure
    analysis.py  — free_names
    task.py      — re-establishes the captured scope on the worker

Tags:
    chunkloop, scope-capture, closure, export

Doc-Types:
    api-reference
"""

from __future__ import annotations

import importlib
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import ModuleType
from typing import Any

from chunkloop.core.errors import PackageLoadError, UnresolvedExportError, UnresolvedNameError
from chunkloop.core.logging import get_logger
from chunkloop.loop.analysis import Expression, free_names
from chunkloop.loop.scope import Closure, Scope, is_builtin_name

logger = get_logger(__name__)

_NOT_PACKAGES = frozenset({"builtins", "__main__"})


@dataclass(frozen=True)
class CapturedScope:
    """The isolated environment embedded into every chunk's task.

    Built once per loop run.  Each worker receives its own copy through
    serialization, so nothing here is ever shared or mutated concurrently.
    """

    scope: Scope
    packages: tuple[str, ...] = ()
    imports: dict[str, str] = field(default_factory=dict)
    parent_namespace: str | None = None

    @property
    def names(self) -> tuple[str, ...]:
        """Names bound in the isolated scope (imports excluded)."""
        return tuple(self.scope.bindings)


def top_level_package(module_name: str) -> str:
    return module_name.partition(".")[0]


def package_of(value: Any) -> str | None:
    """Top-level package a value needs on the worker, if any."""
    if isinstance(value, ModuleType):
        return top_level_package(value.__name__)
    if isinstance(value, (Closure, Scope)):
        return None
    module = getattr(value, "__module__", None)
    if not isinstance(module, str):
        module = type(value).__module__
    if not module or module in _NOT_PACKAGES:
        return None
    return top_level_package(module)


def _unique(names: Iterable[str | None]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(n for n in names if n))


def _belongs_to(scope: Scope | None, caller: Scope) -> bool:
    """True if ``scope`` is the caller's scope or its global level."""
    if scope is None:
        return True
    for level in (caller, caller.global_scope()):
        if scope is level or scope.bindings is level.bindings:
            return True
    return False


def _parent_mapping(parent_namespace: str | None) -> Mapping[str, Any] | None:
    if parent_namespace is None:
        return None
    try:
        return vars(importlib.import_module(parent_namespace))
    except ImportError as exc:
        raise PackageLoadError(parent_namespace, cause=exc) from exc


class _Capture:
    def __init__(self, caller: Scope, excluded: set[str], parent: Mapping[str, Any] | None) -> None:
        self.caller = caller
        self.excluded = excluded
        self.parent = parent
        self.isolated = Scope(name="captured")
        self.imports: dict[str, str] = {}
        self.discovered: list[str] = []

    def has(self, name: str) -> bool:
        return name in self.isolated.bindings or name in self.imports

    def store(self, name: str, value: Any) -> list[str]:
        """Copy ``value`` into the isolated scope; return names it still needs."""
        if isinstance(value, ModuleType):
            self.imports[name] = value.__name__
            self.discovered.append(top_level_package(value.__name__))
            return []
        self.discovered.append(package_of(value))
        pending: list[str] = []
        if isinstance(value, Closure) and _belongs_to(value.scope, self.caller):
            # Rebind so the closure can reach sibling exports on the worker.
            value = value.rebind(self.isolated)
            pending = [n for n in free_names(value.body) if n not in value.params]
        self.isolated[name] = value
        return pending

    def capture(self, names: Iterable[str]) -> None:
        pending = list(names)
        while pending:
            name = pending.pop(0)
            if name in self.excluded or self.has(name):
                continue
            try:
                value, owner = self.caller.lookup(name)
            except KeyError:
                if is_builtin_name(name) or (self.parent is not None and name in self.parent):
                    continue
                raise UnresolvedNameError(name) from None
            if isinstance(owner, Scope) and owner.kind == "builtins":
                continue
            pending.extend(self.store(name, value))


def capture_scope(
    expr: Expression,
    caller: Scope,
    *,
    loop_names: Iterable[str] = (),
    export: Iterable[str] = (),
    noexport: Iterable[str] = (),
    packages: Iterable[str] = (),
    parent_namespace: str | None = None,
) -> CapturedScope:
    """Build the minimal isolated scope for ``expr``.

    Args:
        expr: Work expression.
        caller: Lexical scope the loop was started from (read only).
        loop_names: Iteration-variable names; never captured.
        export: Names to capture even if ``expr`` does not reference them.
        noexport: Names never captured.
        packages: Modules declared on the loop specification.
        parent_namespace: Module whose namespace is the worker-side parent.

    Raises:
        UnresolvedNameError: A free name of ``expr`` is defined nowhere.
        UnresolvedExportError: An explicit export is not visible from ``caller``.
        PackageLoadError: ``parent_namespace`` cannot be imported.
    """
    noexport = set(noexport)
    parent = _parent_mapping(parent_namespace)
    state = _Capture(caller, set(loop_names) | noexport, parent)

    state.capture(free_names(expr))

    for name in export:
        if name in noexport or state.has(name):
            continue
        try:
            value, _ = caller.lookup(name)
        except KeyError:
            raise UnresolvedExportError(name) from None
        state.capture(state.store(name, value))

    resolved = _unique([*packages, *state.discovered, parent_namespace])
    logger.debug(
        "capture.scope_built",
        names=list(state.isolated.bindings),
        imports=state.imports,
        packages=list(resolved),
    )
    return CapturedScope(
        scope=state.isolated,
        packages=resolved,
        imports=dict(state.imports),
        parent_namespace=parent_namespace,
    )


__all__ = ["CapturedScope", "capture_scope", "package_of", "top_level_package"]
