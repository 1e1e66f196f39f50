"""Worker task construction.

A ``ChunkTask`` is the self-contained unit of work shipped to one worker:
the chunk's binding sets, the captured scope, and the expression source.
Calling it (with no arguments, in the worker's process) re-establishes the
scope, evaluates the expression once per binding set in order, and returns
one serialized result per iteration.
"""

from __future__ import annotations

import importlib
import traceback
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from chunkloop.core.errors import PackageLoadError, PayloadError, TaskEvaluationError
from chunkloop.core.serialization import dumps
from chunkloop.loop.capture import CapturedScope
from chunkloop.loop.chunks import Chunk
from chunkloop.loop.scope import Scope


def load_packages(packages: Iterable[str]) -> None:
    """Import every package, failing on the first one that is unavailable."""
    for package in packages:
        try:
            importlib.import_module(package)
        except ImportError as exc:
            raise PackageLoadError(package, cause=exc) from exc


def resolve_parent(parent_namespace: str | None) -> Mapping[str, Any]:
    """Worker-side parent of the captured scope."""
    if parent_namespace is None:
        return Scope.builtin_root()
    try:
        module = importlib.import_module(parent_namespace)
    except ImportError as exc:
        raise PackageLoadError(parent_namespace, cause=exc) from exc
    return Scope(vars(module), parent=Scope.builtin_root(), kind="global", name=parent_namespace)


@dataclass
class ChunkTask:
    """Serializable closure evaluating one chunk of iterations."""

    chunk_index: int
    start: int
    bindings: tuple[dict[str, Any], ...]
    captured: CapturedScope
    expr_source: str

    @property
    def indices(self) -> range:
        return range(self.start, self.start + len(self.bindings))

    def __call__(self) -> list[bytes]:
        load_packages(self.captured.packages)
        scope = self.captured.scope
        for alias, module_name in self.captured.imports.items():
            try:
                scope[alias] = importlib.import_module(module_name)
            except ImportError as exc:
                raise PackageLoadError(module_name, cause=exc) from exc
        scope.parent = resolve_parent(self.captured.parent_namespace)

        code = compile(self.expr_source, "<chunkloop expr>", "eval")
        results: list[bytes] = []
        for offset, binding in enumerate(self.bindings):
            scope.update(binding)
            try:
                value = eval(code, scope.as_namespace())
            except Exception as exc:
                raise self._failure(offset, "failed", exc) from exc
            try:
                results.append(dumps(value))
            except PayloadError as exc:
                cause = exc.cause or exc
                raise self._failure(offset, "returned a value that cannot be serialized", cause) from exc
        return results

    def _failure(self, offset: int, what: str, exc: BaseException) -> TaskEvaluationError:
        return TaskEvaluationError(
            f"task {self.chunk_index} {what} - {type(exc).__name__}: {exc}",
            error_type=type(exc).__name__,
            remote_traceback=traceback.format_exc(),
            cause=exc,
        ).with_context(
            chunk_index=self.chunk_index,
            iteration=self.start + offset,
        )


def build_task(captured: CapturedScope, expr_source: str, chunk: Chunk) -> ChunkTask:
    """Task closure for ``chunk`` embedding the shared captured scope."""
    return ChunkTask(
        chunk_index=chunk.index,
        start=chunk.start,
        bindings=chunk.bindings,
        captured=captured,
        expr_source=expr_source,
    )


__all__ = ["ChunkTask", "build_task", "load_packages", "resolve_parent"]
