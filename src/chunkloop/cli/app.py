"""
Root Typer application for the chunkloop CLI.

Runs a one-off loop from the shell, mostly for trying chunk sizes and
worker kinds without writing a host program::

    chunkloop run "x * k" --var x=1,2,3 --import os --chunk-size 2
    chunkloop plan --count 10 --chunk-size 4
"""

from __future__ import annotations

import importlib
import sys
from typing import Any

import typer
from typer import Typer

from chunkloop.backend import clear_backend, register_backend, run_loop
from chunkloop.cli.utils import console, output_error, output_value, parse_value, parse_var, print_table
from chunkloop.core.errors import InvalidLoopError, LoopError, PackageLoadError
from chunkloop.core.logging import configure_logging
from chunkloop.core.settings import get_settings
from chunkloop.loop.chunks import chunk_ranges, count_chunks
from chunkloop.loop.scope import Scope
from chunkloop.loop.spec import MISSING, LoopSpec

app = Typer(
    name="chunkloop",
    help="chunkloop — chunked map/reduce over isolated worker processes.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        try:
            v = pkg_version("chunkloop")
        except PackageNotFoundError:
            from chunkloop import __version__ as v
        typer.echo(f"chunkloop {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    log_level: str | None = typer.Option(None, "--log-level", help="Override CHUNKLOOP_LOG_LEVEL."),  # noqa: UP007
) -> None:
    """chunkloop CLI — run loops and inspect chunk plans."""
    settings = get_settings()
    configure_logging(
        level=log_level or settings.log_level,
        json_format=settings.log_json,
        service="chunkloop-cli",
        stream=sys.stderr,
    )


# ── Commands ─────────────────────────────────────────────────────────────


def _import_scope(specs: list[str]) -> dict[str, Any]:
    """``--import numpy`` / ``--import np=numpy`` → alias → module."""
    bindings: dict[str, Any] = {}
    for spec in specs:
        alias, sep, module_name = spec.partition("=")
        if not sep:
            module_name = alias
            alias = module_name.partition(".")[0]
        module_name, alias = module_name.strip(), alias.strip()
        try:
            module = importlib.import_module(module_name)
        except ImportError as exc:
            raise PackageLoadError(module_name, cause=exc) from exc
        # `--import os.path` binds `os`, like the import statement.
        bindings[alias] = module if sep else importlib.import_module(alias)
    return bindings


@app.command("run")
def run(
    expr: str = typer.Argument(..., help="Python expression evaluated once per iteration."),
    var: list[str] = typer.Option(..., "--var", help="Iteration variable as NAME=V1,V2,... (repeatable)."),
    chunk_size: int | None = typer.Option(None, "--chunk-size", "-c", help="Iterations per task."),  # noqa: UP007
    combine: str | None = typer.Option(None, "--combine", help="Named combiner (sum, append, max, ...)."),  # noqa: UP007
    init: str | None = typer.Option(None, "--init", help="Initial value for --combine."),  # noqa: UP007
    worker: str | None = typer.Option(None, "--worker", "-w", help="subprocess | pool | inline"),  # noqa: UP007
    max_workers: int | None = typer.Option(None, "--max-workers", "-j", help="Chunks in flight at once."),  # noqa: UP007
    imports: list[str] | None = typer.Option(None, "--import", "-i", help="Module to expose, MODULE or ALIAS=MODULE."),  # noqa: UP007
    as_json: bool = typer.Option(False, "--json", help="Emit JSON."),
) -> None:
    """Evaluate EXPR for every iteration and print the reduced value.

    Example::

        chunkloop run "x ** 2" --var x=1,2,3,4 --combine sum
        chunkloop run "os.getpid()" --var i=range(3) --import os --chunk-size 3
    """
    iterables: dict[str, list[Any]] = {}
    for option in var:
        name, values = parse_var(option)
        if name in iterables:
            raise typer.BadParameter(f"iteration variable {name!r} given twice", param_hint="--var")
        iterables[name] = values

    try:
        scope = Scope(_import_scope(imports or []), kind="global", name="cli")
        loop = LoopSpec(
            iterables=iterables,
            expr=expr,
            combine=combine,
            init=MISSING if init is None else parse_value(init),
            metadata={"caller": "cli"},
        )
        backend = register_backend(chunk_size, worker=worker, max_workers=max_workers)
        try:
            value = run_loop(loop, scope)
        finally:
            clear_backend()
    except LoopError as exc:
        output_error(exc, as_json=as_json)
        return

    iterations = min(len(values) for values in iterables.values())
    output_value(
        value,
        as_json=as_json,
        extra={
            "iterations": iterations,
            "chunks": count_chunks(iterations, backend.chunk_size),
            "chunk_size": backend.chunk_size,
            "worker": backend.worker.name,
        },
    )


@app.command("plan")
def plan(
    count: int = typer.Option(..., "--count", "-n", min=0, help="Number of iterations."),
    chunk_size: int | None = typer.Option(None, "--chunk-size", "-c", help="Iterations per task."),  # noqa: UP007
    as_json: bool = typer.Option(False, "--json", help="Emit JSON."),
) -> None:
    """Show how COUNT iterations are split into chunks."""
    size = get_settings().chunk_size if chunk_size is None else chunk_size
    try:
        rows = [
            {"chunk": i, "start": span.start, "stop": span.stop, "size": len(span)}
            for i, span in enumerate(chunk_ranges(count, size))
        ]
    except InvalidLoopError as exc:
        output_error(exc, as_json=as_json)
        return

    if as_json:
        output_value(rows, as_json=True, extra={"count": count, "chunk_size": size})
        return
    print_table(rows, title=f"{count} iterations, chunk size {size}")
    console.print(f"[dim]{len(rows)} chunk(s)[/dim]")
