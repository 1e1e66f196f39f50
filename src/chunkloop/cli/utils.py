"""
CLI utility helpers — argument parsing and output formatting.
"""

from __future__ import annotations

import ast
import json
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from chunkloop.core.errors import LoopError

console = Console()
err_console = Console(stderr=True)


# ── Argument parsing ─────────────────────────────────────────────────────


def parse_value(text: str) -> Any:
    """Python literal if ``text`` is one, else the text itself."""
    try:
        return ast.literal_eval(text.strip())
    except (ValueError, SyntaxError):
        return text.strip()


def parse_var(option: str) -> tuple[str, list[Any]]:
    """Parse ``name=v1,v2,...`` into an iteration variable and its values.

    ``name=range(5)`` is accepted as a shorthand for ``0,1,2,3,4``.
    """
    name, sep, raw = option.partition("=")
    name = name.strip()
    if not sep or not name.isidentifier():
        raise typer.BadParameter(f"expected NAME=V1,V2,..., got {option!r}")
    raw = raw.strip()
    if raw.startswith("range(") and raw.endswith(")"):
        try:
            bounds = [int(part) for part in raw[len("range("):-1].split(",")]
            return name, list(range(*bounds))
        except (TypeError, ValueError) as exc:
            raise typer.BadParameter(f"invalid range for {name!r}: {raw}") from exc
    if not raw:
        return name, []
    return name, [parse_value(part) for part in raw.split(",")]


# ── Output helpers ───────────────────────────────────────────────────────


def output_value(value: Any, *, as_json: bool = False, extra: dict[str, Any] | None = None) -> None:
    """Render a loop result to the terminal."""
    if as_json:
        payload = {"result": value, **(extra or {})}
        console.print_json(json.dumps(payload, default=repr))
        return
    console.print(repr(value), markup=False, highlight=False)


def output_error(error: Exception, *, as_json: bool = False) -> None:
    """Render a failure to stderr and exit non-zero."""
    if as_json:
        payload = error.to_dict() if isinstance(error, LoopError) else {
            "error_type": type(error).__name__,
            "message": str(error),
        }
        err_console.print_json(json.dumps({"error": payload}, default=str))
    else:
        kind = error.category.value if isinstance(error, LoopError) else type(error).__name__
        err_console.print(f"[bold red]Error[/bold red] ({kind}): {error}")
    raise typer.Exit(code=1)


def print_table(rows: list[dict[str, Any]], *, title: str = "") -> None:
    """Render a list of dicts as a Rich table."""
    if not rows:
        console.print("[dim]No items.[/dim]")
        return
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in rows[0]:
        table.add_column(col, overflow="fold")
    for row in rows:
        table.add_row(*(str(v) for v in row.values()))
    console.print(table)
