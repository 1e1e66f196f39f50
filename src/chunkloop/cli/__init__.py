"""
CLI layer for chunkloop.

Provides a Typer application that drives the backend from the shell.  All
loop logic lives in ``chunkloop.backend`` and ``chunkloop.loop``; this
package handles only terminal transport: argument parsing, coloured
output, and table formatting.

Entry point::

    chunkloop --help
"""

from chunkloop.cli.app import app

__all__ = ["app"]
