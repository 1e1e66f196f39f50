"""
Structured logging for chunkloop.

Every module logs through ``get_logger(__name__)`` with event-style names
(``dispatcher.chunk_folded``, ``capture.scope_built``) and keyword fields.
``configure_logging`` installs the structlog chain on top of the stdlib
``logging`` tree, once per program, CLI invocation or worker process.

Processor chain::

    filter_by_level → add_log_level → add_logger_name → [TimeStamper]
      → merge_contextvars (run_id from LogContext) → service name
      → format_exc_info → JSONRenderer | ConsoleRenderer

Examples:
    >>> configure_logging(level="DEBUG", service="chunkloop")
    >>> logger = get_logger(__name__)
    >>> logger.info("dispatcher.chunk_folded", chunk=0, start=0, stop=4)

Worker processes pass ``stream=sys.stderr``; their stdout carries the payload.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger


def _service_processor(service: str) -> Processor:
    def add_service(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service.name", service)
        return event_dict

    return add_service


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "chunkloop",
    add_timestamp: bool = True,
    stream: Any = None,
) -> None:
    """Route structlog events through stdlib logging to ``stream``.

    Args:
        level: DEBUG, INFO, WARNING or ERROR
        json_format: JSON lines if True, console if False, JSON off a tty if None
        service: value of the ``service.name`` field
        add_timestamp: include an ISO ``timestamp`` field
        stream: output stream, stdout by default
    """
    stream = stream or sys.stdout
    if json_format is None:
        json_format = not stream.isatty()
    log_level = getattr(logging, level.upper())

    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
    ]
    if add_timestamp:
        processors.append(structlog.processors.TimeStamper(fmt="iso", utc=True))
    processors += [
        structlog.contextvars.merge_contextvars,
        _service_processor(service),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=stream.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        # Not cached: module-level loggers must follow a later reconfiguration.
        cache_logger_on_first_use=False,
    )
    logging.basicConfig(format="%(message)s", stream=stream, level=log_level, force=True)
    logging.getLogger("chunkloop").setLevel(log_level)


def get_logger(name: str | None = None) -> Any:
    """Structured logger, usually ``get_logger(__name__)``."""
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


class LogContext:
    """Binds fields for the duration of a ``with`` block.

    Example:
        with LogContext(run_id="3f2a9c01d4e7"):
            logger.info("backend.run_started")
    """

    def __init__(self, **kwargs: Any):
        self._context = kwargs

    def __enter__(self) -> LogContext:
        bind_context(**self._context)
        return self

    def __exit__(self, *args) -> None:
        unbind_context(*self._context)


__all__ = [
    "configure_logging",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    "LogContext",
]
