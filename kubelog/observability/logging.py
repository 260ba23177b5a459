"""Structured diagnostics for kubelog using structlog.

stdout belongs to the aggregated log stream, so every diagnostic goes to
stderr. Interactive terminals get structlog's console renderer; pipes and
CI get one JSON object per line.
"""

from __future__ import annotations

import logging
import sys
from typing import TextIO

import structlog

_FORMATS = ("auto", "json", "console")


def setup_logging(level: str = "warning", fmt: str = "auto", stream: TextIO | None = None) -> None:
    """Configure structlog once for the whole process."""
    if fmt not in _FORMATS:
        raise ValueError(f"Invalid log format: {fmt}. Must be one of {_FORMATS}")
    out = stream or sys.stderr
    log_level = getattr(logging, level.upper(), logging.WARNING)

    if fmt == "auto":
        fmt = "console" if out.isatty() else "json"
    renderer: structlog.typing.Processor
    if fmt == "console":
        renderer = structlog.dev.ConsoleRenderer(colors=out.isatty())
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True, key="ts"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=out),
        cache_logger_on_first_use=True,
    )


def get_logger(component: str) -> structlog.stdlib.BoundLogger:
    """Get a logger bound with a component name."""
    return structlog.get_logger(component=component)  # type: ignore[return-value]
