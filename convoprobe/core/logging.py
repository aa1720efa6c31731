"""structlog configuration shared by the CLI and embedded processors."""

from __future__ import annotations

import logging

import structlog


def setup_logging(debug: bool = False, log_format: str = "console") -> None:
    """Configure structlog for console or JSON output."""
    if log_format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    elif log_format == "console":
        renderer = structlog.dev.ConsoleRenderer()
    else:
        raise ValueError(f"Invalid log format: {log_format!r}. Must be 'console' or 'json'.")

    level = logging.DEBUG if debug else logging.INFO

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
    )
