"""Structured logging configuration using structlog."""

import logging
import sys

import structlog


def configure_logging(
    component: str, level: str = "INFO", fmt: str = "json"
) -> structlog.BoundLogger:
    """Configure structlog and return a logger bound to the component name.

    ``fmt="console"`` switches the JSON renderer for a human-readable one,
    which is handy when running the worker in a terminal.
    """
    renderer = (
        structlog.dev.ConsoleRenderer()
        if fmt == "console"
        else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.format_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )
    return structlog.get_logger(component=component)
