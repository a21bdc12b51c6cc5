"""Structured logging configuration."""

import logging
import sys
from typing import TextIO

import structlog


_WORKER_KEYS = ("worker_id", "batch_id")


def configure_logging(
    level: int = logging.INFO,
    output: TextIO = sys.stderr,
    json_format: bool = True,
) -> None:
    """Configure structured logging for the application.

    Sets up structlog with JSON output (or a console renderer for humans)
    and standard processors for timestamps, log levels, and context binding.

    Args:
        level: Logging level (default: INFO).
        output: Output stream (default: stderr).
        json_format: Whether to use JSON format (default: True).
    """
    processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_format:
        processors.append(structlog.processors.JSONRenderer(sort_keys=True))
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=output.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=output),
        cache_logger_on_first_use=True,
    )

    # sqlite3/httpx log through the standard library
    logging.basicConfig(
        format="%(message)s",
        stream=output,
        level=level,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a bound logger instance.

    Args:
        name: Optional logger name.

    Returns:
        Bound logger instance.
    """
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger


def bind_worker_context(worker_id: str, batch_id: str | None = None) -> None:
    """Bind worker context to all subsequent log messages.

    Args:
        worker_id: Identifier of the polling worker process.
        batch_id: Identifier of the current claim batch.
    """
    context = {"worker_id": worker_id}
    if batch_id is not None:
        context["batch_id"] = batch_id
    structlog.contextvars.bind_contextvars(**context)


def clear_worker_context() -> None:
    """Clear worker context from log messages."""
    structlog.contextvars.unbind_contextvars(*_WORKER_KEYS)
