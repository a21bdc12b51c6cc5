"""Observability module for logging."""

from clerkbook.observability.logging import (
    bind_worker_context,
    clear_worker_context,
    configure_logging,
    get_logger,
)


__all__ = [
    "bind_worker_context",
    "clear_worker_context",
    "configure_logging",
    "get_logger",
]
