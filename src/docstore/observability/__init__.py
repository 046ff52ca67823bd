"""Public observability primitives: structured logging and correlation scopes."""

from docstore.observability.logging import (
    LoggingHandle,
    configure_structlog,
    correlation_scope,
    get_correlation_context,
    get_logger,
    json_formatter,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    "LoggingHandle",
    "configure_structlog",
    "correlation_scope",
    "get_correlation_context",
    "get_logger",
    "json_formatter",
    "setup_logging",
    "shutdown_logging",
]
