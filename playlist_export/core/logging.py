"""
Structured logging configuration using structlog.
"""
import logging
import sys
from typing import Any, Dict

import structlog

from playlist_export.core.config import settings


def setup_logging() -> None:
    """
    Configure structured logging for the application.
    """
    level = logging.DEBUG if settings.DEBUG else logging.INFO

    # Configure standard logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )

    # Processors for development
    dev_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(colors=True),
    ]

    # Processors for production
    prod_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.dict_tracebacks,
        structlog.processors.JSONRenderer(),
    ]

    processors = dev_processors if settings.is_development else prod_processors

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name (usually __name__ of the module)

    Returns:
        Configured logger instance
    """
    return structlog.get_logger(name)


def short_token(token: str | None) -> str | None:
    """Truncate an opaque token for logging."""
    return token[:8] if token else None


def log_error_details(
    error: Exception,
    session_id: str | None = None,
    **kwargs: Any,
) -> Dict[str, Any]:
    """
    Create a context dict for error logging.

    Args:
        error: Exception instance
        session_id: Browser session the error belongs to, if known
        **kwargs: Additional context

    Returns:
        Context dictionary for logging
    """
    context = {
        "error_type": type(error).__name__,
        "error_message": str(error),
        **kwargs,
    }

    if session_id:
        context["session_id"] = session_id

    return context
