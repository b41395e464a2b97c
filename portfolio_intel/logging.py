"""Structured logging configuration for the portfolio intelligence layer."""

import sys
import logging
import contextvars
from typing import Optional, Dict, Any
from functools import lru_cache

import structlog
from structlog.types import Processor


# Context variable for request tracing
request_id_context: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    'request_id', default=None
)


def add_request_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add request context to log entries."""
    request_id = request_id_context.get()
    if request_id:
        event_dict['request_id'] = request_id
    return event_dict


def setup_logging(
    log_level: str = "INFO",
    service_name: str = "portfolio-intel",
    environment: str = "development",
) -> None:
    """Setup structured logging configuration."""

    # Configure standard library logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        add_request_context,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="ISO"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if environment.lower() == "production":
        processors = shared_processors + [
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Add service context to all logs
    structlog.contextvars.bind_contextvars(
        service=service_name,
        environment=environment,
    )


@lru_cache()
def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def set_request_context(request_id: str) -> None:
    """Set request context for logging."""
    request_id_context.set(request_id)


def clear_request_context() -> None:
    """Clear request context."""
    request_id_context.set(None)
