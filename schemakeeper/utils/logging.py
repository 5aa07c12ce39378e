"""Structured logging configuration."""
import contextvars
import logging
import logging.config
import os
import sys
from typing import Any, Dict, Optional

import structlog
from opentelemetry import trace

from schemakeeper import __version__

# Context variables for the running lifecycle operation
operation_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar('operation', default=None)
environment_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar('environment', default=None)


def setup_logging(log_level: Optional[str] = None, colors: bool = True) -> None:
    """Configure structlog on top of the standard library logging."""
    log_level = (log_level or os.getenv("LOG_LEVEL", "INFO")).upper()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            add_operation_context,
            add_trace_info,
            add_service_context,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": structlog.stdlib.ProcessorFormatter,
                "processor": structlog.processors.JSONRenderer(),
            },
            "console": {
                "()": structlog.stdlib.ProcessorFormatter,
                "processor": structlog.dev.ConsoleRenderer(colors=colors),
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "console" if sys.stderr.isatty() else "json",
                "stream": sys.stderr,
            },
        },
        "loggers": {
            "": {
                "handlers": ["console"],
                "level": log_level,
                "propagate": True,
            },
            "sqlalchemy.engine": {
                "handlers": ["console"],
                "level": "WARNING",  # Statement echo is opt-in via DATABASE_ECHO
                "propagate": False,
            },
        },
    }

    logging.config.dictConfig(logging_config)


def add_operation_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add the running lifecycle operation to log records."""
    operation = operation_var.get()
    if operation:
        event_dict["operation"] = operation

    environment = environment_var.get()
    if environment:
        event_dict["environment"] = environment

    return event_dict


def add_trace_info(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add OpenTelemetry trace information to log records."""
    span = trace.get_current_span()
    if span != trace.INVALID_SPAN:
        span_context = span.get_span_context()
        event_dict["trace_id"] = f"{span_context.trace_id:032x}"
        event_dict["span_id"] = f"{span_context.span_id:016x}"

    return event_dict


def add_service_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add service context information to log records."""
    event_dict["service"] = "schemakeeper"
    event_dict["version"] = __version__

    return event_dict


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def set_operation_context(operation: Optional[str] = None, environment: Optional[str] = None) -> None:
    """Set the operation context for subsequent log records."""
    if operation:
        operation_var.set(operation)
    if environment:
        environment_var.set(environment)


def clear_context() -> None:
    """Reset all context variables."""
    operation_var.set(None)
    environment_var.set(None)
