"""Centralized structured logging configuration using structlog.

Every module in the scheduler obtains its logger from structlog and emits
snake_case events with keyword context. This module wires those loggers to the
standard library and picks JSON or console rendering. Rendering happens in a
``ProcessorFormatter`` on the handler, so an event and its traceback always
come out as a single line.

Example:
    >>> from critpath.log_config import configure_logging, get_logger
    >>> configure_logging(level="INFO")
    >>> logger = get_logger(__name__)
    >>> logger.info("schedule_recomputed", task_count=12, project_duration=30)
"""

import logging
import sys
from typing import Any, TextIO

import structlog


def configure_logging(
    level: str = "INFO",
    json_logs: bool = True,
    stream: TextIO | None = None,
) -> None:
    """Configure structlog for the scheduler.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: If True, use JSONRenderer; if False, use ConsoleRenderer for development
        stream: Where log lines go; defaults to stdout

    Raises:
        ValueError: If an invalid log level is provided
    """
    numeric_level = getattr(logging, level.upper(), None)
    if not isinstance(numeric_level, int):
        msg = f"Invalid log level: {level}"
        raise ValueError(msg)

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.MODULE,
                structlog.processors.CallsiteParameter.FUNC_NAME,
                structlog.processors.CallsiteParameter.LINENO,
            ],
        ),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_logs:
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=True,
            exception_formatter=structlog.dev.plain_traceback,
        )

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        ),
    )
    logging.basicConfig(handlers=[handler], level=numeric_level, force=True)

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a configured structlog logger.

    Args:
        name: Logger name (typically __name__ of the calling module)
    """
    return structlog.get_logger(name)


def bind_correlation_id(correlation_id: str) -> None:
    """Attach a correlation ID to every subsequent log entry in this context.

    Example:
        >>> bind_correlation_id("req-12345")
        >>> logger.info("dependency_add_requested")  # includes correlation_id
    """
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id)


def bind_context(**kwargs: Any) -> None:
    """Bind arbitrary context variables to the logging context.

    Example:
        >>> bind_context(operation="add_dependency", task_id=4)
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove specific context variables from the logging context."""
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    """Clear all context variables from the logging context."""
    structlog.contextvars.clear_contextvars()
