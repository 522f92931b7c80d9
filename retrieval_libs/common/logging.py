"""Structured logging for the retrieval service and its scripts.

Everything logs through ``structlog``: JSON lines in deployed environments,
coloured console output locally. The service name (plus any extra context such
as ``env``) is bound once through contextvars and merged into every event.

Typical usage
- Call ``configure_logging(service_name, log_level, log_format)`` at startup
- Acquire loggers via ``structlog.get_logger("<dotted.name>")``
- Report timed operations with ``log_performance``
"""

import logging
import sys
from typing import Any, Optional

import structlog
from structlog.stdlib import LoggerFactory, add_logger_name

# Third-party loggers that are chatty at INFO.
NOISY_LOGGERS = ("asyncpg", "uvicorn.access", "httpx")

LOG_FORMATS = ("json", "console")


def configure_logging(
    service_name: str,
    log_level: str = "INFO",
    log_format: str = "json",
    **context: Any
) -> None:
    """Configure structured logging for a service.

    Parameters
    - service_name: Logical service identifier bound to each log line
    - log_level: ``DEBUG``, ``INFO``, ``WARNING``, ``ERROR`` (case-insensitive)
    - log_format: ``json`` for production; ``console`` for local dev
    - context: Extra key/value pairs bound to every log line (e.g. ``env``)
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level}")
    if log_format not in LOG_FORMATS:
        raise ValueError(f"Unknown log format: {log_format}")

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    logging.getLogger().setLevel(level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        add_logger_name,
    ]

    if log_format == "json":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(service=service_name, **context)


def log_performance(
    operation: str,
    duration_ms: float,
    slow_threshold_ms: Optional[float] = None,
    **kwargs: Any
) -> None:
    """Log a timed operation.

    Parameters
    - operation: A stable identifier for the measured unit of work
    - duration_ms: Elapsed time in milliseconds
    - slow_threshold_ms: Log at warning level when exceeded
    - kwargs: Additional dimensions (e.g., results_count, degraded)
    """
    logger = structlog.get_logger("performance")
    slow = slow_threshold_ms is not None and duration_ms > slow_threshold_ms
    log = logger.warning if slow else logger.info
    log(
        f"Operation {operation} completed",
        operation=operation,
        duration_ms=round(duration_ms, 3),
        slow=slow,
        **kwargs
    )
