"""Structured logging configuration for the load-testing engine.

This module standardizes logging using ``structlog``. It produces either JSON
(for CI log collection) or a pretty console format (for humans) and binds the
service name so log lines from different runs can be told apart.

Typical usage
- Call ``configure_logging(service_name, log_level, log_format)`` at startup
- Acquire loggers via ``structlog.get_logger(name)``
"""

import logging
import sys
from typing import Any, Optional

import structlog
from structlog.stdlib import LoggerFactory, add_logger_name

from .config import LoadTestSettings


def configure_logging(
    service_name: str,
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    settings: Optional[LoadTestSettings] = None,
) -> None:
    """Configure structured logging.

    Parameters
    - service_name: Logical identifier bound to each log line
    - log_level: ``DEBUG``, ``INFO``, ``WARNING``, ``ERROR`` (case‑insensitive);
      defaults to ``settings.lt_log_level``
    - log_format: ``json`` for CI; ``console`` for local runs; defaults to
      ``settings.lt_log_format``
    """
    settings = settings or LoadTestSettings()
    log_level = (log_level or settings.lt_log_level).upper()
    log_format = log_format or settings.lt_log_format

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level),
    )

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        add_logger_name,
    ]

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(service=service_name)


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def log_performance(operation: str, duration_ms: float, **kwargs: Any) -> None:
    """Log a single timed measurement.

    Parameters
    - operation: A stable label for the measured unit of work
    - duration_ms: Elapsed time in milliseconds
    - kwargs: Additional dimensions (memory delta, cpu time, status)
    """
    logger = get_logger("performance")
    logger.info(
        f"Operation {operation} completed",
        operation=operation,
        duration_ms=duration_ms,
        **kwargs
    )
