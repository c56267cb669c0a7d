"""Structured logging configuration for the records layer.

Every module in ``bizrecords`` logs through ``structlog``: module-level
loggers come from ``get_logger`` and repositories use a ``ServiceLogger``
carrying their entity and table. ``configure_logging`` decides how the lines
are rendered and is called once by whoever owns the process (the admin CLI,
an application embedding the repositories).

Log lines go to stderr so that a command printing JSON results on stdout
stays machine readable.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.stdlib import LoggerFactory, add_logger_name

LOG_FORMATS = ("json", "console")


def _resolve_level(log_level: str) -> int:
    level = logging.getLevelName(str(log_level).upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level!r}")
    return level


def configure_logging(
    service_name: str,
    log_level: str = "INFO",
    log_format: str = "json",
) -> None:
    """Configure structured logging for a process.

    Parameters
    - service_name: Bound as ``service`` on every line
    - log_level: ``DEBUG``, ``INFO``, ``WARNING``, ``ERROR`` (case-insensitive)
    - log_format: ``json`` or ``console``

    Raises ``ValueError`` for an unknown level or format, so a typo in
    ``RECORDS_LOG_LEVEL`` fails at startup rather than silently.
    """
    level = _resolve_level(log_level)
    if log_format not in LOG_FORMATS:
        raise ValueError(f"Unknown log format: {log_format!r} (expected one of {', '.join(LOG_FORMATS)})")

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level)
    logging.getLogger("bizrecords").setLevel(level)

    renderer = structlog.processors.JSONRenderer() if log_format == "json" else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            add_logger_name,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(service=service_name)


def get_logger(name: str) -> Any:
    """Logger for a ``bizrecords`` module, e.g. ``get_logger("repository.memory")``."""
    return structlog.get_logger(f"bizrecords.{name}")


class ServiceLogger:
    """Logger with fixed key/value context, e.g. the entity a repository serves.

    ``bind`` returns a new instance; the original keeps its context.
    """

    def __init__(self, name: str, **context: Any):
        self.name = name
        self.context = context
        self.logger = get_logger(name).bind(**context)

    def bind(self, **kwargs: Any) -> "ServiceLogger":
        return ServiceLogger(self.name, **{**self.context, **kwargs})

    def debug(self, message: str, **kwargs: Any) -> None:
        self.logger.debug(message, **kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self.logger.info(message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self.logger.warning(message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self.logger.error(message, **kwargs)
