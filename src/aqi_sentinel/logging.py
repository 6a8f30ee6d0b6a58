"""Structured logging setup for aqi-sentinel.

structlog renders JSON when stdout is not a terminal and a readable console
format when it is. Logs from httpx, werkzeug and other libraries go through
the same formatter via stdlib logging.
"""

import logging
import sys
from typing import cast

import structlog

# Libraries that log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "werkzeug", "schedule")


def configure_logging(service_name: str = "aqi-sentinel", level: str = "INFO") -> None:
    """Configure structured logging for the service.

    Args:
        service_name: Bound to every log entry as 'service'
        level: Log level ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL');
            unknown names fall back to INFO
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    is_tty = sys.stdout.isatty()

    # Run for structlog events and for stdlib records alike
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    structlog.configure(
        processors=shared_processors
        + [
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    renderer: structlog.types.Processor = (
        structlog.dev.ConsoleRenderer() if is_tty else structlog.processors.JSONRenderer()
    )
    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processor=renderer,
    )

    # A single root handler, so repeated calls don't duplicate output
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    root_logger = logging.getLogger()
    if root_logger.hasHandlers():
        root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    if log_level > logging.DEBUG:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    structlog.contextvars.bind_contextvars(service=service_name)


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Get a logger, usually with the calling module's __name__."""
    return cast(structlog.BoundLogger, structlog.get_logger(name))
