"""Structured logging configuration."""

import sys
import structlog
import logging
from pathlib import Path
from core.config import Settings

# Third-party loggers that are too chatty at INFO.
QUIET_LOGGERS = (
    "apscheduler",
    "apscheduler.scheduler",
    "apscheduler.executors.default",
    "aiosqlite",
    "httpx",
    "sqlalchemy.engine",
    "sqlalchemy.dialects",
    "sqlalchemy.pool",
)


def configure_logging(settings: Settings) -> None:
    """Configure structured logging based on settings."""
    level = getattr(logging, settings.log_level.upper())
    handlers = [logging.StreamHandler(sys.stdout)]

    if settings.log_file:
        log_path = Path(settings.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))

    for handler in handlers:
        handler.setLevel(level)

    logging.basicConfig(level=level, handlers=handlers, format="%(message)s", force=True)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.log_format == "json":
        processors.insert(0, structlog.processors.TimeStamper(fmt="iso"))
        processors.insert(0, structlog.stdlib.add_logger_name)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.insert(0, structlog.processors.TimeStamper(fmt="%H:%M:%S"))
        processors.append(structlog.dev.ConsoleRenderer(
            colors=False,
            pad_event=35,
            exception_formatter=structlog.dev.plain_traceback
        ))

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def log_execution_time(logger: structlog.BoundLogger, operation: str,
                       start_time: float, end_time: float, **kwargs) -> None:
    """Log execution time with additional context."""
    logger.info(
        "Operation completed",
        operation=operation,
        duration_ms=round((end_time - start_time) * 1000, 2),
        **kwargs
    )
