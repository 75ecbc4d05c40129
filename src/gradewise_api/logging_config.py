"""Structured logging setup."""

import logging
import sys

import structlog

from gradewise_api.config import settings

logger = structlog.get_logger()


def configure_logging(level: str | None = None, json_logs: bool | None = None) -> None:
    """Configure structlog and the stdlib root logger.

    Console rendering in development, JSON lines otherwise (or when
    ``LOG_JSON`` is set).
    """
    level = (level or settings.LOG_LEVEL).upper()
    if json_logs is None:
        json_logs = settings.LOG_JSON or settings.ENVIRONMENT == "production"

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[*shared_processors, renderer],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level)
        ),
        logger_factory=structlog.PrintLoggerFactory(sys.stdout),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)


def log_webhook_event(event: str | None, repo: str, status: str, message: str = "", **fields) -> None:
    """Log one step of a webhook's lifecycle.

    ``status`` is one of received, skipped, processing, info, success or
    error; errors log at error level, skips and unauthenticated deliveries
    at warning or info.
    """
    kwargs = {"webhook_event": event or "unknown", "repo": repo, "status": status, **fields}
    if status == "error":
        logger.error(message, **kwargs)
    elif status == "warning":
        logger.warning(message, **kwargs)
    else:
        logger.info(message, **kwargs)
