"""Structured logging for the statement parsers.

JSON lines in production, colorized console output while developing.
Parsers log snake_case events with key/value context and never log file
contents:

    logger = structlog.get_logger(__name__)
    logger.info("tabular_parse_complete", profile="gtbank", transactions=42)
"""

import logging
import sys

import structlog

# Third-party loggers that are chatty at INFO (httpx logs every request line)
NOISY_LOGGERS = ("httpx", "httpcore")


def _shared_processors() -> list:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def setup_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """Configure structlog on top of stdlib logging.

    Args:
        log_level: Level name (DEBUG, INFO, WARNING, ERROR).
        json_output: JSON renderer when True, console renderer otherwise.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=_shared_processors() + [renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def setup_logging_from_settings(settings) -> None:
    """Configure logging from a loaded Settings instance."""
    setup_logging(log_level=settings.LOG_LEVEL, json_output=settings.json_logs)
