"""Structured logging for the sheet engine.

Example:
    >>> from sheetbuilder.engine.logging import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.debug("Computed prop", prop="str_mod")
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING

import structlog
from structlog.types import Processor

from .config import get_settings

if TYPE_CHECKING:
    from structlog.types import EventDict
    from structlog.types import WrappedLogger


def add_app_context(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    event_dict["app"] = "sheetbuilder"
    return event_dict


def configure_logging(
    *,
    level: str | None = None,
    json_format: bool | None = None,
) -> None:
    """Configure engine-wide logging.

    Args:
        level: The logging level. Defaults to the configured `log_level` setting.
        json_format: If True, output logs as JSON. Defaults to the `log_json` setting.
    """
    settings = get_settings()
    level = (level or settings.log_level).upper()
    if json_format is None:
        json_format = settings.log_json
    numeric_level = getattr(logging, level, logging.INFO)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        add_app_context,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_format:
        processors: list[Processor] = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(
                colors=sys.stderr.isatty(),
                exception_formatter=structlog.dev.plain_traceback,
            ),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.typing.FilteringBoundLogger:
    """Return a logger, configuring logging from settings if nothing else has."""
    if not structlog.is_configured():
        configure_logging()
    return structlog.get_logger(name)


def bind_context(**kwargs) -> None:
    """Bind values (e.g. the actor being resolved) to every subsequent log event."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
