"""
Structured logging for minorm.

Every module logs through ``get_logger(__name__)``; applications call
``configure_logging`` once at startup. Transaction scopes bind ``tx_id`` and
repository dispatch binds ``repository`` and ``method`` with
:class:`LogContext`, so a statement event carries where it came from.

Architecture:
    ::

        configure_logging(level="INFO", json_format=None)
            │
            ▼
        processor chain:
          1. TimeStamper(fmt="iso")   (optional)
          2. merge_contextvars        tx_id, repository, method
          3. add_log_level / logger name / exc_info
          4. _add_service_metadata
          5. _shorten_sql             statements longer than MAX_SQL_LENGTH
          6. _elasticsearch_compatible (JSON only)
          7. JSONRenderer | ConsoleRenderer

Examples:
    >>> from minorm.logging import configure_logging, get_logger
    >>> configure_logging(level="DEBUG", json_format=False)
    >>> logger = get_logger(__name__)
    >>> logger.debug("sql_executed", sql="SELECT * FROM PERSON")

Tags:
    logging, structlog, observability, minorm
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

MAX_SQL_LENGTH = 500

# Store service name for metadata
_SERVICE_NAME = "minorm"


def _add_service_metadata(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    event_dict.setdefault("service.name", _SERVICE_NAME)
    return event_dict


def _shorten_sql(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Cut generated statements down to :data:`MAX_SQL_LENGTH` characters."""
    sql = event_dict.get("sql")
    if isinstance(sql, str) and len(sql) > MAX_SQL_LENGTH:
        event_dict["sql"] = sql[:MAX_SQL_LENGTH] + "..."
        event_dict["sql_length"] = len(sql)
    return event_dict


def _elasticsearch_compatible(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Rename ``timestamp`` and ``level`` to their ECS field names."""
    for field, ecs_field in (("timestamp", "@timestamp"), ("level", "log.level")):
        if field in event_dict:
            event_dict[ecs_field] = event_dict.pop(field)
    return event_dict


def _processors(json_format: bool, add_timestamp: bool) -> list[Processor]:
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        _add_service_metadata,
        _shorten_sql,
    ]
    if add_timestamp:
        processors.insert(0, structlog.processors.TimeStamper(fmt="iso"))
    if json_format:
        processors += [_elasticsearch_compatible, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    return processors


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "minorm",
    add_timestamp: bool = True,
) -> None:
    """Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: True for JSON, False for console, None for auto (JSON if not tty)
        service: Service name to include in logs
        add_timestamp: Include ISO timestamp in logs
    """
    global _SERVICE_NAME
    _SERVICE_NAME = service

    if json_format is None:
        json_format = not sys.stdout.isatty()
    numeric_level = getattr(logging, level.upper())

    structlog.configure(
        processors=_processors(json_format, add_timestamp),
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)


def get_logger(name: str | None = None) -> Any:
    """Get a structured logger (usually ``get_logger(__name__)``)."""
    return structlog.get_logger(name)


def clear_context() -> None:
    """Drop everything bound in the current execution context."""
    structlog.contextvars.clear_contextvars()


class LogContext:
    """Bind log fields for the duration of a ``with`` block.

    On exit every key goes back to the value it had before the block, so
    scopes nest: a repository called from inside another repository's
    interceptor restores the outer ``repository`` and ``method``.

    Example:
        with LogContext(repository="PersonRepository", method="find_all"):
            logger.debug("sql_executed", sql=sql)
    """

    def __init__(self, **kwargs: Any):
        self._context = kwargs
        self._tokens: dict[str, Any] = {}

    def __enter__(self) -> LogContext:
        self._tokens = structlog.contextvars.bind_contextvars(**self._context)
        return self

    def __exit__(self, *args: Any) -> None:
        structlog.contextvars.reset_contextvars(**self._tokens)
        self._tokens = {}


__all__ = [
    "MAX_SQL_LENGTH",
    "configure_logging",
    "get_logger",
    "clear_context",
    "LogContext",
]
