"""
Structured logging for tablespine.

Thin structlog configuration shared by every module. Modules obtain a logger
with ``get_logger(__name__)`` and log dotted event names with key/value
context::

    logger.info("transaction.execute", actions=3, table="app-table")

Configuration Flow:
    ::

        configure_logging(level="INFO", json_format=True, service="orders-api")
            ↓
        structlog processor chain:
          1. TimeStamper (iso)
          2. merge_contextvars / add_log_level / add_logger_name
          3. service metadata
          4. ECS field renaming (JSON only)
          5. JSONRenderer or ConsoleRenderer

Tags:
    logging, structlog, observability, tablespine
"""

from __future__ import annotations

import contextvars
import logging
import sys
from collections.abc import Mapping
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

# Service name stamped on every event
_SERVICE_NAME = "tablespine"


def _add_service_metadata(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add service-level metadata to all logs."""
    event_dict.setdefault("service.name", _SERVICE_NAME)
    return event_dict


def _elasticsearch_compatible(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Make field names Elasticsearch/ECS compatible."""
    if "timestamp" in event_dict:
        event_dict["@timestamp"] = event_dict.pop("timestamp")
    if "level" in event_dict:
        event_dict["log.level"] = event_dict.pop("level")
    return event_dict


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "tablespine",
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

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        _add_service_metadata,
    ]

    if add_timestamp:
        shared_processors.insert(0, structlog.processors.TimeStamper(fmt="iso"))

    if json_format:
        shared_processors.append(_elasticsearch_compatible)
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper()),
    )


def get_logger(name: str | None = None) -> Any:
    """Get a structured logger (usually ``get_logger(__name__)``)."""
    return structlog.get_logger(name)


class LogContext:
    """Scope context vars (``operation``, ``entity``, ...) to a block.

    Every event logged inside the block, including those of the store and the
    fan-out, carries the bound keys. Leaving the block restores whatever the
    keys held before, so nested scopes (a delete staging its partition query)
    hand control back to the outer operation's context.

    Example:
        async with LogContext(operation="delete", entity="Customer"):
            logger.info("delete.staged", actions=4)
    """

    def __init__(self, **kwargs: Any):
        self._context = kwargs
        self._tokens: list[Mapping[str, contextvars.Token[Any]]] = []

    def _bind(self) -> None:
        self._tokens.append(structlog.contextvars.bind_contextvars(**self._context))

    def _reset(self) -> None:
        structlog.contextvars.reset_contextvars(**self._tokens.pop())

    def __enter__(self) -> LogContext:
        self._bind()
        return self

    def __exit__(self, *args: Any) -> None:
        self._reset()

    async def __aenter__(self) -> LogContext:
        self._bind()
        return self

    async def __aexit__(self, *args: Any) -> None:
        self._reset()


__all__ = [
    "configure_logging",
    "get_logger",
    "LogContext",
]
