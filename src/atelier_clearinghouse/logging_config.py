"""Structured logging configuration using structlog.

JSON lines outside development, colored console output in development. The
HTTP middleware binds ``request_id`` and the scheduler binds ``job``, so
every entry produced while handling a request or a timer can be grouped.

Event names are dotted ``<area>.<what_happened>``:

    logger = get_logger(__name__)
    logger.info("order.settled", order_id=str(order.id), platform_fee=fee.platform_fee)
"""

from __future__ import annotations

import logging
import sys
import uuid
from decimal import Decimal
from typing import Any, TextIO

import structlog

QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "apscheduler", "asyncio")


def _stringify_values(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Render money amounts and ids as plain strings.

    The JSON renderer would otherwise fall back to ``repr`` and log
    ``Decimal('6300.00')``.
    """
    for key, value in event_dict.items():
        if isinstance(value, (Decimal, uuid.UUID)):
            event_dict[key] = str(value)
    return event_dict


def setup_logging(
    log_level: str = "DEBUG",
    json_logs: bool = False,
    stream: TextIO | None = None,
) -> None:
    """Route structlog and stdlib logging through one handler.

    Args:
        log_level: Root level name (DEBUG, INFO, WARNING...). Unknown names
            fall back to DEBUG.
        json_logs: JSON lines when True, colored console otherwise.
        stream: Destination, stdout by default.
    """
    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _stringify_values,
        structlog.processors.StackInfoRenderer(),
    ]

    renderer: structlog.types.Processor
    if json_logs:
        pre_chain.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=stream is None)

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging.getLevelName(log_level.upper()) if _known(log_level) else logging.DEBUG)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def _known(level: str) -> bool:
    return isinstance(logging.getLevelName(level.upper()), int)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger bound to ``name``."""
    return structlog.get_logger(name)
