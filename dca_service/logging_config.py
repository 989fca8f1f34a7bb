"""Structured logging for the DCA scheduler service (structlog over stdlib logging).

Every line is an event name plus key/value fields. Context travels in
contextvars, so anything bound while a tick or a request runs shows up on
every line logged underneath it:

    with bound_context(tick=42):
        logger.info("purchase_due")   # ... tick=42 component=services.scheduler

The HTTP middleware binds request_id; the scheduler binds tick, then
schedule_id and wallet_address inside each purchase task.
"""

import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator

import structlog
from structlog.typing import EventDict, Processor

APP_NAME = "dca-scheduler-service"
PACKAGE_PREFIX = "dca_service."


def add_service_fields(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Tag the event with the service name and the emitting module."""
    event_dict["app"] = APP_NAME
    name = getattr(logger, "name", None)
    if name:
        # dca_service.services.scheduler -> services.scheduler
        event_dict["component"] = name.removeprefix(PACKAGE_PREFIX)
    return event_dict


def shorten_tx_hash(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    tx_hash = event_dict.get("tx_hash")
    if isinstance(tx_hash, str) and len(tx_hash) > 18:
        event_dict["tx_hash"] = f"{tx_hash[:10]}...{tx_hash[-6:]}"
    return event_dict


def _renderer(json_format: bool) -> Processor:
    if json_format:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(
        colors=sys.stdout.isatty(),
        exception_formatter=structlog.dev.plain_traceback,
    )


def configure_logging(log_level: str = "INFO", json_format: bool = True) -> None:
    """Route structlog through the stdlib root logger at the given level.

    Per-subscription due checks log at DEBUG on every tick; filter_by_level
    discards them before any processing unless the level is DEBUG.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        json_format: JSON lines if True, human-readable console output otherwise
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    logging.basicConfig(format="%(message)s", stream=sys.stdout)
    logging.getLogger().setLevel(level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.contextvars.merge_contextvars,
            add_service_fields,
            shorten_tx_hash,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _renderer(json_format),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind fields for the rest of the current task (or request)."""
    structlog.contextvars.bind_contextvars(**kwargs)


@contextmanager
def bound_context(**kwargs: Any) -> Iterator[None]:
    """Bind fields for the duration of a block, restoring the previous values after."""
    with structlog.contextvars.bound_contextvars(**kwargs):
        yield


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
