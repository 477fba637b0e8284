from __future__ import annotations

import logging
import sys
from dataclasses import asdict
from datetime import datetime
from typing import Literal, Protocol, TextIO

import structlog
from structlog.typing import EventDict

from callguard.circuit_breaker.state import BreakerSnapshot

_LOG_LEVELS: dict[str, int] = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


class StructuredLogger(Protocol):
    """Logger protocol for structured event logging with keyword fields."""

    def info(self, event: str, **kwargs: object) -> None:
        """Log an informational event."""

    def warning(self, event: str, **kwargs: object) -> None:
        """Log a warning event."""

    def exception(self, event: str, **kwargs: object) -> None:
        """Log an exception event with the active traceback."""


def get_log_level_value(level: str) -> int:
    """Return stdlib log level constant for a normalized level string."""
    normalized = level.strip().upper()
    try:
        return _LOG_LEVELS[normalized]
    except KeyError as error:
        choices = ", ".join(sorted(_LOG_LEVELS))
        raise ValueError(f"log_level must be one of: {choices}") from error


def _select_renderer(stream: TextIO) -> structlog.types.Processor:
    isatty = getattr(stream, "isatty", None)
    if isatty is not None and isatty():
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer()


def _build_snapshot_flattener(key: str = "breaker") -> structlog.types.Processor:
    """Expand a ``BreakerSnapshot`` under ``key`` into ``<key>_<field>`` entries.

    Fields already present on the event win over snapshot values.
    """

    def _flatten_breaker_snapshot(
        _: object,
        __: str,
        event_dict: EventDict,
    ) -> EventDict:
        snapshot = event_dict.get(key)
        if not isinstance(snapshot, BreakerSnapshot):
            return event_dict

        del event_dict[key]
        for field, value in asdict(snapshot).items():
            if isinstance(value, datetime):
                value = value.isoformat()
            event_dict.setdefault(f"{key}_{field}", value)
        return event_dict

    return _flatten_breaker_snapshot


def _log(
    logger: StructuredLogger,
    level: Literal["info", "warning", "exception"],
    event: str,
    **fields: object,
) -> None:
    getattr(logger, level)(event, **fields)


def log_info(logger: StructuredLogger, event: str, **fields: object) -> None:
    """Log an informational event."""
    _log(logger, "info", event, **fields)


def log_warning(logger: StructuredLogger, event: str, **fields: object) -> None:
    """Log a warning event."""
    _log(logger, "warning", event, **fields)


def log_exception(logger: StructuredLogger, event: str, **fields: object) -> None:
    """Log an error event carrying the exception currently being handled."""
    _log(logger, "exception", event, **fields)


def configure_structlog(
    *,
    log_level: str,
    stream: TextIO | None = None,
) -> structlog.stdlib.BoundLogger:
    """Route structlog through stdlib logging onto ``stream`` (stderr by default).

    Breaker snapshots passed as ``breaker=`` are flattened into scalar fields.
    Output is console-rendered on a TTY and JSON otherwise. Safe to call again
    to change the level or the stream.
    """
    level_value = get_log_level_value(log_level)
    target = sys.stderr if stream is None else stream
    timestamper = structlog.processors.TimeStamper(fmt="iso", utc=True)
    flatten_snapshot = _build_snapshot_flattener()

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            timestamper,
        ],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _select_renderer(target),
        ],
    )
    handler = logging.StreamHandler(target)
    handler.setFormatter(formatter)
    logging.basicConfig(
        format="%(message)s",
        handlers=[handler],
        level=level_value,
        force=True,
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.contextvars.merge_contextvars,
            flatten_snapshot,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            timestamper,
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )
    return structlog.stdlib.get_logger("callguard")
