"""Structured logging setup and the telemetry sink contract."""

from __future__ import annotations

import logging
from typing import Any, Protocol

from rich.logging import RichHandler

_RESERVED_ATTRS = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {"message", "asctime", "taskName"}


class Telemetry(Protocol):
    """Reports operational events of the running session."""

    def emit(self, event_name: str, payload: dict[str, Any]) -> None:
        """Publish telemetry event to the configured sink."""


class LoggingTelemetry:
    """Telemetry sink that writes events to a logger."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger("mc_miner.telemetry")

    def emit(self, event_name: str, payload: dict[str, Any]) -> None:
        self._logger.debug(event_name, extra=payload)


class StructuredFormatter(logging.Formatter):
    """Appends ``extra`` fields of event-style log calls as ``key=value`` pairs."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        fields = {key: value for key, value in record.__dict__.items() if key not in _RESERVED_ATTRS}
        if not fields:
            return message
        return message + " " + " ".join(f"{key}={value!r}" for key, value in fields.items())


def configure_logging(level: str = "INFO") -> None:
    handler = RichHandler(rich_tracebacks=True, show_path=False)
    handler.setFormatter(StructuredFormatter("%(message)s", datefmt="[%X]"))
    logging.basicConfig(level=level.upper(), handlers=[handler], force=True)
