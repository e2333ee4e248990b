"""Status reporting collaborator.

Workflows announce progress and outcomes through ``report(level, message)``.
Nothing they do depends on the return value; reporters are purely
informational. :class:`LogStatusReporter` routes reports to the project
logger and keeps a short history that tests and the HTTP API can read back.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Protocol

from saveport.core.settings import get_logger


class StatusLevel(StrEnum):
    """Severity of a user-facing status message."""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


_LOG_LEVELS: dict[StatusLevel, int] = {
    StatusLevel.INFO: logging.INFO,
    StatusLevel.SUCCESS: logging.INFO,
    StatusLevel.WARNING: logging.WARNING,
    StatusLevel.ERROR: logging.ERROR,
}


class StatusReporter(Protocol):
    """Anything that can display a status line."""

    def report(self, level: StatusLevel, message: str) -> None: ...


@dataclass(frozen=True, slots=True)
class StatusEvent:
    """One reported status line."""

    level: StatusLevel
    message: str
    at: datetime = field(default_factory=lambda: datetime.now(UTC))


class LogStatusReporter:
    """Log every report and remember the most recent ones."""

    def __init__(self, logger_name: str = "saveport.status", keep: int = 50) -> None:
        self._logger = get_logger(logger_name)
        self._history: deque[StatusEvent] = deque(maxlen=keep)

    def report(self, level: StatusLevel, message: str) -> None:
        self._history.append(StatusEvent(level=level, message=message))
        self._logger.log(_LOG_LEVELS[level], "[Save %s]: %s", level.value.capitalize(), message)

    @property
    def history(self) -> tuple[StatusEvent, ...]:
        return tuple(self._history)

    @property
    def last(self) -> StatusEvent | None:
        return self._history[-1] if self._history else None


__all__ = ["LogStatusReporter", "StatusEvent", "StatusLevel", "StatusReporter"]
