"""Event logger backed by the standard library ``logging`` module.

Events become records on the ``abuse_guard.security`` logger, so they share
the JSON formatting, redaction and request correlation configured in
``abuse_guard.core.logging``.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from abuse_guard.adapters.events.base import AbstractEventLogger, EventLevel

_PY_LEVELS: dict[str, int] = {
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


class LoggingEventLogger(AbstractEventLogger):
    """Write security events as structured log records."""

    def __init__(
        self,
        *,
        logger_name: str = "abuse_guard.security",
        min_level: EventLevel = "info",
    ) -> None:
        super().__init__(min_level=min_level)
        self._logger = logging.getLogger(logger_name)

    def log(
        self,
        level: EventLevel,
        event_type: str,
        message: str,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        if not self.is_enabled(level):
            return

        # "message" is a reserved LogRecord attribute
        self._logger.log(
            _PY_LEVELS[level],
            event_type,
            extra={
                "event_type": event_type,
                "event_message": message,
                "details": dict(details or {}),
            },
        )
