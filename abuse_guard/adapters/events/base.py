"""Security event logger interface.

The engine records an audit trail (blocked requests, violations, escalations,
resets) through this interface. Implementations must not raise from
``log``; the engine additionally guards every call so a broken backend can
never turn into a failed request.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal, Mapping

EventLevel = Literal["info", "warning", "error", "critical"]

LEVEL_ORDER: dict[str, int] = {
    "info": 1,
    "warning": 2,
    "error": 3,
    "critical": 4,
}


@dataclass(frozen=True)
class SecurityEvent:
    """A single recorded security event."""

    level: EventLevel
    event_type: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class AbstractEventLogger(ABC):
    """Interface for security event sinks.

    Events below ``min_level`` are dropped.
    """

    def __init__(self, *, min_level: EventLevel = "info") -> None:
        if min_level not in LEVEL_ORDER:
            raise ValueError(f"unknown event level: {min_level}")
        self.min_level = min_level

    def is_enabled(self, level: str) -> bool:
        return LEVEL_ORDER.get(level, 0) >= LEVEL_ORDER[self.min_level]

    @abstractmethod
    def log(
        self,
        level: EventLevel,
        event_type: str,
        message: str,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        """Record an event.

        Args:
            level: Severity (info, warning, error, critical).
            event_type: Stable machine-readable event name.
            message: Human-readable description.
            details: Structured context; must not contain raw client data.
        """
        raise NotImplementedError

    def info(self, event_type: str, message: str, details: Mapping[str, Any] | None = None) -> None:
        self.log("info", event_type, message, details)

    def warning(self, event_type: str, message: str, details: Mapping[str, Any] | None = None) -> None:
        self.log("warning", event_type, message, details)

    def error(self, event_type: str, message: str, details: Mapping[str, Any] | None = None) -> None:
        self.log("error", event_type, message, details)

    def critical(self, event_type: str, message: str, details: Mapping[str, Any] | None = None) -> None:
        self.log("critical", event_type, message, details)
