"""Bounded in-memory event logger.

Keeps the most recent events in process so tests and embedding code can
inspect the audit trail. Oldest events are discarded once ``max_events`` is
reached.
"""

from __future__ import annotations

import threading
from collections import deque
from typing import Any, Mapping

from abuse_guard.adapters.events.base import (
    LEVEL_ORDER,
    AbstractEventLogger,
    EventLevel,
    SecurityEvent,
)


class InMemoryEventLogger(AbstractEventLogger):
    """Record events in a ring buffer."""

    def __init__(self, *, max_events: int = 1000, min_level: EventLevel = "info") -> None:
        super().__init__(min_level=min_level)
        self._events: deque[SecurityEvent] = deque(maxlen=max_events)
        self._lock = threading.Lock()

    def log(
        self,
        level: EventLevel,
        event_type: str,
        message: str,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        if not self.is_enabled(level):
            return

        event = SecurityEvent(
            level=level,
            event_type=event_type,
            message=message,
            details=dict(details or {}),
        )
        with self._lock:
            self._events.append(event)

    def get_events(
        self,
        *,
        event_type: str | None = None,
        min_level: EventLevel | None = None,
        limit: int = 100,
    ) -> list[SecurityEvent]:
        """Return the newest matching events first.

        Args:
            event_type: Only events of this type.
            min_level: Only events at or above this level.
            limit: Maximum number of events returned.
        """

        with self._lock:
            events = list(self._events)

        matched: list[SecurityEvent] = []
        for event in reversed(events):
            if event_type is not None and event.event_type != event_type:
                continue
            if min_level is not None and LEVEL_ORDER[event.level] < LEVEL_ORDER[min_level]:
                continue
            matched.append(event)
            if len(matched) >= limit:
                break
        return matched

    def clear(self) -> None:
        with self._lock:
            self._events.clear()
