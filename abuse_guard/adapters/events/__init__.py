"""Security event logger adapters."""

from abuse_guard.adapters.events.base import AbstractEventLogger, SecurityEvent
from abuse_guard.adapters.events.in_memory import InMemoryEventLogger
from abuse_guard.adapters.events.logging_logger import LoggingEventLogger

__all__ = [
    "AbstractEventLogger",
    "InMemoryEventLogger",
    "LoggingEventLogger",
    "SecurityEvent",
]
