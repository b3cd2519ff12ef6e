"""Tests for security event logger adapters."""

from __future__ import annotations

import logging

import pytest

from abuse_guard.adapters.events.in_memory import InMemoryEventLogger
from abuse_guard.adapters.events.logging_logger import LoggingEventLogger


class TestInMemoryEventLogger:
    def test_records_events_newest_first(self) -> None:
        events = InMemoryEventLogger()
        events.info("first", "one")
        events.warning("second", "two", {"n": 2})

        recorded = events.get_events()

        assert [e.event_type for e in recorded] == ["second", "first"]
        assert recorded[0].details == {"n": 2}
        assert recorded[0].level == "warning"

    def test_min_level_drops_lower_events(self) -> None:
        events = InMemoryEventLogger(min_level="warning")
        events.info("ignored", "x")
        events.error("kept", "y")

        assert [e.event_type for e in events.get_events()] == ["kept"]

    def test_filters_and_limit(self) -> None:
        events = InMemoryEventLogger()
        for i in range(5):
            events.warning("rate_limit_exceeded", f"n{i}")
        events.critical("rate_limit_escalation", "boom")

        assert len(events.get_events(event_type="rate_limit_exceeded", limit=3)) == 3
        assert [e.event_type for e in events.get_events(min_level="critical")] == [
            "rate_limit_escalation"
        ]

    def test_ring_buffer_is_bounded(self) -> None:
        events = InMemoryEventLogger(max_events=2)
        for i in range(3):
            events.info(f"e{i}", "x")

        assert [e.event_type for e in events.get_events()] == ["e2", "e1"]

    def test_unknown_min_level_rejected(self) -> None:
        with pytest.raises(ValueError):
            InMemoryEventLogger(min_level="verbose")  # type: ignore[arg-type]


class TestLoggingEventLogger:
    def test_emits_structured_record(self, caplog: pytest.LogCaptureFixture) -> None:
        events = LoggingEventLogger(logger_name="test.security")

        with caplog.at_level(logging.INFO, logger="test.security"):
            events.warning("rate_limit_exceeded", "Rate limit exceeded", {"limit": 3})

        (record,) = caplog.records
        assert record.levelno == logging.WARNING
        assert record.getMessage() == "rate_limit_exceeded"
        assert record.event_type == "rate_limit_exceeded"
        assert record.event_message == "Rate limit exceeded"
        assert record.details == {"limit": 3}

    def test_respects_min_level(self, caplog: pytest.LogCaptureFixture) -> None:
        events = LoggingEventLogger(logger_name="test.security.min", min_level="error")

        with caplog.at_level(logging.INFO, logger="test.security.min"):
            events.info("rate_limit_reset", "reset")
            events.warning("rate_limit_blocked", "blocked")

        assert caplog.records == []
