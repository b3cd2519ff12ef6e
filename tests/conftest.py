"""Pytest configuration and fixtures shared across all test modules.

Environment defaults are set before anything imports ``abuse_guard.core.config``
so the module-level settings instance is built with test values.
"""

import os

# CRITICAL: Set these before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("GUARD_SECRET_SALT", "test-salt")
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("APP_API_KEY_REQUIRED", "true")
os.environ.setdefault("APP_API_KEYS", "test-admin-key,other-admin-key")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest

from abuse_guard.adapters.events.in_memory import InMemoryEventLogger
from abuse_guard.adapters.store.in_memory import InMemoryTTLStore
from abuse_guard.schemas.rate_limit import RateLimitSettings
from abuse_guard.services.identifier import IdentifierResolver
from abuse_guard.services.rate_limiter import RateLimitEngine


class FakeClock:
    """Deterministic clock shared by the store and the engine."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


class SleepRecorder:
    """Stand-in for ``time.sleep`` that records requested delays."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def store(clock: FakeClock) -> InMemoryTTLStore:
    return InMemoryTTLStore(max_entries=None, clock=clock)


@pytest.fixture
def events() -> InMemoryEventLogger:
    return InMemoryEventLogger()


@pytest.fixture
def engine(
    store: InMemoryTTLStore,
    events: InMemoryEventLogger,
    clock: FakeClock,
    sleeper: SleepRecorder,
) -> RateLimitEngine:
    return RateLimitEngine(
        store,
        events,
        resolver=IdentifierResolver("test-salt"),
        defaults=RateLimitSettings(),
        clock=clock,
        monotonic=clock,
        sleeper=sleeper,
    )


@pytest.fixture
def login_settings() -> dict:
    return {"window": 60, "limit": 3, "block_duration": 10, "progressive_delay": False}
