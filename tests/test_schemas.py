"""Tests for rate limit settings validation and merging."""

import pytest

from abuse_guard.core.errors import ConfigurationAppError
from abuse_guard.schemas.rate_limit import RateLimitSettings


def test_defaults_match_documented_values() -> None:
    settings = RateLimitSettings()

    assert settings.window == 60
    assert settings.limit == 10
    assert settings.block_duration == 300
    assert settings.progressive_delay is True
    assert settings.fail_mode == "open"


def test_build_merges_over_base() -> None:
    base = RateLimitSettings(limit=20, fail_mode="closed")

    merged = RateLimitSettings.build(base, window=30)

    assert merged.window == 30
    assert merged.limit == 20
    assert merged.fail_mode == "closed"


def test_merge_without_overrides_returns_base() -> None:
    base = RateLimitSettings(limit=20)

    assert RateLimitSettings.merge(base, None) is base
    assert RateLimitSettings.merge(base, {}) is base


def test_invalid_values_raise_configuration_error() -> None:
    with pytest.raises(ConfigurationAppError) as exc_info:
        RateLimitSettings.build(limit=0, window=-5)

    fields = {e["field"] for e in exc_info.value.details["errors"]}
    assert fields == {"limit", "window"}


def test_settings_are_immutable() -> None:
    settings = RateLimitSettings()

    with pytest.raises(Exception):
        settings.limit = 5  # type: ignore[misc]
