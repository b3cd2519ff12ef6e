"""Unit tests for admin API key authentication."""

from unittest.mock import patch

import pytest
from fastapi import HTTPException

from abuse_guard.core.auth import parse_api_keys, validate_api_key, verify_api_key
from abuse_guard.core.errors import AuthenticationAppError


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("admin", {"admin"}),
        ("a,b,c", {"a", "b", "c"}),
        (" a , b  ,c ", {"a", "b", "c"}),
        ("a,b,a", {"a", "b"}),
        (None, set()),
        ("", set()),
        (" , ,", set()),
    ],
)
def test_parse_api_keys(raw, expected) -> None:
    assert parse_api_keys(raw) == expected


@pytest.fixture
def auth_settings():
    with patch("abuse_guard.core.auth.settings") as mock_settings:
        mock_settings.app.api_key_required = True
        mock_settings.app.api_keys = "ops-key, oncall-key"
        yield mock_settings


class TestValidateAPIKey:
    def test_anything_passes_when_auth_disabled(self, auth_settings) -> None:
        auth_settings.app.api_key_required = False

        validate_api_key("whatever")
        validate_api_key("")

    @pytest.mark.parametrize("configured", [None, "", " , "])
    def test_no_configured_keys(self, auth_settings, configured) -> None:
        auth_settings.app.api_keys = configured

        with pytest.raises(AuthenticationAppError) as exc_info:
            validate_api_key("ops-key")

        assert exc_info.value.code == "api_keys_not_configured"
        assert "APP_API_KEYS" in exc_info.value.details["hint"]

    def test_configured_keys_are_trimmed(self, auth_settings) -> None:
        validate_api_key("ops-key")
        validate_api_key("oncall-key")

    @pytest.mark.parametrize("provided", ["wrong", "", " ops-key", "OPS-KEY"])
    def test_rejects_unknown_keys(self, auth_settings, provided) -> None:
        with pytest.raises(AuthenticationAppError) as exc_info:
            validate_api_key(provided)

        assert exc_info.value.code == "invalid_api_key"


class TestVerifyAPIKeyDependency:
    @pytest.mark.asyncio
    async def test_skipped_when_auth_disabled(self, auth_settings) -> None:
        auth_settings.app.api_key_required = False

        await verify_api_key(x_api_key=None)

    @pytest.mark.asyncio
    async def test_missing_header(self, auth_settings) -> None:
        with pytest.raises(HTTPException) as exc_info:
            await verify_api_key(x_api_key=None)

        assert exc_info.value.status_code == 403
        assert "X-API-Key" in exc_info.value.detail

    @pytest.mark.asyncio
    async def test_invalid_key(self, auth_settings) -> None:
        with pytest.raises(HTTPException) as exc_info:
            await verify_api_key(x_api_key="wrong")

        assert exc_info.value.status_code == 403
        assert exc_info.value.detail == "Invalid or missing API key"

    @pytest.mark.asyncio
    async def test_valid_key(self, auth_settings) -> None:
        await verify_api_key(x_api_key="oncall-key")
