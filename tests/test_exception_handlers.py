"""Tests for the global exception handlers.

Every AppError subclass maps to one HTTP status and the same JSON envelope;
anything else becomes a generic 500 without internals.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from abuse_guard.core.errors import (
    AppError,
    AuthenticationAppError,
    ConfigurationAppError,
    StoreUnavailableAppError,
)
from abuse_guard.core.exception_handlers import general_exception_handler, setup_exception_handlers


@pytest.fixture
def app() -> FastAPI:
    app = FastAPI()
    setup_exception_handlers(app)

    @app.get("/config")
    async def config_error():
        raise ConfigurationAppError(
            code="invalid_rate_limit_settings",
            message="Invalid rate limit settings: limit: must be > 0",
            details={"errors": [{"field": "limit", "message": "must be > 0"}]},
        )

    @app.get("/auth")
    async def auth_error():
        raise AuthenticationAppError(code="invalid_api_key", message="Invalid or missing API key")

    @app.get("/store")
    async def store_error():
        raise StoreUnavailableAppError(code="store_unavailable", message="Rate limit store unavailable")

    return app


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)


@pytest.mark.parametrize(
    ("path", "status_code", "code"),
    [
        ("/config", 400, "invalid_rate_limit_settings"),
        ("/auth", 403, "invalid_api_key"),
        ("/store", 503, "store_unavailable"),
    ],
)
def test_app_errors_map_to_status(client: TestClient, path: str, status_code: int, code: str) -> None:
    resp = client.get(path)

    assert resp.status_code == status_code
    error = resp.json()["error"]
    assert error["code"] == code
    assert error["message"]
    assert "request_id" in error


def test_details_are_included_when_present(client: TestClient) -> None:
    details = client.get("/config").json()["error"]["details"]

    assert details == {"errors": [{"field": "limit", "message": "must be > 0"}]}


def test_details_omitted_when_empty(client: TestClient) -> None:
    assert "details" not in client.get("/auth").json()["error"]


def test_store_unavailable_suggests_retry(client: TestClient) -> None:
    resp = client.get("/store")

    assert resp.headers["Retry-After"] == "5"


def test_unexpected_errors_do_not_leak() -> None:
    request = AsyncMock()
    request.url.path = "/v1/rate-limits/stats"
    request.method = "GET"

    response = asyncio.run(general_exception_handler(request, RuntimeError("redis://secret@host")))

    data = json.loads(bytes(response.body).decode())
    assert response.status_code == 500
    assert data["error"]["code"] == "internal_server_error"
    assert "secret" not in json.dumps(data)
    assert "RuntimeError" not in json.dumps(data)


def test_handlers_registered(app: FastAPI) -> None:
    assert AppError in app.exception_handlers
    assert Exception in app.exception_handlers
