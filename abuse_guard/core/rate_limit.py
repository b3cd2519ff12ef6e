"""Rate limiting dependency for FastAPI routes.

This module wires the rate limit engine into the HTTP layer.

Design goals:
- Minimal coupling: routes declare ``Depends(enforce_rate_limit("login"))``.
- Swap-friendly: the store backend is chosen by configuration.
- Non-blocking: ``engine.check`` (which may sleep for the progressive delay)
  runs in the threadpool, never on the event loop.

Client identity: IP from proxy headers or the socket, plus ``user_id`` and
``session_token`` when upstream authentication stored them on
``request.state``. Client-supplied headers are never trusted for either.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Mapping

from fastapi import HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool

from abuse_guard.adapters.events.logging_logger import LoggingEventLogger
from abuse_guard.adapters.store.factory import build_store
from abuse_guard.core.config import settings
from abuse_guard.core.errors import StoreUnavailableAppError
from abuse_guard.schemas.rate_limit import RateLimitSettings
from abuse_guard.services.identifier import (
    ClientInfo,
    IdentifierResolver,
    extract_client_ip,
    hash_identifier,
)
from abuse_guard.services.rate_limiter import RateLimitEngine, eviction_tier

logger = logging.getLogger(__name__)


_engine: RateLimitEngine | None = None
_engine_config: tuple[Any, ...] | None = None


def _current_engine_config() -> tuple[Any, ...]:
    return (
        settings.guard.model_dump_json(),
        settings.store.model_dump_json(),
        settings.log.security_level,
    )


def get_rate_limit_engine() -> RateLimitEngine:
    """Return a process-wide rate limit engine.

    The instance is cached in-module so the in-memory store keeps its state
    across requests. If configuration changes (primarily in tests), the
    engine is rebuilt.

    Returns:
        RateLimitEngine: Configured engine instance.
    """

    global _engine, _engine_config

    config = _current_engine_config()
    if _engine is not None and _engine_config == config:
        return _engine

    guard = settings.guard
    if "secret_salt" not in guard.model_fields_set:
        logger.warning(
            "rate_limit.ephemeral_salt",
            extra={"hint": "Set GUARD_SECRET_SALT so identifiers survive restarts"},
        )

    _engine = RateLimitEngine(
        build_store(settings.store, eviction_tier=eviction_tier),
        LoggingEventLogger(min_level=settings.log.security_level),
        resolver=IdentifierResolver(guard.secret_salt),
        defaults=RateLimitSettings(
            window=guard.default_window_seconds,
            limit=guard.default_limit,
            block_duration=guard.default_block_duration_seconds,
            progressive_delay=guard.default_progressive_delay,
            fail_mode=guard.default_fail_mode,
        ),
        escalation_threshold=guard.escalation_threshold,
        max_progressive_delay=guard.max_progressive_delay_seconds,
    )
    _engine_config = config
    return _engine


def build_client_info(request: Request) -> ClientInfo:
    """Collect identifying signals for the current request."""

    remote_addr = request.client.host if request.client else None
    return ClientInfo(
        ip=extract_client_ip(
            request.headers,
            remote_addr,
            trust_proxy_headers=settings.guard.trusted_proxy_headers,
        ),
        user_id=getattr(request.state, "user_id", None),
        session_token=getattr(request.state, "session_token", None),
    )


def _fail_mode(engine: RateLimitEngine, overrides: RateLimitSettings | Mapping[str, Any] | None) -> str:
    # The store is down, so persisted per-action settings cannot be consulted.
    if isinstance(overrides, RateLimitSettings):
        return overrides.fail_mode
    if overrides and "fail_mode" in overrides:
        return str(overrides["fail_mode"])
    return engine.defaults.fail_mode


def _rate_limit_headers(engine: RateLimitEngine, action: str, identifier: str, overrides: Any) -> dict[str, str]:
    stats = engine.stats(action, identifier)
    limit = engine.resolve_settings(action, overrides).limit
    return {
        "Retry-After": str(engine.retry_after(action, identifier, overrides)),
        "X-RateLimit-Limit": str(limit),
        "X-RateLimit-Remaining": str(max(0, limit - stats.current_count)),
        "X-RateLimit-Reset": str(stats.reset_time),
    }


def enforce_rate_limit(
    action: str,
    overrides: RateLimitSettings | Mapping[str, Any] | None = None,
    *,
    timeout_seconds: float | None = None,
) -> Callable[[Request], Awaitable[None]]:
    """Build a FastAPI dependency enforcing the limits of ``action``.

    Usage:
        @router.post("/login", dependencies=[Depends(enforce_rate_limit("login"))])
        async def login(): ...

    Args:
        action: Protected action name.
        overrides: Per-route settings merged over the action's settings.
        timeout_seconds: Request budget; the progressive delay never sleeps
            past it.

    Returns:
        An async dependency raising HTTP 429 when the request is denied.
    """

    async def _dependency(request: Request) -> None:
        if not settings.guard.enabled:
            return

        engine = get_rate_limit_engine()
        identifier = engine.resolve_identifier(build_client_info(request))
        identifier_hash = hash_identifier(identifier)[:16]
        deadline = engine.deadline_after(timeout_seconds) if timeout_seconds is not None else None

        try:
            allowed = await run_in_threadpool(
                engine.check, action, overrides, identifier, deadline=deadline
            )
        except StoreUnavailableAppError as exc:
            fail_mode = _fail_mode(engine, overrides)
            logger.error(
                "rate_limit.store_unavailable",
                extra={
                    "action": action,
                    "key_hash": identifier_hash,
                    "fail_mode": fail_mode,
                    "error_code": exc.code,
                },
            )
            if fail_mode == "open":
                return
            raise

        if allowed:
            return

        headers: dict[str, str] = {}
        if settings.guard.include_headers:
            try:
                headers = await run_in_threadpool(
                    _rate_limit_headers, engine, action, identifier, overrides
                )
            except StoreUnavailableAppError:
                logger.warning("rate_limit.headers_unavailable", extra={"action": action})

        logger.warning(
            "rate_limit.denied",
            extra={
                "action": action,
                "key_hash": identifier_hash,
                "retry_after_s": headers.get("Retry-After"),
            },
        )

        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Rate limit exceeded. Try again later.",
            headers=headers or None,
        )

    return _dependency
