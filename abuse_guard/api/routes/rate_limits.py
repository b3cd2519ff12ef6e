"""Admin endpoints for inspecting and managing rate limits."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Response, status

from abuse_guard.core.auth import verify_api_key
from abuse_guard.core.rate_limit import get_rate_limit_engine
from abuse_guard.schemas.rate_limit import (
    GlobalRateLimitStats,
    RateLimitSettings,
    RateLimitSettingsUpdate,
    RateLimitStats,
)
from abuse_guard.services.rate_limiter import RateLimitEngine

router = APIRouter(
    prefix="/rate-limits",
    tags=["Rate limits"],
    dependencies=[Depends(verify_api_key)],
)

EngineDep = Annotated[RateLimitEngine, Depends(get_rate_limit_engine)]


@router.get("/stats", response_model=GlobalRateLimitStats)
def global_stats(engine: EngineDep) -> GlobalRateLimitStats:
    """Aggregate counters, blocks and violations across all clients."""

    return engine.global_stats()


@router.get("/{action}", response_model=RateLimitSettings)
def get_action_settings(action: str, engine: EngineDep) -> RateLimitSettings:
    """Effective settings for an action (override merged over defaults)."""

    return engine.get_action_settings(action)


@router.put("/{action}", response_model=RateLimitSettings)
def update_action_settings(
    action: str,
    update: RateLimitSettingsUpdate,
    engine: EngineDep,
) -> RateLimitSettings:
    """Persist a partial override; omitted fields keep their defaults."""

    return engine.set_action_limits(action, update.model_dump(exclude_unset=True))


@router.get("/{action}/clients/{identifier}", response_model=RateLimitStats)
def client_stats(action: str, identifier: str, engine: EngineDep) -> RateLimitStats:
    """Read-only view of one client's counter, blocks and violations."""

    return engine.stats(action, identifier)


@router.delete(
    "/{action}/clients/{identifier}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
)
def reset_client(action: str, identifier: str, engine: EngineDep) -> Response:
    """Clear a client's history for an action, lifting any block."""

    engine.reset(action, identifier)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
