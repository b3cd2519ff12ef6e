from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from abuse_guard.core.rate_limit import get_rate_limit_engine
from abuse_guard.services.rate_limiter import RateLimitEngine

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(
    engine: Annotated[RateLimitEngine, Depends(get_rate_limit_engine)],
) -> dict:
    """Liveness check reporting the store backend and its reachability.

    The endpoint stays 200 when the store is down: the guard fails open or
    closed per action, so the service itself is still alive.
    """

    store = engine.store
    return {
        "status": "ok",
        "store": {"backend": store.backend_name, "reachable": store.ping()},
    }
