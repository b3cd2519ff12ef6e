"""Pydantic schemas for rate limit settings and statistics."""

from __future__ import annotations

from typing import Any, Dict, Literal, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from abuse_guard.core.errors import ConfigurationAppError

FailMode = Literal["open", "closed"]


class RateLimitSettings(BaseModel):
    """Effective limits for one protected action.

    Durations are whole seconds. Unknown keys are rejected so typos in
    overrides surface as configuration errors instead of being ignored.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    window: int = Field(60, gt=0, description="Counting window in seconds.")
    limit: int = Field(10, gt=0, description="Requests allowed per window.")
    block_duration: int = Field(
        300, gt=0, description="Base block length in seconds once the limit is exceeded."
    )
    progressive_delay: bool = Field(
        True, description="Delay requests once 80% of the limit is used."
    )
    fail_mode: FailMode = Field(
        "open",
        description="Let requests through (open) or reject them (closed) when the store is down.",
    )

    @classmethod
    def build(cls, base: "RateLimitSettings | None" = None, **overrides: Any) -> "RateLimitSettings":
        """Merge ``overrides`` over ``base`` and validate the result.

        Raises:
            ConfigurationAppError: If the merged settings are invalid.
        """

        data: dict[str, Any] = base.model_dump() if base is not None else {}
        data.update(overrides)
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            errors = [
                {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                for err in exc.errors()
            ]
            raise ConfigurationAppError(
                code="invalid_rate_limit_settings",
                message="Invalid rate limit settings: "
                + "; ".join(f"{e['field']}: {e['message']}" for e in errors),
                details={"errors": errors},
            ) from exc

    @classmethod
    def merge(
        cls, base: "RateLimitSettings", overrides: Mapping[str, Any] | None
    ) -> "RateLimitSettings":
        if not overrides:
            return base
        return cls.build(base, **dict(overrides))


class RateLimitSettingsUpdate(BaseModel):
    """Partial settings override accepted by the admin API.

    Range checks happen in the engine so they are reported as configuration
    errors with the same shape everywhere.
    """

    model_config = ConfigDict(extra="forbid")

    window: int | None = None
    limit: int | None = None
    block_duration: int | None = None
    progressive_delay: bool | None = None
    fail_mode: str | None = None


class RateLimitStats(BaseModel):
    """Read-only snapshot of one client's state for an action."""

    action: str
    identifier_hash: str = Field(..., description="SHA-256 of the client identifier.")
    current_count: int
    limit: int
    is_blocked: bool = Field(..., description="True when a block or extended block is active.")
    is_escalated: bool = Field(..., description="True when an extended block is active.")
    violations: int = Field(..., description="Limit violations in the rolling 24h period.")
    remaining_requests: int
    reset_time: int = Field(..., description="UNIX epoch seconds; now + window.")


class GlobalRateLimitStats(BaseModel):
    """Aggregate view over every live rate limit key."""

    active_limits: int = Field(..., description="Live request counters.")
    blocked_clients: int
    escalated_clients: int
    total_violations: int
    top_actions: Dict[str, int] = Field(
        default_factory=dict,
        description="Up to five actions with the most live counters.",
    )
