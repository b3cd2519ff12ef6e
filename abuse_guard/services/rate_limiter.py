"""Rate limit decision engine.

Per ``(action, identifier)`` pair the engine keeps four keys in the TTL
store, all sharing the ``rate_limit_{action}_{identifier}`` prefix:

- the request counter (TTL = window, not restarted by increments)
- ``_blocked``: block flag, TTL grows with how far the limit was overshot
- ``_violations``: limit violations, TTL 24h from the first violation
- ``_extended_block``: escalation flag set after repeated violations

Expiry of these keys is what moves a client from Blocked back to Open; the
engine never runs timers. Presence of a block key is the signal, its value
is ignored.

State transitions::

    Open --request--> Counting --count >= limit--> Blocked --TTL--> Open
    Blocked x threshold within 24h --> Escalated (independent TTL, max 24h)
    any state --reset--> Open

Concurrency: the counter uses ``store.increment`` which is atomic in the
bundled stores (lock for in-memory, INCR for Redis). The block check and
the counter read that precede it are separate reads, so two concurrent
requests arriving exactly at the limit may both be admitted. Custom stores
whose ``increment`` is a plain get-then-set will under-count under load.

Failure policy: store errors propagate as ``StoreUnavailableAppError``;
callers apply ``RateLimitSettings.fail_mode``. Event logging failures are
swallowed.
"""

from __future__ import annotations

import logging
import math
import time
from collections import Counter
from typing import Any, Callable, Mapping

from abuse_guard.adapters.events.base import AbstractEventLogger, EventLevel
from abuse_guard.adapters.store.base import AbstractTTLStore
from abuse_guard.core.errors import ConfigurationAppError
from abuse_guard.schemas.rate_limit import (
    GlobalRateLimitStats,
    RateLimitSettings,
    RateLimitStats,
)
from abuse_guard.services.identifier import ClientInfo, IdentifierResolver, hash_identifier

logger = logging.getLogger(__name__)

KEY_PREFIX = "rate_limit_"
SETTINGS_KEY_PREFIX = "rate_limiter_"
BLOCKED_SUFFIX = "_blocked"
VIOLATIONS_SUFFIX = "_violations"
EXTENDED_BLOCK_SUFFIX = "_extended_block"

HOUR_SECONDS = 3600
DAY_SECONDS = 86400

MAX_BLOCK_MULTIPLIER = 10
PROGRESSIVE_DELAY_THRESHOLD = 0.8
DEFAULT_MAX_PROGRESSIVE_DELAY = 5.0
DEFAULT_ESCALATION_THRESHOLD = 5
TOP_ACTIONS = 5

# Path segments of the admin API that an action name would collide with
RESERVED_ACTIONS = frozenset({"stats"})

SettingsInput = RateLimitSettings | Mapping[str, Any] | None


def block_duration_seconds(current_count: int, settings: RateLimitSettings) -> int:
    """Block length for a client denied at ``current_count``.

    ``multiplier = min(1 + excess * 0.5, 10)`` with ``excess = count - limit``,
    rounded down to whole seconds.
    """

    excess = current_count - settings.limit
    multiplier = min(1 + excess * 0.5, MAX_BLOCK_MULTIPLIER)
    return int(settings.block_duration * multiplier)


def escalation_duration_seconds(violations: int) -> int:
    """Extended block length: one hour per violation, capped at a day."""

    return min(violations * HOUR_SECONDS, DAY_SECONDS)


def progressive_delay_seconds(
    current_count: int,
    limit: int,
    max_delay: float = DEFAULT_MAX_PROGRESSIVE_DELAY,
) -> float:
    """Delay applied to a request admitted at ``current_count``.

    Zero below 80% of the limit, then ``(count / limit) * 2`` seconds capped
    at ``max_delay``.
    """

    if current_count < limit * PROGRESSIVE_DELAY_THRESHOLD:
        return 0.0
    return min((current_count / limit) * 2, max_delay)


def eviction_tier(key: str) -> int:
    """Eviction rank of a store key; counters go before violations and blocks.

    Pass to ``InMemoryTTLStore(eviction_tier=...)`` so a flood of new clients
    cannot push out active blocks.
    """

    if key.endswith((BLOCKED_SUFFIX, EXTENDED_BLOCK_SUFFIX)):
        return 2
    if key.endswith(VIOLATIONS_SUFFIX):
        return 1
    return 0


class RateLimitEngine:
    """Decide allow/deny per action and client, with escalating blocks.

    Construct one per configuration; nothing is process-global.

    Args:
        store: State backend shared by every worker that must agree on limits.
        event_logger: Sink for the security audit trail.
        resolver: Produces identifiers when callers pass client info instead.
        defaults: Settings for actions without a persisted override.
        escalation_threshold: Violations within 24h that trigger an extended block.
        max_progressive_delay: Upper bound in seconds for the progressive delay.
        clock: Wall clock, used for ``reset_time``.
        monotonic: Monotonic clock, used to honor request deadlines.
        sleeper: Blocking sleep used for the progressive delay.
    """

    def __init__(
        self,
        store: AbstractTTLStore,
        event_logger: AbstractEventLogger,
        *,
        resolver: IdentifierResolver,
        defaults: RateLimitSettings | None = None,
        escalation_threshold: int = DEFAULT_ESCALATION_THRESHOLD,
        max_progressive_delay: float = DEFAULT_MAX_PROGRESSIVE_DELAY,
        clock: Callable[[], float] = time.time,
        monotonic: Callable[[], float] = time.monotonic,
        sleeper: Callable[[float], None] = time.sleep,
    ) -> None:
        if escalation_threshold < 1:
            raise ValueError("escalation_threshold must be >= 1")
        if max_progressive_delay < 0:
            raise ValueError("max_progressive_delay must be >= 0")

        self._store = store
        self._events = event_logger
        self._resolver = resolver
        self._defaults = defaults or RateLimitSettings()
        self._escalation_threshold = escalation_threshold
        self._max_progressive_delay = max_progressive_delay
        self._clock = clock
        self._monotonic = monotonic
        self._sleep = sleeper

    @property
    def defaults(self) -> RateLimitSettings:
        return self._defaults

    @property
    def store(self) -> AbstractTTLStore:
        return self._store

    # Keys

    @staticmethod
    def build_key(action: str, identifier: str) -> str:
        return f"{KEY_PREFIX}{action}_{identifier}"

    @staticmethod
    def settings_key(action: str) -> str:
        return f"{SETTINGS_KEY_PREFIX}{action}"

    def resolve_identifier(self, client: ClientInfo | None = None) -> str:
        return self._resolver.resolve(client)

    def deadline_after(self, seconds: float) -> float:
        """Deadline usable with ``check`` that lies ``seconds`` from now."""
        return self._monotonic() + seconds

    # Settings

    def get_action_settings(self, action: str) -> RateLimitSettings:
        """Return the persisted override for ``action`` merged over defaults.

        A missing or unreadable override falls back to the defaults.
        """

        _validate_action(action)
        stored = self._store.get(self.settings_key(action))
        if not stored:
            return self._defaults
        if not isinstance(stored, Mapping):
            logger.warning(
                "rate_limit.stored_settings_invalid",
                extra={"action": action, "reason": "not_a_mapping"},
            )
            return self._defaults

        try:
            return RateLimitSettings.merge(self._defaults, stored)
        except ConfigurationAppError as exc:
            logger.warning(
                "rate_limit.stored_settings_invalid",
                extra={"action": action, "reason": exc.message},
            )
            return self._defaults

    def set_action_limits(
        self,
        action: str,
        settings: RateLimitSettings | Mapping[str, Any],
    ) -> RateLimitSettings:
        """Persist a (possibly partial) override for ``action``.

        Returns:
            The effective settings after merging over defaults.

        Raises:
            ConfigurationAppError: If the merged settings are invalid. Nothing
                is stored in that case.
        """

        _validate_action(action)
        if isinstance(settings, RateLimitSettings):
            overrides = settings.model_dump()
        else:
            overrides = dict(settings)

        effective = RateLimitSettings.build(self._defaults, **overrides)
        self._store.set(self.settings_key(action), overrides)

        self._emit(
            "info",
            "rate_limit_settings_updated",
            f"Rate limit settings updated for action: {action}",
            {"action": action, "overrides": overrides},
        )
        return effective

    def resolve_settings(self, action: str, settings: SettingsInput = None) -> RateLimitSettings:
        """Settings in effect for one call.

        A ``RateLimitSettings`` instance is used as-is; a mapping is merged
        over the action's persisted settings.
        """

        if isinstance(settings, RateLimitSettings):
            return settings
        return RateLimitSettings.merge(self.get_action_settings(action), settings)

    # Decisions

    def check(
        self,
        action: str,
        settings: SettingsInput = None,
        identifier: str | None = None,
        *,
        client: ClientInfo | None = None,
        deadline: float | None = None,
    ) -> bool:
        """Count a request and decide whether it may proceed.

        Args:
            action: Name of the protected operation.
            settings: Per-call settings (see ``resolve_settings``).
            identifier: Client identifier; resolved from ``client`` when omitted.
            client: Raw client signals used when ``identifier`` is omitted.
            deadline: ``time.monotonic()`` instant the progressive delay must
                not sleep past.

        Returns:
            True when allowed, False when denied.

        Raises:
            ConfigurationAppError: If ``action`` or ``settings`` are invalid.
            StoreUnavailableAppError: If the store fails.
        """

        _validate_action(action)
        effective = self.resolve_settings(action, settings)
        if identifier is None:
            identifier = self.resolve_identifier(client)

        key = self.build_key(action, identifier)

        if self._is_blocked(key):
            self._emit(
                "warning",
                "rate_limit_blocked",
                f"Rate limit exceeded for action: {action}",
                {
                    "action": action,
                    "identifier_hash": hash_identifier(identifier),
                    "type": "blocked",
                },
            )
            return False

        current = self._read_int(key)
        if current >= effective.limit:
            self._handle_exceeded(action, identifier, current, effective)
            return False

        new_count = self._store.increment(key, effective.window)
        logger.debug(
            "rate_limit.allowed",
            extra={"action": action, "count": new_count, "limit": effective.limit},
        )

        if effective.progressive_delay:
            self._apply_progressive_delay(action, current, effective.limit, deadline)

        return True

    def reset(
        self,
        action: str,
        identifier: str | None = None,
        *,
        client: ClientInfo | None = None,
    ) -> None:
        """Forget all history for a client, returning it to the Open state."""

        _validate_action(action)
        if identifier is None:
            identifier = self.resolve_identifier(client)

        key = self.build_key(action, identifier)
        self._store.delete(
            key,
            key + BLOCKED_SUFFIX,
            key + VIOLATIONS_SUFFIX,
            key + EXTENDED_BLOCK_SUFFIX,
        )

        self._emit(
            "info",
            "rate_limit_reset",
            f"Rate limit reset for action: {action}",
            {"action": action, "identifier_hash": hash_identifier(identifier)},
        )

    def stats(
        self,
        action: str,
        identifier: str | None = None,
        *,
        client: ClientInfo | None = None,
    ) -> RateLimitStats:
        """Snapshot a client's state. Never mutates the store."""

        _validate_action(action)
        if identifier is None:
            identifier = self.resolve_identifier(client)

        key = self.build_key(action, identifier)
        settings = self.get_action_settings(action)
        current = self._read_int(key)
        escalated = self._store.get(key + EXTENDED_BLOCK_SUFFIX) is not None
        blocked = escalated or self._store.get(key + BLOCKED_SUFFIX) is not None

        return RateLimitStats(
            action=action,
            identifier_hash=hash_identifier(identifier),
            current_count=current,
            limit=settings.limit,
            is_blocked=blocked,
            is_escalated=escalated,
            violations=self._read_int(key + VIOLATIONS_SUFFIX),
            remaining_requests=max(0, settings.limit - current),
            reset_time=int(self._clock() + settings.window),
        )

    def retry_after(self, action: str, identifier: str, settings: SettingsInput = None) -> int:
        """Seconds until a denied client can expect to be admitted again."""

        key = self.build_key(action, identifier)
        block_ttls = [
            ttl
            for ttl in (
                self._store.ttl(key + EXTENDED_BLOCK_SUFFIX),
                self._store.ttl(key + BLOCKED_SUFFIX),
            )
            if ttl is not None
        ]
        if block_ttls:
            return int(math.ceil(max(block_ttls)))

        counter_ttl = self._store.ttl(key)
        if counter_ttl is not None:
            return int(math.ceil(counter_ttl))
        return self.resolve_settings(action, settings).window

    def global_stats(self) -> GlobalRateLimitStats:
        """Aggregate every live rate limit key.

        Action names are recovered from counter keys by dropping the trailing
        ``_{identifier}``, so identifiers must not contain underscores for
        ``top_actions`` to be exact. Resolver-produced identifiers never do.
        """

        active = blocked = escalated = violations = 0
        per_action: Counter[str] = Counter()

        for key, value in self._store.scan(KEY_PREFIX).items():
            if key.endswith(EXTENDED_BLOCK_SUFFIX):
                escalated += 1
            elif key.endswith(BLOCKED_SUFFIX):
                blocked += 1
            elif key.endswith(VIOLATIONS_SUFFIX):
                violations += _as_int(value)
            else:
                active += 1
                action = key[len(KEY_PREFIX):].rsplit("_", 1)[0]
                per_action[action] += 1

        return GlobalRateLimitStats(
            active_limits=active,
            blocked_clients=blocked,
            escalated_clients=escalated,
            total_violations=violations,
            top_actions=dict(per_action.most_common(TOP_ACTIONS)),
        )

    # Internals

    def _is_blocked(self, key: str) -> bool:
        return (
            self._store.get(key + EXTENDED_BLOCK_SUFFIX) is not None
            or self._store.get(key + BLOCKED_SUFFIX) is not None
        )

    def _read_int(self, key: str) -> int:
        return _as_int(self._store.get(key))

    def _handle_exceeded(
        self,
        action: str,
        identifier: str,
        current_count: int,
        settings: RateLimitSettings,
    ) -> None:
        key = self.build_key(action, identifier)
        block_duration = block_duration_seconds(current_count, settings)
        self._store.set(key + BLOCKED_SUFFIX, True, block_duration)

        violations = self._store.increment(key + VIOLATIONS_SUFFIX, DAY_SECONDS)

        self._emit(
            "warning",
            "rate_limit_exceeded",
            f"Rate limit exceeded for action: {action}",
            {
                "action": action,
                "identifier_hash": hash_identifier(identifier),
                "type": "exceeded",
                "current_count": current_count,
                "limit": settings.limit,
                "block_duration": block_duration,
                "total_violations": violations,
            },
        )

        if violations >= self._escalation_threshold:
            self._escalate_penalty(action, identifier, violations)

    def _escalate_penalty(self, action: str, identifier: str, violations: int) -> None:
        extended_duration = escalation_duration_seconds(violations)
        key = self.build_key(action, identifier)
        self._store.set(key + EXTENDED_BLOCK_SUFFIX, True, extended_duration)

        self._emit(
            "warning",
            "rate_limit_escalation",
            "Extended block applied due to repeated violations",
            {
                "action": action,
                "identifier_hash": hash_identifier(identifier),
                "violations": violations,
                "extended_duration": extended_duration,
            },
        )

    def _apply_progressive_delay(
        self,
        action: str,
        current_count: int,
        limit: int,
        deadline: float | None,
    ) -> None:
        delay = progressive_delay_seconds(current_count, limit, self._max_progressive_delay)
        if deadline is not None:
            delay = min(delay, max(0.0, deadline - self._monotonic()))
        if delay <= 0:
            return

        logger.info(
            "rate_limit.progressive_delay",
            extra={"action": action, "count": current_count, "limit": limit, "delay_s": delay},
        )
        self._sleep(delay)

    def _emit(
        self,
        level: EventLevel,
        event_type: str,
        message: str,
        details: Mapping[str, Any],
    ) -> None:
        try:
            self._events.log(level, event_type, message, details)
        except Exception:
            logger.exception("rate_limit.event_log_failed", extra={"event_type": event_type})


def _validate_action(action: str) -> None:
    if not isinstance(action, str) or not action:
        raise ConfigurationAppError(
            code="invalid_action",
            message="action must be a non-empty string",
            details={"field": "action"},
        )
    if action in RESERVED_ACTIONS:
        raise ConfigurationAppError(
            code="invalid_action",
            message=f"action name '{action}' is reserved",
            details={"field": "action", "reserved": sorted(RESERVED_ACTIONS)},
        )


def _as_int(value: Any) -> int:
    if value is None:
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning("rate_limit.non_integer_value", extra={"value_type": type(value).__name__})
        return 0
