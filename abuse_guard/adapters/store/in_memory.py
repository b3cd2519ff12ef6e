"""In-memory TTL store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: every read-modify-write happens under one lock, which makes
  ``increment`` atomic within the process.
- Expiry is lazy: expired items are dropped when read, and swept on writes.
- Capacity: keys without a TTL are never evicted. Other keys go in order
  of their eviction tier (lowest first), then soonest expiry.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable

from abuse_guard.adapters.store.base import AbstractTTLStore

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    value: Any
    expires_at: float | None


class InMemoryTTLStore(AbstractTTLStore):
    """Thread-safe dict-backed store with per-key expiry.

    Attributes:
        max_entries: Maximum number of keys held (None for unlimited).
        eviction_tier: Ranks keys for eviction under capacity pressure; keys
            in lower tiers go first. Defaults to a single tier.
    """

    backend_name = "memory"

    def __init__(
        self,
        *,
        max_entries: int | None = 100_000,
        clock: Callable[[], float] = time.time,
        eviction_tier: Callable[[str], int] | None = None,
    ) -> None:
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be >= 1")

        self._max_entries = max_entries
        self._clock = clock
        self._eviction_tier = eviction_tier or (lambda key: 0)
        self._lock = threading.RLock()
        self._data: OrderedDict[str, _Entry] = OrderedDict()

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return f"InMemoryTTLStore(max_entries={self._max_entries}, size={len(self._data)})"

    def __len__(self) -> int:
        with self._lock:
            self._sweep_locked()
            return len(self._data)

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._live_entry_locked(key)
            return entry.value if entry else None

    def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        with self._lock:
            self._sweep_locked()
            self._data[key] = _Entry(value=value, expires_at=self._expiry(ttl_seconds))
            self._data.move_to_end(key)
            self._evict_if_over_capacity_locked()

    def delete(self, *keys: str) -> None:
        with self._lock:
            for key in keys:
                self._data.pop(key, None)

    def increment(self, key: str, ttl_seconds: int) -> int:
        with self._lock:
            entry = self._live_entry_locked(key)
            if entry is None:
                self._sweep_locked()
                self._data[key] = _Entry(value=1, expires_at=self._expiry(ttl_seconds))
                self._evict_if_over_capacity_locked()
                return 1

            entry.value = int(entry.value) + 1
            return entry.value

    def ttl(self, key: str) -> float | None:
        with self._lock:
            entry = self._live_entry_locked(key)
            if entry is None or entry.expires_at is None:
                return None
            return max(0.0, entry.expires_at - self._clock())

    def scan(self, prefix: str) -> dict[str, Any]:
        with self._lock:
            self._sweep_locked()
            return {k: e.value for k, e in self._data.items() if k.startswith(prefix)}

    def clear(self) -> None:
        """Remove all keys."""

        with self._lock:
            self._data.clear()

    def _expiry(self, ttl_seconds: int | None) -> float | None:
        if ttl_seconds is None:
            return None
        return self._clock() + ttl_seconds

    def _is_expired(self, entry: _Entry, now: float) -> bool:
        return entry.expires_at is not None and entry.expires_at <= now

    def _live_entry_locked(self, key: str) -> _Entry | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        if self._is_expired(entry, self._clock()):
            del self._data[key]
            return None
        return entry

    def _sweep_locked(self) -> None:
        now = self._clock()
        expired = [k for k, e in self._data.items() if self._is_expired(e, now)]
        for key in expired:
            del self._data[key]

    def _evict_if_over_capacity_locked(self) -> None:
        if self._max_entries is None:
            return

        while len(self._data) > self._max_entries:
            candidates = [(k, e) for k, e in self._data.items() if e.expires_at is not None]
            if not candidates:
                logger.warning("store.over_capacity", extra={"size": len(self._data)})
                return

            key, _ = min(
                candidates,
                key=lambda item: (self._eviction_tier(item[0]), item[1].expires_at),
            )
            del self._data[key]
            logger.warning("store.evicted", extra={"store_key": key[:32], "reason": "capacity"})
