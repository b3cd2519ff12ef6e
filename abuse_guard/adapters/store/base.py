"""TTL key-value store interface.

The rate limit engine depends on this abstraction (not a concrete backend)
so the in-memory store used for single-process deployments can be swapped
for Redis or another shared store without touching the engine.

Contract:
- Expired keys are indistinguishable from keys that never existed.
- ``set`` overwrites both the value and the TTL.
- ``increment`` must never restart the TTL of an existing key.
- Backend failures are raised as ``StoreUnavailableAppError``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class AbstractTTLStore(ABC):
    """Interface for expiring key-value stores."""

    backend_name: str = "abstract"

    @abstractmethod
    def get(self, key: str) -> Any | None:
        """Return the stored value, or None when absent or expired."""
        raise NotImplementedError

    @abstractmethod
    def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        """Store a value.

        Args:
            key: Storage key.
            value: JSON-compatible value.
            ttl_seconds: Lifetime in seconds; None stores the key without expiry.
        """
        raise NotImplementedError

    @abstractmethod
    def delete(self, *keys: str) -> None:
        """Delete keys. Missing keys are ignored."""
        raise NotImplementedError

    @abstractmethod
    def increment(self, key: str, ttl_seconds: int) -> int:
        """Atomically add one to an integer value.

        An absent key is created with value 1 and the given TTL. An existing
        key keeps its remaining TTL.

        Returns:
            The value after incrementing.
        """
        raise NotImplementedError

    @abstractmethod
    def ttl(self, key: str) -> float | None:
        """Return remaining lifetime in seconds.

        Returns None when the key is absent or has no expiry.
        """
        raise NotImplementedError

    @abstractmethod
    def scan(self, prefix: str) -> dict[str, Any]:
        """Return all live keys starting with ``prefix`` and their values."""
        raise NotImplementedError

    def ping(self) -> bool:
        """Return True when the backend is reachable."""
        return True
