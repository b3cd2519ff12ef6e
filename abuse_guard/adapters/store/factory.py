"""Factory for TTL store instances."""

from typing import Callable

from abuse_guard.adapters.store.base import AbstractTTLStore
from abuse_guard.adapters.store.in_memory import InMemoryTTLStore
from abuse_guard.adapters.store.redis_store import RedisTTLStore
from abuse_guard.core.config import StoreSettings, settings
from abuse_guard.core.errors import ConfigurationAppError


def build_store(
    store_settings: StoreSettings | None = None,
    *,
    eviction_tier: Callable[[str], int] | None = None,
) -> AbstractTTLStore:
    """Instantiate the store backend selected by configuration.

    Args:
        store_settings: Optional store settings; defaults to global settings.
        eviction_tier: Key ranking for the in-memory backend under capacity
            pressure (Redis applies its own maxmemory policy).

    Returns:
        AbstractTTLStore: Configured store instance.

    Raises:
        ConfigurationAppError: If the backend name is unknown.
    """
    cfg = store_settings or settings.store
    backend = cfg.backend.lower()

    if backend == "memory":
        return InMemoryTTLStore(
            max_entries=cfg.memory_max_entries,
            eviction_tier=eviction_tier,
        )

    if backend == "redis":
        return RedisTTLStore.from_url(cfg.redis_url, key_prefix=cfg.key_prefix)

    raise ConfigurationAppError(
        code="store_unknown_backend",
        message=f"Unknown store backend: '{backend}'. Supported backends: memory, redis",
        details={"backend": backend},
    )
