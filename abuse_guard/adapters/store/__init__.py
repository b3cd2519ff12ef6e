"""TTL key-value store adapters used as the rate limit engine's state."""

from abuse_guard.adapters.store.base import AbstractTTLStore
from abuse_guard.adapters.store.factory import build_store
from abuse_guard.adapters.store.in_memory import InMemoryTTLStore
from abuse_guard.adapters.store.redis_store import RedisTTLStore

__all__ = [
    "AbstractTTLStore",
    "InMemoryTTLStore",
    "RedisTTLStore",
    "build_store",
]
