"""Redis-backed TTL store.

Shared across processes and hosts, so limits hold for the whole deployment.
Values are JSON encoded. Counters use ``INCR`` so concurrent requests never
lose an increment; the TTL is attached with ``EXPIRE ... NX`` inside the same
MULTI block, which requires Redis >= 7.0.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, TypeVar

import redis
from redis.exceptions import RedisError

from abuse_guard.adapters.store.base import AbstractTTLStore
from abuse_guard.core.errors import StoreUnavailableAppError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RedisTTLStore(AbstractTTLStore):
    """TTL store on top of a ``redis.Redis`` client.

    Args:
        client: Client created with ``decode_responses=True``.
        key_prefix: Namespace prepended to every key.
    """

    backend_name = "redis"

    def __init__(self, client: redis.Redis, *, key_prefix: str = "") -> None:
        self._client = client
        self._prefix = key_prefix

    @classmethod
    def from_url(cls, url: str, *, key_prefix: str = "") -> "RedisTTLStore":
        """Build a store from a ``redis://`` URL."""

        client = redis.Redis.from_url(url, decode_responses=True)
        return cls(client, key_prefix=key_prefix)

    def get(self, key: str) -> Any | None:
        raw = self._call("get", self._client.get, self._k(key))
        return _decode(raw)

    def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        payload = json.dumps(value)
        if ttl_seconds is None:
            self._call("set", self._client.set, self._k(key), payload)
        else:
            self._call("set", self._client.set, self._k(key), payload, ex=max(1, int(ttl_seconds)))

    def delete(self, *keys: str) -> None:
        if not keys:
            return
        self._call("delete", self._client.delete, *(self._k(k) for k in keys))

    def increment(self, key: str, ttl_seconds: int) -> int:
        def _incr() -> int:
            pipe = self._client.pipeline(transaction=True)
            pipe.incr(self._k(key))
            pipe.expire(self._k(key), max(1, int(ttl_seconds)), nx=True)
            value, _ = pipe.execute()
            return int(value)

        return self._call("increment", _incr)

    def ttl(self, key: str) -> float | None:
        remaining_ms = self._call("ttl", self._client.pttl, self._k(key))
        # -2: missing, -1: no expiry
        if remaining_ms is None or remaining_ms < 0:
            return None
        return remaining_ms / 1000

    def scan(self, prefix: str) -> dict[str, Any]:
        def _scan() -> dict[str, Any]:
            keys = list(self._client.scan_iter(match=f"{self._k(prefix)}*", count=500))
            if not keys:
                return {}
            values = self._client.mget(keys)
            return {
                k[len(self._prefix):]: _decode(v)
                for k, v in zip(keys, values)
                if v is not None
            }

        return self._call("scan", _scan)

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except RedisError:
            logger.warning("store.ping_failed", extra={"backend": self.backend_name})
            return False

    def _k(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def _call(self, operation: str, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        try:
            return fn(*args, **kwargs)
        except RedisError as exc:
            logger.error(
                "store.operation_failed",
                extra={
                    "backend": self.backend_name,
                    "operation": operation,
                    "error_type": type(exc).__name__,
                },
            )
            raise StoreUnavailableAppError(
                code="store_unavailable",
                message=f"Rate limit store failed during {operation}",
                details={"backend": self.backend_name, "operation": operation},
            ) from exc


def _decode(raw: str | None) -> Any | None:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return raw
