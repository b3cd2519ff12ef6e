"""Unit tests for the Redis TTL store against a mocked client."""

from unittest.mock import MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from abuse_guard.adapters.store.redis_store import RedisTTLStore
from abuse_guard.core.errors import StoreUnavailableAppError


@pytest.fixture
def client() -> MagicMock:
    return MagicMock()


@pytest.fixture
def redis_store(client: MagicMock) -> RedisTTLStore:
    return RedisTTLStore(client, key_prefix="guard:")


def test_get_decodes_json(redis_store: RedisTTLStore, client: MagicMock) -> None:
    client.get.return_value = "3"

    assert redis_store.get("k") == 3
    client.get.assert_called_once_with("guard:k")


def test_get_missing(redis_store: RedisTTLStore, client: MagicMock) -> None:
    client.get.return_value = None

    assert redis_store.get("k") is None


def test_get_non_json_value_returned_raw(redis_store: RedisTTLStore, client: MagicMock) -> None:
    client.get.return_value = "not json"

    assert redis_store.get("k") == "not json"


def test_set_with_ttl(redis_store: RedisTTLStore, client: MagicMock) -> None:
    redis_store.set("k", True, 10)

    client.set.assert_called_once_with("guard:k", "true", ex=10)


def test_set_without_ttl(redis_store: RedisTTLStore, client: MagicMock) -> None:
    redis_store.set("k", {"limit": 3})

    client.set.assert_called_once_with("guard:k", '{"limit": 3}')


def test_delete_prefixes_keys(redis_store: RedisTTLStore, client: MagicMock) -> None:
    redis_store.delete("a", "b")

    client.delete.assert_called_once_with("guard:a", "guard:b")


def test_delete_nothing_skips_call(redis_store: RedisTTLStore, client: MagicMock) -> None:
    redis_store.delete()

    client.delete.assert_not_called()


def test_increment_uses_incr_and_expire_nx(redis_store: RedisTTLStore, client: MagicMock) -> None:
    pipe = client.pipeline.return_value
    pipe.execute.return_value = [4, False]

    assert redis_store.increment("c", 60) == 4

    client.pipeline.assert_called_once_with(transaction=True)
    pipe.incr.assert_called_once_with("guard:c")
    pipe.expire.assert_called_once_with("guard:c", 60, nx=True)


@pytest.mark.parametrize(("pttl", "expected"), [(1500, 1.5), (-1, None), (-2, None)])
def test_ttl(redis_store: RedisTTLStore, client: MagicMock, pttl: int, expected) -> None:
    client.pttl.return_value = pttl

    assert redis_store.ttl("k") == expected


def test_scan_strips_prefix_and_skips_vanished_keys(redis_store: RedisTTLStore, client: MagicMock) -> None:
    client.scan_iter.return_value = iter(["guard:rate_limit_a_x", "guard:rate_limit_a_y"])
    client.mget.return_value = ["2", None]

    assert redis_store.scan("rate_limit_") == {"rate_limit_a_x": 2}
    client.scan_iter.assert_called_once_with(match="guard:rate_limit_*", count=500)


def test_scan_empty(redis_store: RedisTTLStore, client: MagicMock) -> None:
    client.scan_iter.return_value = iter([])

    assert redis_store.scan("rate_limit_") == {}
    client.mget.assert_not_called()


def test_errors_wrapped_as_store_unavailable(redis_store: RedisTTLStore, client: MagicMock) -> None:
    client.get.side_effect = RedisConnectionError("connection refused")

    with pytest.raises(StoreUnavailableAppError) as exc_info:
        redis_store.get("k")

    assert exc_info.value.code == "store_unavailable"
    assert exc_info.value.details == {"backend": "redis", "operation": "get"}
    assert isinstance(exc_info.value.__cause__, RedisConnectionError)


def test_ping_failure_returns_false(redis_store: RedisTTLStore, client: MagicMock) -> None:
    client.ping.side_effect = RedisConnectionError("down")

    assert redis_store.ping() is False


def test_from_url_uses_decoded_responses() -> None:
    with patch("abuse_guard.adapters.store.redis_store.redis.Redis.from_url") as from_url:
        store = RedisTTLStore.from_url("redis://cache:6379/1", key_prefix="x:")

    from_url.assert_called_once_with("redis://cache:6379/1", decode_responses=True)
    assert store.backend_name == "redis"
