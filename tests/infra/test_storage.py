"""key/value 저장소 테스트 (MemoryStore, RedisStore)"""

from unittest.mock import AsyncMock

import pytest
from fakeredis import FakeAsyncRedis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError

from comiclens.infra.storage import MemoryStore, RedisStore, StorageError, StorageQuotaError


class TestMemoryStore:
    async def test_set_get_remove(self) -> None:
        store = MemoryStore()

        await store.set({"a": {"x": 1}, "b": [1, 2]})

        assert await store.get(["a", "missing"]) == {"a": {"x": 1}}
        await store.remove(["a"])
        assert await store.get_all() == {"b": [1, 2]}

    async def test_quota_exceeded(self) -> None:
        store = MemoryStore(quota_bytes=20)

        with pytest.raises(StorageQuotaError):
            await store.set({"key": "x" * 50})
        assert await store.get_all() == {}

    async def test_overwrite_counts_once_against_quota(self) -> None:
        store = MemoryStore(quota_bytes=20)

        await store.set({"k": "a" * 10})
        await store.set({"k": "b" * 10})

        assert await store.get(["k"]) == {"k": "b" * 10}

    async def test_bytes_in_use_and_clear(self) -> None:
        store = MemoryStore()
        await store.set({"k": "v"})

        assert await store.bytes_in_use() == len("k") + len('"v"')
        await store.clear()
        assert await store.bytes_in_use() == 0

    async def test_unserializable_value(self) -> None:
        with pytest.raises(StorageError):
            await MemoryStore().set({"k": object()})


class TestRedisStore:
    async def test_round_trip_with_namespace(self, fake_redis: FakeAsyncRedis) -> None:
        store = RedisStore(fake_redis, namespace="comiclens")

        await store.set({"cache:abc": {"annotations": []}, "settings": {"provider_id": "gemini"}})

        assert await store.get(["cache:abc"]) == {"cache:abc": {"annotations": []}}
        assert await fake_redis.get("comiclens:settings") == '{"provider_id":"gemini"}'
        assert set(await store.get_all()) == {"cache:abc", "settings"}

    async def test_namespaces_isolated(self, fake_redis: FakeAsyncRedis) -> None:
        first = RedisStore(fake_redis, namespace="one")
        second = RedisStore(fake_redis, namespace="two")

        await first.set({"k": 1})
        await second.clear()

        assert await first.get(["k"]) == {"k": 1}
        assert await second.get_all() == {}

    async def test_corrupt_value_returned_raw(self, fake_redis: FakeAsyncRedis) -> None:
        await fake_redis.set("ns:cache:x", "{not json")

        assert await RedisStore(fake_redis, namespace="ns").get(["cache:x"]) == {"cache:x": "{not json"}

    async def test_remove_and_clear(self, fake_redis: FakeAsyncRedis) -> None:
        store = RedisStore(fake_redis, namespace="ns")
        await store.set({"a": 1, "b": 2, "c": 3})

        await store.remove(["a"])
        assert set(await store.get_all()) == {"b", "c"}

        await store.clear()
        assert await store.get_all() == {}
        assert await store.bytes_in_use() == 0

    async def test_quota_exceeded(self, fake_redis: FakeAsyncRedis) -> None:
        store = RedisStore(fake_redis, namespace="ns", quota_bytes=40)
        await store.set({"a": "x" * 10})

        with pytest.raises(StorageQuotaError):
            await store.set({"b": "y" * 30})
        assert set(await store.get_all()) == {"a"}

    async def test_oom_is_quota_error(self, fake_redis: FakeAsyncRedis) -> None:
        store = RedisStore(fake_redis, namespace="ns")
        fake_redis.mset = AsyncMock(  # type: ignore[method-assign]
            side_effect=ResponseError("OOM command not allowed when used memory > 'maxmemory'.")
        )

        with pytest.raises(StorageQuotaError):
            await store.set({"a": 1})

    async def test_connection_error_is_storage_error(self, fake_redis: FakeAsyncRedis) -> None:
        store = RedisStore(fake_redis, namespace="ns")
        fake_redis.mget = AsyncMock(side_effect=RedisConnectionError("down"))  # type: ignore[method-assign]

        with pytest.raises(StorageError):
            await store.get(["a"])
