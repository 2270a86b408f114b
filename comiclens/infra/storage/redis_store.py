from typing import Any

from redis.asyncio import Redis
from redis.exceptions import RedisError, ResponseError

from .base import StorageError, StorageQuotaError, decode_value, encode_value, entry_size


class RedisStore:
    """Redis 저장소 구현체 (영구 네임스페이스).

    모든 키는 "{namespace}:{key}" 형태로 저장. quota_bytes를 주면 쓰기 전에 용량을 검사한다.
    """

    def __init__(self, client: Redis, namespace: str, quota_bytes: int | None = None):
        self.client = client
        self.namespace = namespace
        self.quota_bytes = quota_bytes

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    def _strip(self, full_key: str) -> str:
        return full_key[len(self.namespace) + 1 :]

    async def get(self, keys: list[str]) -> dict[str, Any]:
        if not keys:
            return {}
        try:
            values = await self.client.mget([self._key(k) for k in keys])
        except RedisError as e:
            raise StorageError(f"Redis 읽기 실패: {e}") from e

        return {
            key: decode_value(raw)
            for key, raw in zip(keys, values, strict=True)
            if raw is not None
        }

    async def set(self, items: dict[str, Any]) -> None:
        if not items:
            return
        encoded = {self._key(k): encode_value(v) for k, v in items.items()}

        try:
            if self.quota_bytes is not None:
                await self._check_quota(encoded)
            await self.client.mset(encoded)
        except ResponseError as e:
            if "OOM" in str(e):
                raise StorageQuotaError(f"Redis 메모리 초과: {e}") from e
            raise StorageError(f"Redis 쓰기 실패: {e}") from e
        except RedisError as e:
            raise StorageError(f"Redis 쓰기 실패: {e}") from e

    async def _check_quota(self, encoded: dict[str, str]) -> None:
        sizes = await self._sizes()
        for full_key in encoded:
            sizes.pop(full_key, None)

        projected = sum(sizes.values()) + sum(entry_size(k, v) for k, v in encoded.items())
        if self.quota_bytes is not None and projected > self.quota_bytes:
            raise StorageQuotaError(
                f"저장 용량 초과: {projected} bytes (최대 {self.quota_bytes} bytes)"
            )

    async def remove(self, keys: list[str]) -> None:
        if not keys:
            return
        try:
            await self.client.delete(*[self._key(k) for k in keys])
        except RedisError as e:
            raise StorageError(f"Redis 삭제 실패: {e}") from e

    async def get_all(self) -> dict[str, Any]:
        try:
            full_keys = await self._scan_keys()
            if not full_keys:
                return {}
            values = await self.client.mget(full_keys)
        except RedisError as e:
            raise StorageError(f"Redis 조회 실패: {e}") from e

        return {
            self._strip(k): decode_value(raw)
            for k, raw in zip(full_keys, values, strict=True)
            if raw is not None
        }

    async def bytes_in_use(self) -> int:
        try:
            return sum((await self._sizes()).values())
        except RedisError as e:
            raise StorageError(f"Redis 용량 조회 실패: {e}") from e

    async def clear(self) -> None:
        try:
            full_keys = await self._scan_keys()
            if full_keys:
                await self.client.delete(*full_keys)
        except RedisError as e:
            raise StorageError(f"Redis 초기화 실패: {e}") from e

    async def _scan_keys(self) -> list[str]:
        return [key async for key in self.client.scan_iter(match=f"{self.namespace}:*")]

    async def _sizes(self) -> dict[str, int]:
        full_keys = await self._scan_keys()
        if not full_keys:
            return {}

        pipe = self.client.pipeline()
        for key in full_keys:
            pipe.strlen(key)
        lengths = await pipe.execute()

        return {
            key: len(key.encode()) + int(length)
            for key, length in zip(full_keys, lengths, strict=True)
        }
