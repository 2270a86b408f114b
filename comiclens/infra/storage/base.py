import json
from typing import Any, Protocol


class StorageError(Exception):
    pass


class StorageQuotaError(StorageError):
    """저장 용량 초과 (호출 측에서 eviction 후 재시도 가능)"""


class KeyValueStore(Protocol):
    """네임스페이스 단위 key/value 저장소. RedisStore, MemoryStore 등 구현체로 교체 가능.

    값은 JSON 직렬화 가능한 객체. 실패 시 StorageError (용량 초과는 StorageQuotaError).
    """

    async def get(self, keys: list[str]) -> dict[str, Any]: ...
    async def set(self, items: dict[str, Any]) -> None: ...
    async def remove(self, keys: list[str]) -> None: ...
    async def get_all(self) -> dict[str, Any]: ...
    async def bytes_in_use(self) -> int: ...
    async def clear(self) -> None: ...


def encode_value(value: Any) -> str:
    try:
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError) as e:
        raise StorageError(f"직렬화할 수 없는 값: {e}") from e


def decode_value(raw: str) -> Any:
    """JSON 디코딩. 손상된 값은 원문 그대로 반환 (검증은 호출 측 책임)"""
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def entry_size(key: str, encoded: str) -> int:
    return len(key.encode()) + len(encoded.encode())
