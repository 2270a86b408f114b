from typing import Any

from .base import StorageQuotaError, decode_value, encode_value, entry_size


class MemoryStore:
    """프로세스 메모리 저장소. 세션 한정 네임스페이스 (프로세스 종료 시 소멸)."""

    def __init__(self, quota_bytes: int | None = None):
        self.quota_bytes = quota_bytes
        self._data: dict[str, str] = {}

    async def get(self, keys: list[str]) -> dict[str, Any]:
        return {key: decode_value(self._data[key]) for key in keys if key in self._data}

    async def set(self, items: dict[str, Any]) -> None:
        encoded = {key: encode_value(value) for key, value in items.items()}

        if self.quota_bytes is not None:
            remaining = {k: v for k, v in self._data.items() if k not in encoded}
            projected = sum(entry_size(k, v) for k, v in remaining.items())
            projected += sum(entry_size(k, v) for k, v in encoded.items())
            if projected > self.quota_bytes:
                raise StorageQuotaError(
                    f"저장 용량 초과: {projected} bytes (최대 {self.quota_bytes} bytes)"
                )

        self._data.update(encoded)

    async def remove(self, keys: list[str]) -> None:
        for key in keys:
            self._data.pop(key, None)

    async def get_all(self) -> dict[str, Any]:
        return {key: decode_value(raw) for key, raw in self._data.items()}

    async def bytes_in_use(self) -> int:
        return sum(entry_size(k, v) for k, v in self._data.items())

    async def clear(self) -> None:
        self._data.clear()
