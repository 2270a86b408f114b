"""저장소 모듈

- durable: Redis (TTL 규칙이 적용되는 영구 캐시, 설정, 통계)
- session: 프로세스 메모리 (blob URL/img-hash 키, 세션 종료 시 삭제)
"""

from comiclens.config import get_settings
from comiclens.infra.redis import get_redis

from .base import KeyValueStore, StorageError, StorageQuotaError
from .memory import MemoryStore
from .redis_store import RedisStore

__all__ = [
    "KeyValueStore",
    "MemoryStore",
    "RedisStore",
    "StorageError",
    "StorageQuotaError",
    "get_durable_store",
    "get_session_store",
    "set_durable_store",
    "set_session_store",
]


class _StorageHolder:
    durable: KeyValueStore | None = None
    session: KeyValueStore | None = None


def get_durable_store() -> KeyValueStore:
    if _StorageHolder.durable is None:
        settings = get_settings()
        _StorageHolder.durable = RedisStore(
            get_redis(),
            namespace=settings.redis_namespace,
            quota_bytes=settings.cache_quota_bytes,
        )
    return _StorageHolder.durable


def get_session_store() -> KeyValueStore:
    if _StorageHolder.session is None:
        _StorageHolder.session = MemoryStore()
    return _StorageHolder.session


def set_durable_store(store: KeyValueStore | None) -> None:
    _StorageHolder.durable = store


def set_session_store(store: KeyValueStore | None) -> None:
    _StorageHolder.session = store
