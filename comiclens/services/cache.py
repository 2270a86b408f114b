"""번역 결과 캐시

정규화된 이미지 URL 해시 + 언어 + provider + model을 키로 쓰는 content-addressed 캐시.
캐시는 best-effort라서 저장소 오류는 절대 호출 측으로 올라가지 않는다
(읽기 실패 = 캐시 미스, 쓰기 실패 = 버림).

무효화 규칙 (읽을 때마다 검사, 실패한 항목은 즉시 삭제):
- schema_version이 현재 버전과 다름
- 생성 후 TTL(30일) 초과
"""

import hashlib
import logging
import math
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from comiclens.config import get_settings
from comiclens.constants import TTL, CacheSchema, StorageKey
from comiclens.infra.storage import (
    KeyValueStore,
    StorageQuotaError,
    get_durable_store,
    get_session_store,
)
from comiclens.schemas.translation import Annotation, CacheEntry
from comiclens.utils.url import is_session_only_url, normalize_image_url

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class CacheKey:
    """hash(normalize(resource_id)) + 대상 언어 + provider + model"""

    resource_id: str
    target_language: str
    provider_id: str = ""
    model_id: str = ""

    def __post_init__(self) -> None:
        if not self.resource_id:
            raise ValueError("resource_id는 비어 있을 수 없습니다")

    @property
    def session_only(self) -> bool:
        return is_session_only_url(self.resource_id)

    @property
    def value(self) -> str:
        normalized = normalize_image_url(self.resource_id)
        digest = hashlib.sha256(normalized.encode()).hexdigest()[:32]
        return (
            f"{StorageKey.CACHE_PREFIX}{digest}:"
            f"{self.target_language}:{self.provider_id}:{self.model_id}"
        )


class CacheStore:
    def __init__(
        self,
        durable: KeyValueStore,
        session: KeyValueStore,
        soft_limit_bytes: int | None = None,
        ttl_ms: int = TTL.CACHE_MS,
        schema_version: str = CacheSchema.VERSION,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._durable = durable
        self._session = session
        self._soft_limit_bytes = soft_limit_bytes
        self._ttl_ms = ttl_ms
        self._schema_version = schema_version
        self._clock = clock

    def _store_for(self, key: CacheKey) -> KeyValueStore:
        return self._session if key.session_only else self._durable

    async def get(self, key: CacheKey) -> CacheEntry | None:
        """캐시 조회. 저장소 오류는 캐시 미스로 처리 (fail closed)"""
        store = self._store_for(key)
        try:
            data = await store.get([key.value])
        except Exception as e:
            logger.error(f"캐시 읽기 오류: {e}")
            return None

        raw = data.get(key.value)
        if raw is None:
            return None

        entry = self._validate(raw)
        if entry is None:
            await self._discard(store, [key.value])
            return None

        return entry

    def _validate(self, raw: Any) -> CacheEntry | None:
        try:
            entry = CacheEntry.model_validate(raw)
        except ValidationError:
            logger.debug("손상된 캐시 항목")
            return None

        if entry.schema_version != self._schema_version:
            logger.debug(f"캐시 스키마 불일치: {entry.schema_version} != {self._schema_version}")
            return None

        if self._clock() - entry.created_at > self._ttl_ms:
            return None

        return entry

    async def put(self, key: CacheKey, annotations: Sequence[Annotation]) -> bool:
        """캐시 저장. 용량 초과 시 evict() 후 1회 재시도, 그래도 실패하면 버림"""
        entry = CacheEntry(
            annotations=list(annotations),
            created_at=self._clock(),
            schema_version=self._schema_version,
        )
        payload = {key.value: entry.model_dump(mode="json")}
        store = self._store_for(key)

        try:
            await store.set(payload)
        except StorageQuotaError:
            if key.session_only:
                logger.warning("세션 캐시 용량 초과, 저장 생략")
                return False

            logger.warning("캐시 용량 초과, 오래된 캐시 정리 후 재시도")
            await self.evict()
            try:
                await store.set(payload)
            except Exception as e:
                logger.warning(f"캐시 재저장 실패, 저장 생략: {e}")
                return False
        except Exception as e:
            logger.warning(f"캐시 저장 실패: {e}")
            return False

        if not key.session_only:
            await self._evict_if_over_soft_limit()
        return True

    async def _evict_if_over_soft_limit(self) -> None:
        if self._soft_limit_bytes is None:
            return
        try:
            usage = await self._durable.bytes_in_use()
        except Exception as e:
            logger.debug(f"캐시 용량 조회 실패: {e}")
            return
        if usage > self._soft_limit_bytes:
            logger.info(f"캐시 용량 {usage} bytes > {self._soft_limit_bytes} bytes, 정리 시작")
            await self.evict()

    async def evict(self) -> int:
        """영구 캐시 정리

        1단계: TTL 초과 항목이 있으면 전부 삭제하고 종료
        2단계: 없으면 created_at 기준 오래된 절반 삭제

        Returns:
            삭제한 항목 수
        """
        try:
            all_data = await self._durable.get_all()
        except Exception as e:
            logger.error(f"캐시 정리 실패 (조회): {e}")
            return 0

        entries = [
            (key, _created_at(value))
            for key, value in all_data.items()
            if key.startswith(StorageKey.CACHE_PREFIX)
        ]
        if not entries:
            return 0

        now = self._clock()
        expired = [key for key, created_at in entries if now - created_at > self._ttl_ms]
        if expired:
            await self._discard(self._durable, expired)
            logger.info(f"만료된 캐시 {len(expired)}개 삭제")
            return len(expired)

        entries.sort(key=lambda item: item[1])
        oldest = [key for key, _ in entries[: math.ceil(len(entries) / 2)]]
        await self._discard(self._durable, oldest)
        logger.info(f"오래된 캐시 {len(oldest)}개 삭제")
        return len(oldest)

    async def clear(self) -> int:
        """모든 번역 캐시 삭제 (캐시에 영향을 주는 설정이 바뀌었을 때)"""
        removed = 0
        for store in (self._durable, self._session):
            try:
                keys = [k for k in await store.get_all() if k.startswith(StorageKey.CACHE_PREFIX)]
            except Exception as e:
                logger.error(f"캐시 초기화 실패 (조회): {e}")
                continue
            await self._discard(store, keys)
            removed += len(keys)
        return removed

    async def _discard(self, store: KeyValueStore, keys: list[str]) -> None:
        if not keys:
            return
        try:
            await store.remove(keys)
        except Exception as e:
            logger.error(f"캐시 삭제 실패: {e}")


def _created_at(value: Any) -> int:
    """손상된 항목은 0 (가장 오래된 항목으로 취급)"""
    if isinstance(value, dict):
        created_at = value.get("created_at")
        if isinstance(created_at, int | float) and not isinstance(created_at, bool):
            return int(created_at)
    return 0


class _CacheHolder:
    instance: CacheStore | None = None


def get_cache_store() -> CacheStore:
    if _CacheHolder.instance is None:
        _CacheHolder.instance = CacheStore(
            durable=get_durable_store(),
            session=get_session_store(),
            soft_limit_bytes=get_settings().cache_soft_limit_bytes,
        )
    return _CacheHolder.instance


def set_cache_store(store: CacheStore | None) -> None:
    _CacheHolder.instance = store
