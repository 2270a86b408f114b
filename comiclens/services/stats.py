"""provider별 API 호출 통계

성공한 번역 호출만 센다 (캐시 히트/실패는 제외).
통계는 부가 정보라서 저장소 오류는 무시한다.
"""

import logging

from comiclens.constants import StorageKey
from comiclens.infra.storage import KeyValueStore, StorageError, get_durable_store
from comiclens.schemas.base import BaseSchema
from comiclens.services.cache import now_ms

logger = logging.getLogger(__name__)


class UsageStats(BaseSchema):
    counts: dict[str, int] = {}
    last_reset: int | None = None  # epoch ms

    @property
    def total(self) -> int:
        return sum(self.counts.values())


async def get_usage(store: KeyValueStore | None = None) -> UsageStats:
    store = store or get_durable_store()
    try:
        data = await store.get([StorageKey.USAGE_STATS])
    except StorageError as e:
        logger.debug(f"통계 조회 실패: {e}")
        return UsageStats()

    raw = data.get(StorageKey.USAGE_STATS)
    if not isinstance(raw, dict):
        return UsageStats()
    try:
        return UsageStats.model_validate(raw)
    except ValueError:
        logger.debug("손상된 통계 항목, 초기값 사용")
        return UsageStats()


async def increment_usage(provider_id: str, store: KeyValueStore | None = None) -> None:
    store = store or get_durable_store()
    stats = await get_usage(store)
    counts = {**stats.counts, provider_id: stats.counts.get(provider_id, 0) + 1}
    updated = UsageStats(counts=counts, last_reset=stats.last_reset or now_ms())
    try:
        await store.set({StorageKey.USAGE_STATS: updated.model_dump()})
    except StorageError as e:
        logger.debug(f"통계 저장 실패: {e}")


async def reset_usage(store: KeyValueStore | None = None) -> UsageStats:
    store = store or get_durable_store()
    stats = UsageStats(last_reset=now_ms())
    try:
        await store.set({StorageKey.USAGE_STATS: stats.model_dump()})
    except StorageError as e:
        logger.debug(f"통계 초기화 실패: {e}")
    return stats
