"""provider 사용량 통계 테스트"""

from unittest.mock import AsyncMock

from comiclens.constants import StorageKey
from comiclens.infra.storage import MemoryStore, StorageError
from comiclens.services.stats import UsageStats, get_usage, increment_usage, reset_usage


class TestUsageStats:
    async def test_empty_by_default(self, durable_store: MemoryStore) -> None:
        stats = await get_usage()

        assert stats.counts == {}
        assert stats.total == 0
        assert stats.last_reset is None

    async def test_increment_per_provider(self, durable_store: MemoryStore) -> None:
        await increment_usage("gemini")
        await increment_usage("gemini")
        await increment_usage("claude")

        stats = await get_usage()

        assert stats.counts == {"gemini": 2, "claude": 1}
        assert stats.total == 3
        assert stats.last_reset is not None

    async def test_reset(self, durable_store: MemoryStore) -> None:
        await increment_usage("openai")

        reset = await reset_usage()

        assert reset.counts == {}
        assert (await get_usage()).counts == {}
        assert (await get_usage()).last_reset == reset.last_reset

    async def test_camel_case_output(self) -> None:
        dumped = UsageStats(counts={"gemini": 1}, last_reset=1).model_dump(by_alias=True)

        assert dumped == {"counts": {"gemini": 1}, "lastReset": 1}

    async def test_corrupt_entry_treated_as_empty(self, durable_store: MemoryStore) -> None:
        await durable_store.set({StorageKey.USAGE_STATS: {"counts": "broken"}})

        assert (await get_usage()).counts == {}

    async def test_storage_errors_ignored(self) -> None:
        store = MemoryStore()
        store.get = AsyncMock(side_effect=StorageError("down"))  # type: ignore[method-assign]
        store.set = AsyncMock(side_effect=StorageError("down"))  # type: ignore[method-assign]

        await increment_usage("gemini", store)

        assert (await get_usage(store)).counts == {}
