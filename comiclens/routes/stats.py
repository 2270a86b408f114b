"""API 사용량 통계 라우트"""

from fastapi import APIRouter

from comiclens.services.stats import UsageStats, get_usage, reset_usage

router = APIRouter(prefix="/stats", tags=["stats"])


@router.get("", response_model=UsageStats)
async def read_stats() -> UsageStats:
    return await get_usage()


@router.delete("", response_model=UsageStats)
async def delete_stats() -> UsageStats:
    return await reset_usage()
