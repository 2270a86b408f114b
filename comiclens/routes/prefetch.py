"""Prefetch API 라우트"""

from fastapi import APIRouter, status

from comiclens.schemas.translation import PrefetchProgress
from comiclens.services.prefetch import PrefetchAccepted, PrefetchRequest, get_orchestrator

router = APIRouter(prefix="/prefetch", tags=["prefetch"])


@router.post("", response_model=PrefetchAccepted, status_code=status.HTTP_202_ACCEPTED)
async def enqueue_prefetch(request: PrefetchRequest) -> PrefetchAccepted:
    """prefetch 큐 교체 요청 (debounce 후 백그라운드 처리)"""
    accepted = await get_orchestrator().enqueue(request.targets())
    return PrefetchAccepted(accepted=accepted)


@router.get("/progress", response_model=PrefetchProgress)
async def get_progress() -> PrefetchProgress:
    return get_orchestrator().progress
