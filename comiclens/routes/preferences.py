"""Settings API 라우트

provider/모델/언어를 바꾸면 기존 번역 캐시는 비워진다.
"""

import logging

from fastapi import APIRouter, HTTPException, status

from comiclens.infra.storage import StorageError
from comiclens.services.preferences import (
    Preferences,
    PreferencesUpdate,
    load_preferences,
    update_preferences,
)

router = APIRouter(prefix="/settings", tags=["settings"])
logger = logging.getLogger(__name__)


@router.get("", response_model=Preferences)
async def get_preferences() -> Preferences:
    return await load_preferences()


@router.put("", response_model=Preferences)
async def put_preferences(changes: PreferencesUpdate) -> Preferences:
    try:
        return await update_preferences(changes)
    except StorageError as e:
        logger.error(f"설정 저장 실패: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": "STORAGE_UNAVAILABLE", "message": "설정을 저장하지 못했습니다"},
        ) from None
