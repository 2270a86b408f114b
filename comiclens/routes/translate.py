"""Translate API 라우트

이미지 1장 번역 엔드포인트.

imageData(data URL)가 있으면 그대로 쓰고, imageUrl만 있으면
캐시를 먼저 확인한 뒤 미스일 때만 이미지를 내려받는다.
"""

import logging

from fastapi import APIRouter, HTTPException, status

from comiclens.schemas.translation import TranslationFailure, TranslationSuccess
from comiclens.services.coordinator import TranslateRequest, get_coordinator
from comiclens.services.image import ImageData, ImageFetchError, fetch_image
from comiclens.utils.url import is_allowed_image_url

router = APIRouter(prefix="/translate", tags=["translate"])
logger = logging.getLogger(__name__)

_FAILURE_STATUS: dict[str, tuple[int, str]] = {
    "rate_limited": (status.HTTP_429_TOO_MANY_REQUESTS, "RATE_LIMITED"),
    "overloaded": (status.HTTP_503_SERVICE_UNAVAILABLE, "PROVIDER_OVERLOADED"),
    "missing_credentials": (status.HTTP_400_BAD_REQUEST, "MISSING_CREDENTIALS"),
    "invalid_image": (status.HTTP_400_BAD_REQUEST, "INVALID_IMAGE"),
}


def _failure_to_http(failure: TranslationFailure) -> HTTPException:
    status_code, code = _FAILURE_STATUS.get(
        failure.kind, (status.HTTP_502_BAD_GATEWAY, "TRANSLATION_FAILED")
    )
    return HTTPException(status_code=status_code, detail={"code": code, "message": failure.error})


@router.post("", response_model=TranslationSuccess)
async def translate(request: TranslateRequest) -> TranslationSuccess:
    """이미지 번역 (캐시 히트면 fromCache=true)"""
    coordinator = get_coordinator()
    image: ImageData | None = None

    if request.image_data:
        try:
            image = ImageData.from_data_url(request.image_data)
        except ValueError as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"code": "INVALID_IMAGE", "message": str(e)},
            ) from None

    if image is None and not request.force_refresh:
        cached = await coordinator.lookup(request.image_url)
        if cached is not None:
            return cached

    if image is None:
        if not is_allowed_image_url(request.image_url):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"code": "INVALID_IMAGE", "message": "https 이미지 URL만 지원합니다"},
            )
        try:
            image = await fetch_image(request.image_url)  # type: ignore[arg-type]
        except ImageFetchError as e:
            logger.warning(f"이미지 다운로드 실패: {e}")
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail={"code": "IMAGE_FETCH_FAILED", "message": str(e)},
            ) from None

    outcome = await coordinator.translate(
        image, request.image_url, force_refresh=request.force_refresh
    )
    if isinstance(outcome, TranslationFailure):
        raise _failure_to_http(outcome)
    return outcome
