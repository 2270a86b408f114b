"""번역 요청 진입점

foreground 요청과 prefetch가 같은 경로를 쓴다:
설정 스냅샷 → 캐시 키 → (히트면 반환) → gateway 호출 → 결과가 있으면 캐시에 기록.
어떤 실패도 예외로 던지지 않고 TranslationFailure로 돌려준다.
"""

import logging
from collections.abc import Awaitable, Callable

from pydantic import model_validator

from comiclens.schemas.base import BaseSchema
from comiclens.schemas.translation import (
    TranslationFailure,
    TranslationOutcome,
    TranslationSuccess,
)
from comiclens.services.cache import CacheKey, CacheStore, get_cache_store
from comiclens.services.gateway import ProviderGateway, get_gateway
from comiclens.services.image import ImageData
from comiclens.services.preferences import Preferences, load_preferences
from comiclens.services.providers import ProviderError, sanitize_error_message

logger = logging.getLogger(__name__)


class TranslateRequest(BaseSchema):
    """번역 요청 (imageData 또는 imageUrl 중 하나는 필수)"""

    image_data: str | None = None
    image_url: str | None = None
    force_refresh: bool = False

    @model_validator(mode="after")
    def require_image(self) -> "TranslateRequest":
        if not self.image_data and not self.image_url:
            raise ValueError("imageData 또는 imageUrl이 필요합니다")
        return self


def resolve_resource_id(resource_id: str | None, image: ImageData | None) -> str | None:
    """blob URL이나 식별자가 없으면 이미지 내용 해시를 쓴다"""
    if resource_id and not resource_id.startswith("blob:"):
        return resource_id
    if image is not None:
        return image.content_hash
    return None


class TranslationCoordinator:
    def __init__(
        self,
        cache: CacheStore | None = None,
        gateway: ProviderGateway | None = None,
        preferences_loader: Callable[[], Awaitable[Preferences]] = load_preferences,
    ) -> None:
        self._cache = cache
        self._gateway = gateway
        self._load_preferences = preferences_loader

    @property
    def cache(self) -> CacheStore:
        return self._cache or get_cache_store()

    @property
    def gateway(self) -> ProviderGateway:
        return self._gateway or get_gateway()

    @staticmethod
    def cache_key(resource_id: str, preferences: Preferences) -> CacheKey:
        return CacheKey(
            resource_id=resource_id,
            target_language=preferences.target_language,
            provider_id=preferences.provider_id,
            model_id=preferences.active_model,
        )

    async def translate(
        self,
        image: ImageData | None,
        resource_id: str | None = None,
        *,
        force_refresh: bool = False,
    ) -> TranslationOutcome:
        try:
            preferences = await self._load_preferences()
        except Exception as e:
            logger.exception("설정 조회 실패")
            return TranslationFailure(error=f"설정을 불러오지 못했습니다: {type(e).__name__}")

        resolved_id = resolve_resource_id(resource_id, image)
        key = self.cache_key(resolved_id, preferences) if resolved_id else None

        if key is not None and not force_refresh:
            entry = await self.cache.get(key)
            if entry is not None:
                logger.debug(f"캐시 히트: {key.value}")
                return TranslationSuccess(annotations=entry.annotations, from_cache=True)

        if image is None:
            return TranslationFailure(error="번역할 이미지 데이터가 없습니다", kind="invalid_image")

        config = preferences.provider_config()
        try:
            annotations = await self.gateway.translate(
                image, preferences.target_language, config
            )
        except ProviderError as e:
            logger.warning(f"번역 실패 ({e.kind}): {e}")
            return TranslationFailure(error=str(e), kind=e.kind)
        except Exception as e:
            logger.exception("번역 중 예상하지 못한 오류")
            return TranslationFailure(
                error=sanitize_error_message(f"번역 실패: {e}", (config.api_key,)),
            )

        if annotations and key is not None:
            await self.cache.put(key, annotations)

        return TranslationSuccess(annotations=annotations)

    async def lookup(self, resource_id: str | None) -> TranslationSuccess | None:
        """캐시만 조회 (provider를 호출하지 않음). blob URL이나 식별자가 없으면 None"""
        resolved_id = resolve_resource_id(resource_id, None)
        if resolved_id is None:
            return None

        preferences = await self._load_preferences()
        entry = await self.cache.get(self.cache_key(resolved_id, preferences))
        if entry is None:
            return None
        logger.debug(f"캐시 히트: {resolved_id}")
        return TranslationSuccess(annotations=entry.annotations, from_cache=True)

    async def is_cached(self, resource_id: str) -> bool:
        return await self.lookup(resource_id) is not None


class _CoordinatorHolder:
    instance: TranslationCoordinator | None = None


def get_coordinator() -> TranslationCoordinator:
    if _CoordinatorHolder.instance is None:
        _CoordinatorHolder.instance = TranslationCoordinator()
    return _CoordinatorHolder.instance


def set_coordinator(coordinator: TranslationCoordinator | None) -> None:
    _CoordinatorHolder.instance = coordinator
