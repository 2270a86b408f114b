"""런타임 설정 (preferences)

영구 저장소의 "settings" 키에 저장. 없는 필드는 Settings(.env) 기본값으로 채운다.
조회 결과는 프로세스 전역으로 캐시하고, 변경 시 invalidate_preferences()로 무효화.
API 키는 저장하지 않고 항상 Settings에서 읽는다.
"""

import logging
from typing import Any

from pydantic import ValidationError

from comiclens.config import Settings, get_settings
from comiclens.constants import StorageKey
from comiclens.infra.storage import KeyValueStore, StorageError, get_durable_store
from comiclens.schemas.base import BaseSchema
from comiclens.services.cache import get_cache_store
from comiclens.services.providers import ProviderConfig, ProviderId

logger = logging.getLogger(__name__)

# 바뀌면 기존 번역 캐시가 다른 결과를 가리키게 되는 필드
CACHE_AFFECTING_FIELDS = frozenset(
    {
        "provider_id",
        "gemini_model",
        "claude_model",
        "openai_model",
        "ollama_model",
        "target_language",
    }
)


class Preferences(BaseSchema):
    provider_id: ProviderId
    gemini_model: str
    claude_model: str
    openai_model: str
    ollama_model: str
    ollama_endpoint: str
    target_language: str
    prefetch_enabled: bool

    @classmethod
    def defaults(cls, settings: Settings | None = None) -> "Preferences":
        settings = settings or get_settings()
        return cls(
            provider_id=settings.provider_id,  # type: ignore[arg-type]
            gemini_model=settings.gemini_model,
            claude_model=settings.claude_model,
            openai_model=settings.openai_model,
            ollama_model=settings.ollama_model,
            ollama_endpoint=settings.ollama_endpoint,
            target_language=settings.target_language,
            prefetch_enabled=settings.prefetch_enabled,
        )

    @property
    def active_model(self) -> str:
        return {
            "gemini": self.gemini_model,
            "claude": self.claude_model,
            "openai": self.openai_model,
            "ollama": self.ollama_model,
        }[self.provider_id]

    def provider_config(self, settings: Settings | None = None) -> ProviderConfig:
        settings = settings or get_settings()
        api_keys = {
            "gemini": settings.gemini_api_key,
            "claude": settings.claude_api_key,
            "openai": settings.openai_api_key,
            "ollama": "",
        }
        return ProviderConfig(
            provider_id=self.provider_id,
            model=self.active_model,
            api_key=api_keys[self.provider_id],
            endpoint=self.ollama_endpoint,
        )


class PreferencesUpdate(BaseSchema):
    provider_id: ProviderId | None = None
    gemini_model: str | None = None
    claude_model: str | None = None
    openai_model: str | None = None
    ollama_model: str | None = None
    ollama_endpoint: str | None = None
    target_language: str | None = None
    prefetch_enabled: bool | None = None


class _PreferencesHolder:
    snapshot: Preferences | None = None


async def load_preferences(store: KeyValueStore | None = None) -> Preferences:
    """현재 설정 스냅샷 (캐시 우선)"""
    if _PreferencesHolder.snapshot is not None:
        return _PreferencesHolder.snapshot

    store = store or get_durable_store()
    defaults = Preferences.defaults()
    try:
        data = await store.get([StorageKey.PREFERENCES])
    except StorageError as e:
        logger.warning(f"설정 조회 실패, 기본값 사용: {e}")
        return defaults

    raw = data.get(StorageKey.PREFERENCES)
    preferences = defaults
    if isinstance(raw, dict):
        try:
            preferences = Preferences.model_validate({**defaults.model_dump(), **raw})
        except ValidationError as e:
            logger.warning(f"저장된 설정이 올바르지 않아 기본값 사용: {e.error_count()}개 오류")

    _PreferencesHolder.snapshot = preferences
    return preferences


def invalidate_preferences() -> None:
    _PreferencesHolder.snapshot = None


async def update_preferences(
    changes: PreferencesUpdate, store: KeyValueStore | None = None
) -> Preferences:
    """설정 변경 저장

    캐시에 영향을 주는 필드가 바뀌면 번역 캐시를 비운다.

    Raises:
        StorageError: 저장 실패
    """
    store = store or get_durable_store()
    invalidate_preferences()
    current = await load_preferences(store)

    patch: dict[str, Any] = changes.model_dump(exclude_none=True)
    updated = Preferences.model_validate({**current.model_dump(), **patch})

    await store.set({StorageKey.PREFERENCES: updated.model_dump()})
    invalidate_preferences()

    changed = {name for name in patch if getattr(current, name) != getattr(updated, name)}
    if changed & CACHE_AFFECTING_FIELDS:
        removed = await get_cache_store().clear()
        logger.info(f"설정 변경 ({', '.join(sorted(changed))}), 번역 캐시 {removed}개 삭제")

    return updated
