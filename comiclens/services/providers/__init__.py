"""Provider 모듈

사용법:
    from comiclens.services.providers import get_backend

    backend = get_backend("gemini")
    raw_text = await backend.translate(image, "ja", model, api_key)

백엔드 선택 (preferences provider_id):
    - "gemini": Google Gemini API (기본값)
    - "claude": Anthropic Messages API
    - "openai": OpenAI Chat Completions API
    - "ollama": 로컬 Ollama 서버
"""

from comiclens.services.providers.base import (
    PROVIDER_IDS,
    PROVIDER_LABELS,
    ProviderBackend,
    ProviderConfig,
    ProviderError,
    ProviderId,
    TransientProviderError,
    extract_safe_error_message,
    sanitize_error_message,
)
from comiclens.services.providers.claude import ClaudeBackend
from comiclens.services.providers.gemini import GeminiBackend
from comiclens.services.providers.ollama import OllamaBackend
from comiclens.services.providers.openai import OpenAIBackend

__all__ = [
    "PROVIDER_IDS",
    "PROVIDER_LABELS",
    "ProviderBackend",
    "ProviderConfig",
    "ProviderError",
    "ProviderId",
    "TransientProviderError",
    "extract_safe_error_message",
    "get_backend",
    "sanitize_error_message",
    "set_backend",
]

_BACKEND_FACTORIES = {
    "gemini": GeminiBackend,
    "claude": ClaudeBackend,
    "openai": OpenAIBackend,
    "ollama": OllamaBackend,
}

_backends: dict[str, ProviderBackend] = {}


def get_backend(provider_id: str) -> ProviderBackend:
    """provider id에 해당하는 백엔드 반환"""
    if provider_id not in _backends:
        factory = _BACKEND_FACTORIES.get(provider_id)
        if factory is None:
            raise ValueError(f"Unknown provider: {provider_id!r}")
        _backends[provider_id] = factory()
    return _backends[provider_id]


def set_backend(provider_id: str, backend: ProviderBackend | None) -> None:
    """백엔드 교체 (테스트용). None이면 기본 구현으로 되돌린다"""
    if backend is None:
        _backends.pop(provider_id, None)
    else:
        _backends[provider_id] = backend
