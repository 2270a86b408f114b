"""Ollama (로컬 vision 모델) 구현체

API 키 대신 endpoint를 credentials로 받는다.
"""

import httpx

from comiclens.services.image import ImageData
from comiclens.services.providers.base import ProviderError, raise_for_status
from comiclens.services.providers.prompt import build_translation_prompt

DEFAULT_ENDPOINT = "http://localhost:11434"


class OllamaBackend:
    label = "Ollama"

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._client = client

    async def translate(
        self, image: ImageData, target_language: str, model: str, credentials: str
    ) -> str:
        endpoint = (credentials or DEFAULT_ENDPOINT).rstrip("/")
        payload = {
            "model": model,
            "messages": [
                {
                    "role": "user",
                    "content": build_translation_prompt(target_language),
                    "images": [image.base64],
                }
            ],
            "stream": False,
        }

        client = self._client or httpx.AsyncClient(timeout=None)
        try:
            response = await client.post(f"{endpoint}/api/chat", json=payload)
        except httpx.HTTPError as e:
            raise ProviderError(
                "Ollama가 실행 중이 아닙니다. 실행 후 다시 시도해주세요", kind="network"
            ) from e
        finally:
            if self._client is None:
                await client.aclose()

        if response.status_code == 403:
            raise ProviderError(
                "Ollama 접근이 거부되었습니다 (403). OLLAMA_ORIGINS 설정 후 Ollama를 재시작해주세요"
            )
        if response.status_code == 404:
            raise ProviderError(f'모델 "{model}"이(가) 설치되어 있지 않습니다')
        raise_for_status(response, self.label)

        content = (response.json().get("message") or {}).get("content")
        if not content:
            raise ProviderError("Ollama 응답이 비어 있습니다", kind="empty_response")
        return content
