"""OpenAI (Chat Completions API) 구현체"""

import httpx

from comiclens.services.image import ImageData
from comiclens.services.providers.base import (
    ProviderError,
    raise_for_status,
    sanitize_error_message,
)
from comiclens.services.providers.prompt import build_translation_prompt

API_URL = "https://api.openai.com/v1/chat/completions"
MAX_COMPLETION_TOKENS = 32000


class OpenAIBackend:
    label = "ChatGPT"

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._client = client

    async def translate(
        self, image: ImageData, target_language: str, model: str, credentials: str
    ) -> str:
        if not credentials:
            raise ProviderError("OPENAI_API_KEY가 설정되지 않았습니다", kind="missing_credentials")

        payload = {
            "model": model,
            "max_completion_tokens": MAX_COMPLETION_TOKENS,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "image_url", "image_url": {"url": image.to_data_url()}},
                        {"type": "text", "text": build_translation_prompt(target_language)},
                    ],
                }
            ],
        }
        headers = {"Authorization": f"Bearer {credentials}"}

        client = self._client or httpx.AsyncClient(timeout=None)
        try:
            response = await client.post(API_URL, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise ProviderError(
                sanitize_error_message(f"ChatGPT API 연결 실패: {e}", (credentials,)),
                kind="network",
            ) from e
        finally:
            if self._client is None:
                await client.aclose()

        raise_for_status(response, self.label)

        choices = response.json().get("choices") or []
        content = choices[0].get("message", {}).get("content") if choices else None
        if not content:
            raise ProviderError("ChatGPT API 응답이 비어 있습니다", kind="empty_response")
        return content
