"""Claude (Anthropic Messages API) 구현체"""

import httpx

from comiclens.services.image import ImageData
from comiclens.services.providers.base import (
    ProviderError,
    raise_for_status,
    sanitize_error_message,
)
from comiclens.services.providers.prompt import build_translation_prompt

API_URL = "https://api.anthropic.com/v1/messages"
API_VERSION = "2023-06-01"
MAX_TOKENS = 32000


class ClaudeBackend:
    label = "Claude"

    def __init__(self, client: httpx.AsyncClient | None = None) -> None:
        self._client = client

    async def translate(
        self, image: ImageData, target_language: str, model: str, credentials: str
    ) -> str:
        if not credentials:
            raise ProviderError("CLAUDE_API_KEY가 설정되지 않았습니다", kind="missing_credentials")

        payload = {
            "model": model,
            "max_tokens": MAX_TOKENS,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "image",
                            "source": {
                                "type": "base64",
                                "media_type": image.mime_type,
                                "data": image.base64,
                            },
                        },
                        {"type": "text", "text": build_translation_prompt(target_language)},
                    ],
                }
            ],
        }
        headers = {"x-api-key": credentials, "anthropic-version": API_VERSION}

        client = self._client or httpx.AsyncClient(timeout=None)
        try:
            response = await client.post(API_URL, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise ProviderError(
                sanitize_error_message(f"Claude API 연결 실패: {e}", (credentials,)),
                kind="network",
            ) from e
        finally:
            if self._client is None:
                await client.aclose()

        raise_for_status(response, self.label)

        blocks = response.json().get("content") or []
        text = next(
            (b.get("text") for b in blocks if isinstance(b, dict) and b.get("type") == "text"),
            None,
        )
        if not text:
            raise ProviderError("Claude API 응답이 비어 있습니다", kind="empty_response")
        return text
