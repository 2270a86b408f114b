"""Gemini 기반 vision 번역 구현체"""

# pyright: reportMissingTypeStubs=false

import logging

import httpx
from google import genai
from google.genai import errors, types

from comiclens.services.image import ImageData
from comiclens.services.providers.base import (
    ProviderError,
    TransientProviderError,
    parse_retry_after,
    sanitize_error_message,
)
from comiclens.services.providers.prompt import build_translation_prompt

logger = logging.getLogger(__name__)

MAX_OUTPUT_TOKENS = 32000


class GeminiBackend:
    """Google Gemini API (google-genai SDK)"""

    label = "Gemini"

    async def translate(
        self, image: ImageData, target_language: str, model: str, credentials: str
    ) -> str:
        if not credentials:
            raise ProviderError("GEMINI_API_KEY가 설정되지 않았습니다", kind="missing_credentials")

        client = genai.Client(api_key=credentials)
        try:
            response = await client.aio.models.generate_content(
                model=model,
                contents=[
                    types.Part.from_bytes(data=image.data, mime_type=image.mime_type),
                    build_translation_prompt(target_language),
                ],
                config=types.GenerateContentConfig(
                    temperature=0.2,
                    max_output_tokens=MAX_OUTPUT_TOKENS,
                ),
            )
        except errors.APIError as e:
            raise self._convert_error(e, credentials) from e
        except httpx.HTTPError as e:
            raise ProviderError(
                sanitize_error_message(f"Gemini API 연결 실패: {e}", (credentials,)),
                kind="network",
            ) from e

        if not response.text:
            raise ProviderError("Gemini API 응답이 비어 있습니다", kind="empty_response")
        return response.text

    def _convert_error(self, error: errors.APIError, api_key: str) -> ProviderError:
        headers = getattr(error.response, "headers", None)
        retry_after = parse_retry_after(headers.get("retry-after") if headers else None)

        if error.code == 429:
            return TransientProviderError(
                "Gemini API 요청 한도 초과", kind="rate_limited", retry_after=retry_after
            )
        if error.code == 503:
            return TransientProviderError(
                "Gemini API 과부하", kind="overloaded", retry_after=retry_after
            )

        message = sanitize_error_message(
            f"Gemini API 오류 ({error.code}): {error.message or error.status or ''}", (api_key,)
        )
        logger.error(message)
        return ProviderError(message)
