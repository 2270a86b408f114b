"""Provider Protocol

교체 가능한 vision 모델 백엔드를 위한 인터페이스와 공통 에러 처리.
"""

import json
import re
from dataclasses import dataclass
from typing import Literal, Protocol

import httpx

from comiclens.constants import ErrorMessage, Retry
from comiclens.services.image import ImageData

ProviderId = Literal["gemini", "claude", "openai", "ollama"]
PROVIDER_IDS: tuple[ProviderId, ...] = ("gemini", "claude", "openai", "ollama")

ProviderErrorKind = Literal[
    "rate_limited",
    "overloaded",
    "timeout",
    "missing_credentials",
    "empty_response",
    "api_error",
    "network",
]

PROVIDER_LABELS: dict[str, str] = {
    "gemini": "Gemini",
    "claude": "Claude",
    "openai": "ChatGPT",
    "ollama": "Ollama",
}


class ProviderError(Exception):
    """provider 호출 실패 (메시지는 항상 sanitize된 상태)"""

    def __init__(self, message: str, kind: ProviderErrorKind = "api_error") -> None:
        super().__init__(message)
        self.kind: ProviderErrorKind = kind


class TransientProviderError(ProviderError):
    """재시도 가능한 실패 (429 rate limit, 503 overload)"""

    def __init__(
        self,
        message: str,
        kind: ProviderErrorKind = "rate_limited",
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, kind)
        self.retry_after = retry_after


@dataclass(frozen=True)
class ProviderConfig:
    provider_id: ProviderId
    model: str
    api_key: str = ""
    endpoint: str = ""

    @property
    def label(self) -> str:
        return PROVIDER_LABELS.get(self.provider_id, self.provider_id)

    @property
    def requires_api_key(self) -> bool:
        return self.provider_id != "ollama"

    @property
    def credentials(self) -> str:
        """백엔드에 넘기는 자격 정보 (Ollama는 API 키 대신 endpoint)"""
        return self.endpoint if self.provider_id == "ollama" else self.api_key


class ProviderBackend(Protocol):
    """Vision 번역 인터페이스

    구현체:
    - GeminiBackend: google-genai SDK
    - ClaudeBackend / OpenAIBackend / OllamaBackend: REST (httpx)
    """

    async def translate(
        self, image: ImageData, target_language: str, model: str, credentials: str
    ) -> str:
        """이미지 안의 텍스트를 찾아 번역

        Returns:
            모델이 돌려준 원문 텍스트 (JSON 배열 기대, 파싱은 parser 담당)

        Raises:
            TransientProviderError: 429/503
            ProviderError: 그 외 실패
        """
        ...


_SECRET_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"key=[^&\s\"']+", re.IGNORECASE), "key=***"),
    (re.compile(r"sk-[^\s\"']+"), "sk-***"),
    (re.compile(r"Bearer\s+[^\s\"']+", re.IGNORECASE), "Bearer ***"),
    (re.compile(r"AIza[0-9A-Za-z_\-]{10,}"), "AIza***"),
)


def sanitize_error_message(
    message: str, secrets: tuple[str, ...] = (), max_length: int = ErrorMessage.MAX_LENGTH
) -> str:
    """API 키/토큰 제거 후 길이 제한"""
    for secret in secrets:
        if secret:
            message = message.replace(secret, "***")
    for pattern, replacement in _SECRET_PATTERNS:
        message = pattern.sub(replacement, message)
    return message[:max_length]


def extract_safe_error_message(body: str) -> str:
    """에러 응답 본문에서 error.message / error.type만 꺼낸다 (없으면 sanitize된 원문)"""
    try:
        parsed = json.loads(body)
    except (json.JSONDecodeError, TypeError):
        parsed = None

    if isinstance(parsed, dict):
        error = parsed.get("error")
        if isinstance(error, dict):
            message = error.get("message") or error.get("type")
            if isinstance(message, str) and message:
                return message[: ErrorMessage.MAX_BODY_LENGTH]
        elif isinstance(error, str) and error:
            return error[: ErrorMessage.MAX_BODY_LENGTH]

    return sanitize_error_message(body, max_length=ErrorMessage.MAX_BODY_LENGTH)


def parse_retry_after(value: str | None) -> float | None:
    """Retry-After 헤더(초) → 대기 시간. 최대 60초로 제한, 해석 불가/0 이하는 None"""
    if not value:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    if seconds <= 0:
        return None
    return min(seconds, Retry.MAX_RETRY_AFTER)


def raise_for_status(response: httpx.Response, label: str) -> None:
    """HTTP 응답 상태를 provider 에러로 변환"""
    if response.status_code == 429:
        raise TransientProviderError(
            f"{label} API 요청 한도 초과",
            kind="rate_limited",
            retry_after=parse_retry_after(response.headers.get("retry-after")),
        )
    if response.status_code == 503:
        raise TransientProviderError(
            f"{label} API 과부하",
            kind="overloaded",
            retry_after=parse_retry_after(response.headers.get("retry-after")),
        )
    if response.is_error:
        safe = extract_safe_error_message(response.text)
        raise ProviderError(f"{label} API 오류 ({response.status_code}): {safe}")
