"""Provider Gateway

백엔드 종류와 상관없이 같은 방식으로 호출한다:
자격 정보 확인 → (timeout + 429/503 재시도) → 응답 파싱 → 사용량 기록.
"""

import asyncio
import logging
from collections.abc import Callable

from comiclens.config import get_settings
from comiclens.constants import Retry
from comiclens.schemas.translation import Annotation
from comiclens.services.image import ImageData
from comiclens.services.parser import parse_response
from comiclens.services.providers import (
    ProviderBackend,
    ProviderConfig,
    ProviderError,
    TransientProviderError,
    get_backend,
    sanitize_error_message,
)
from comiclens.services.stats import increment_usage

logger = logging.getLogger(__name__)


async def _wait(seconds: float) -> None:
    await asyncio.sleep(seconds)


def backoff_seconds(error: TransientProviderError, attempt: int) -> float:
    """Retry-After가 있으면 그 값(최대 60초), 없으면 (attempt + 1) * base

    429는 길게(10초), 503은 짧게(3초) 기다린다.
    """
    if error.retry_after:
        return min(error.retry_after, Retry.MAX_RETRY_AFTER)
    base = Retry.OVERLOAD_BACKOFF if error.kind == "overloaded" else Retry.RATE_LIMIT_BACKOFF
    return (attempt + 1) * base


class ProviderGateway:
    def __init__(
        self,
        timeout: float | None = None,
        max_attempts: int = Retry.MAX_ATTEMPTS,
        backend_resolver: Callable[[str], ProviderBackend] = get_backend,
    ) -> None:
        self._timeout = timeout if timeout is not None else get_settings().provider_timeout
        self._max_attempts = max_attempts
        self._resolve = backend_resolver

    async def translate(
        self, image: ImageData, target_language: str, config: ProviderConfig
    ) -> list[Annotation]:
        """이미지 번역

        Raises:
            ProviderError: 자격 정보 누락, 재시도 소진, timeout, API 오류 (메시지는 sanitize됨)
        """
        if config.requires_api_key and not config.api_key:
            raise ProviderError(
                f"{config.label} API 키가 설정되지 않았습니다", kind="missing_credentials"
            )

        backend = self._resolve(config.provider_id)
        raw_text = await self._call_with_retry(backend, image, target_language, config)

        result = parse_response(raw_text, image.width, image.height)
        if result.failed:
            logger.warning(f"{config.label} 응답 파싱 실패, 빈 결과 반환")

        await increment_usage(config.provider_id)
        return result.annotations

    async def _call_with_retry(
        self,
        backend: ProviderBackend,
        image: ImageData,
        target_language: str,
        config: ProviderConfig,
    ) -> str:
        secrets = (config.api_key,)
        last_error: TransientProviderError | None = None

        for attempt in range(self._max_attempts):
            try:
                return await asyncio.wait_for(
                    backend.translate(image, target_language, config.model, config.credentials),
                    timeout=self._timeout,
                )
            except TimeoutError as e:
                raise ProviderError(
                    f"{config.label} API 응답 시간 초과 ({self._timeout:g}초)", kind="timeout"
                ) from e
            except TransientProviderError as e:
                last_error = e
                if attempt + 1 >= self._max_attempts:
                    break
                wait = backoff_seconds(e, attempt)
                logger.warning(
                    f"{config.label} {e.kind} (시도 {attempt + 1}/{self._max_attempts}), "
                    f"{wait:g}초 후 재시도"
                )
                await _wait(wait)
            except ProviderError as e:
                raise ProviderError(sanitize_error_message(str(e), secrets), e.kind) from e
            except Exception as e:
                logger.exception(f"{config.label} 예상하지 못한 오류")
                raise ProviderError(
                    sanitize_error_message(f"{config.label} API 오류: {e}", secrets)
                ) from e

        raise _exhausted_error(config.label, last_error)


def _exhausted_error(label: str, error: TransientProviderError | None) -> ProviderError:
    if error is not None and error.kind == "overloaded":
        return ProviderError(
            f"{label} API가 과부하 상태입니다. 잠시 후 다시 시도해주세요", kind="overloaded"
        )
    return ProviderError(
        f"{label} API 요청 한도를 초과했습니다. 잠시 후 다시 시도해주세요", kind="rate_limited"
    )


class _GatewayHolder:
    instance: ProviderGateway | None = None


def get_gateway() -> ProviderGateway:
    if _GatewayHolder.instance is None:
        _GatewayHolder.instance = ProviderGateway()
    return _GatewayHolder.instance


def set_gateway(gateway: ProviderGateway | None) -> None:
    _GatewayHolder.instance = gateway
