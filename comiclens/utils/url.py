"""이미지 식별자(URL) 유틸리티

캐시 키는 정규화된 URL 기준이라서, 인증 토큰만 다른 같은 이미지는 같은 키가 된다.
"""

import hashlib
import re
from urllib.parse import urlsplit

from comiclens.constants import StorageKey

_DEFAULT_PORTS = {"http": 80, "https": 443}
_CREDENTIALS_PATTERN = re.compile(r"^[^:]+://[^@/]*@")


def normalize_image_url(url: str | None) -> str:
    """URL에서 쿼리 파라미터, 프래그먼트, 인증 정보를 제거"""
    if not url:
        return ""

    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError:
        parts, port = None, None

    if parts is not None and parts.scheme and parts.netloc:
        host = parts.hostname or ""
        if ":" in host:
            host = f"[{host}]"
        if port is not None and _DEFAULT_PORTS.get(parts.scheme) != port:
            host = f"{host}:{port}"
        return f"{parts.scheme}://{host}{parts.path}"

    stripped = _CREDENTIALS_PATTERN.sub("", url)
    return stripped.split("?")[0].split("#")[0]


def is_session_only_url(url: str | None) -> bool:
    """blob: URL이나 img-hash: 식별자는 세션 한정 캐시를 사용"""
    return isinstance(url, str) and (
        url.startswith("blob:") or url.startswith(StorageKey.SESSION_HASH_PREFIX)
    )


def is_allowed_image_url(url: str | None) -> bool:
    """원격 이미지 fetch 허용 여부 (https만)"""
    if not url:
        return False
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    return parts.scheme == "https" and bool(parts.netloc)


def compute_image_hash(data: bytes) -> str:
    """이미지 바이트의 SHA-256 기반 세션 식별자 (blob URL은 페이지 이동마다 바뀜)"""
    return StorageKey.SESSION_HASH_PREFIX + hashlib.sha256(data).hexdigest()


def image_filename(url: str) -> str:
    """정규화된 URL의 마지막 경로 조각 (토큰이 바뀌어도 같은 페이지 판별용)"""
    return normalize_image_url(url).rstrip("/").rsplit("/", 1)[-1]
