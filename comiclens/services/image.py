"""이미지 획득

원격 URL 또는 data URL을 ImageData(바이트 + MIME + 크기)로 변환한다.
크기는 Pillow로 헤더만 읽고, 읽지 못하면 None (parser 기본값 사용).
"""

import base64
import binascii
import io
import logging
import re
from dataclasses import dataclass
from typing import Self

import httpx
from PIL import Image, UnidentifiedImageError

from comiclens.constants import ImageDefaults
from comiclens.utils.url import compute_image_hash, is_allowed_image_url

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "image/jpeg"

_MIME_TYPE = re.compile(r"^image/[\w.+-]+", re.IGNORECASE)
_DATA_URL = re.compile(r"^data:(image/[\w.+-]+);base64,(.*)$", re.DOTALL | re.IGNORECASE)


class ImageFetchError(Exception):
    pass


def sanitize_mime_type(value: str | None) -> str:
    """image/* 만 허용. 파라미터(charset 등)는 버린다"""
    match = _MIME_TYPE.match((value or "").strip())
    return match.group(0).lower() if match else DEFAULT_MIME_TYPE


def read_dimensions(data: bytes) -> tuple[int, int] | None:
    """헤더에서 (width, height)를 읽는다. 이미지가 아니면 None

    Raises:
        ValueError: 해상도가 Pillow 허용 한도(decompression bomb)를 넘는 경우
    """
    try:
        with Image.open(io.BytesIO(data)) as image:
            return image.size
    except Image.DecompressionBombError as e:
        raise ValueError(f"이미지 해상도가 너무 큽니다: {e}") from e
    except (UnidentifiedImageError, OSError):
        return None


@dataclass(frozen=True)
class ImageData:
    data: bytes
    mime_type: str = DEFAULT_MIME_TYPE
    width: int | None = None
    height: int | None = None

    @classmethod
    def from_bytes(cls, data: bytes, mime_type: str | None = None) -> Self:
        """Raises:
        ValueError: 해상도가 허용 한도를 넘는 경우
        """
        dimensions = read_dimensions(data)
        width, height = dimensions if dimensions else (None, None)
        return cls(data=data, mime_type=sanitize_mime_type(mime_type), width=width, height=height)

    @classmethod
    def from_data_url(cls, data_url: str) -> Self:
        """Raises:
        ValueError: data:image/...;base64, 형식이 아니거나 base64가 깨졌거나 해상도가 너무 큰 경우
        """
        match = _DATA_URL.match(data_url.strip())
        if not match:
            raise ValueError("data:image/*;base64 형식이 아닙니다")
        try:
            data = base64.b64decode(match.group(2), validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"base64 디코딩 실패: {e}") from e
        if not data:
            raise ValueError("빈 이미지 데이터")
        return cls.from_bytes(data, match.group(1))

    @property
    def base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    @property
    def content_hash(self) -> str:
        return compute_image_hash(self.data)

    def to_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.base64}"


async def fetch_image(
    url: str,
    client: httpx.AsyncClient | None = None,
    max_bytes: int = ImageDefaults.MAX_FETCH_BYTES,
) -> ImageData:
    """원격 이미지 다운로드

    Raises:
        ImageFetchError: https가 아닌 URL, 네트워크 오류, 401/403, 비정상 응답, 용량 초과
    """
    if not is_allowed_image_url(url):
        raise ImageFetchError("https 이미지 URL만 지원합니다")

    owns_client = client is None
    http = client or httpx.AsyncClient(follow_redirects=True, timeout=30.0)
    try:
        response = await http.get(url)
    except httpx.HTTPError as e:
        raise ImageFetchError(f"이미지 다운로드 실패 (네트워크 오류): {e}") from e
    finally:
        if owns_client:
            await http.aclose()

    if response.status_code in (401, 403):
        raise ImageFetchError(
            f"이미지 접근이 거부되었습니다 ({response.status_code}). 인증이 필요한 이미지일 수 있습니다"
        )
    if response.is_error:
        raise ImageFetchError(f"이미지 다운로드 실패: {response.status_code}")

    data = response.content
    if not data:
        raise ImageFetchError("빈 이미지 응답")
    if len(data) > max_bytes:
        raise ImageFetchError(f"이미지가 너무 큽니다: {len(data)} bytes (최대 {max_bytes} bytes)")

    try:
        return ImageData.from_bytes(data, response.headers.get("content-type"))
    except ValueError as e:
        raise ImageFetchError(str(e)) from e
