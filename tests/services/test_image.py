"""이미지 획득 테스트"""

import base64

import httpx
import pytest
from PIL import Image

from comiclens.services.image import (
    ImageData,
    ImageFetchError,
    fetch_image,
    sanitize_mime_type,
)
from tests.conftest import make_data_url, make_test_image

URL = "https://cdn.example.com/ch1/001.png"


def mock_client(transport: httpx.MockTransport) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=transport)


class TestImageData:
    def test_from_data_url_reads_dimensions(self) -> None:
        image = ImageData.from_data_url(make_data_url(640, 480))

        assert image.mime_type == "image/jpeg"
        assert (image.width, image.height) == (640, 480)

    @pytest.mark.parametrize(
        "value",
        ["", "https://x/1.png", "data:text/html;base64,PGI+", "data:image/png;base64,@@@", "data:image/png;base64,"],
    )
    def test_invalid_data_url(self, value: str) -> None:
        with pytest.raises(ValueError):
            ImageData.from_data_url(value)

    def test_unreadable_bytes_have_no_dimensions(self) -> None:
        image = ImageData.from_bytes(b"not an image", "image/png")

        assert image.width is None
        assert image.height is None

    def test_oversized_resolution_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        # 2 * MAX_IMAGE_PIXELS를 넘으면 Pillow가 DecompressionBombError를 던진다
        monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)

        with pytest.raises(ValueError, match="해상도"):
            ImageData.from_bytes(make_test_image(100, 100, "PNG"), "image/png")

    def test_oversized_data_url_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)

        with pytest.raises(ValueError):
            ImageData.from_data_url(make_data_url(100, 100))

    def test_to_data_url(self) -> None:
        image = ImageData(data=b"abc", mime_type="image/png")

        assert image.to_data_url() == "data:image/png;base64," + base64.b64encode(b"abc").decode()

    def test_content_hash_stable(self) -> None:
        assert ImageData(data=b"abc").content_hash == ImageData(data=b"abc").content_hash
        assert ImageData(data=b"abc").content_hash != ImageData(data=b"abd").content_hash

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("image/png", "image/png"),
            ("IMAGE/WEBP; charset=binary", "image/webp"),
            ("text/html", "image/jpeg"),
            (None, "image/jpeg"),
        ],
    )
    def test_sanitize_mime_type(self, value: str | None, expected: str) -> None:
        assert sanitize_mime_type(value) == expected


class TestFetchImage:
    async def test_success(self) -> None:
        data = make_test_image(300, 200, "PNG")

        def handler(request: httpx.Request) -> httpx.Response:
            assert str(request.url) == URL
            return httpx.Response(200, content=data, headers={"content-type": "image/png"})

        async with mock_client(httpx.MockTransport(handler)) as client:
            image = await fetch_image(URL, client)

        assert image.data == data
        assert image.mime_type == "image/png"
        assert (image.width, image.height) == (300, 200)

    async def test_non_https_rejected(self) -> None:
        with pytest.raises(ImageFetchError, match="https"):
            await fetch_image("http://cdn.example.com/001.png")

    @pytest.mark.parametrize("status", [401, 403])
    async def test_access_denied(self, status: int) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(status))

        async with mock_client(transport) as client:
            with pytest.raises(ImageFetchError, match=str(status)):
                await fetch_image(URL, client)

    async def test_server_error(self) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(500))

        async with mock_client(transport) as client:
            with pytest.raises(ImageFetchError, match="500"):
                await fetch_image(URL, client)

    async def test_network_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused")

        async with mock_client(httpx.MockTransport(handler)) as client:
            with pytest.raises(ImageFetchError, match="네트워크"):
                await fetch_image(URL, client)

    async def test_empty_body(self) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(200, content=b""))

        async with mock_client(transport) as client:
            with pytest.raises(ImageFetchError):
                await fetch_image(URL, client)

    async def test_too_large(self) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(200, content=b"x" * 11))

        async with mock_client(transport) as client:
            with pytest.raises(ImageFetchError, match="너무 큽니다"):
                await fetch_image(URL, client, max_bytes=10)

    async def test_oversized_resolution(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)
        data = make_test_image(100, 100, "PNG")
        transport = httpx.MockTransport(lambda request: httpx.Response(200, content=data))

        async with mock_client(transport) as client:
            with pytest.raises(ImageFetchError, match="해상도"):
                await fetch_image(URL, client)
