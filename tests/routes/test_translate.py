from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from comiclens.services.coordinator import TranslationCoordinator
from comiclens.services.image import ImageData, ImageFetchError
from comiclens.services.providers import ProviderError, TransientProviderError
from tests.conftest import FakeBackend, make_data_url, make_test_image

ROUTE_MODULE = "comiclens.routes.translate"
GATEWAY_MODULE = "comiclens.services.gateway"

URL = "https://cdn.example.com/ch1/001.jpg"


def fetched_image() -> ImageData:
    return ImageData.from_bytes(make_test_image(1000, 1000), "image/jpeg")


class TestTranslatePost:
    def test_translate_image_data(
        self, client: TestClient, coordinator: TranslationCoordinator, fake_backend: FakeBackend
    ) -> None:
        response = client.post("/translate", json={"imageData": make_data_url(), "imageUrl": URL})

        assert response.status_code == 200
        data = response.json()
        assert data["fromCache"] is False
        assert data["annotations"][0]["translated"] == "やあ"
        assert set(data["annotations"][0]["bbox"]) == {"top", "left", "width", "height"}
        assert len(fake_backend.calls) == 1

    def test_second_request_served_from_cache(
        self, client: TestClient, coordinator: TranslationCoordinator, fake_backend: FakeBackend
    ) -> None:
        client.post("/translate", json={"imageData": make_data_url(), "imageUrl": URL})
        response = client.post("/translate", json={"imageData": make_data_url(), "imageUrl": URL})

        assert response.status_code == 200
        assert response.json()["fromCache"] is True
        assert len(fake_backend.calls) == 1

    def test_image_url_fetched_on_miss_only(
        self, client: TestClient, coordinator: TranslationCoordinator
    ) -> None:
        with patch(f"{ROUTE_MODULE}.fetch_image", new_callable=AsyncMock) as mock_fetch:
            mock_fetch.return_value = fetched_image()

            first = client.post("/translate", json={"imageUrl": URL})
            second = client.post("/translate", json={"imageUrl": f"{URL}?token=new"})

        assert first.status_code == 200
        assert second.json()["fromCache"] is True
        mock_fetch.assert_awaited_once_with(URL)

    def test_url_miss_translates_once(
        self, client: TestClient, coordinator: TranslationCoordinator
    ) -> None:
        with (
            patch(f"{ROUTE_MODULE}.fetch_image", new_callable=AsyncMock) as mock_fetch,
            patch.object(coordinator, "translate", wraps=coordinator.translate) as spy,
        ):
            mock_fetch.return_value = fetched_image()

            response = client.post("/translate", json={"imageUrl": URL})

        assert response.status_code == 200
        spy.assert_awaited_once()
        assert spy.await_args.args[0] is not None

    def test_force_refresh_refetches(
        self, client: TestClient, coordinator: TranslationCoordinator, fake_backend: FakeBackend
    ) -> None:
        with patch(f"{ROUTE_MODULE}.fetch_image", new_callable=AsyncMock) as mock_fetch:
            mock_fetch.return_value = fetched_image()

            client.post("/translate", json={"imageUrl": URL})
            response = client.post("/translate", json={"imageUrl": URL, "forceRefresh": True})

        assert response.json()["fromCache"] is False
        assert mock_fetch.await_count == 2
        assert len(fake_backend.calls) == 2

    def test_missing_image(self, client: TestClient, coordinator: TranslationCoordinator) -> None:
        response = client.post("/translate", json={})

        assert response.status_code == 422

    def test_invalid_image_data(self, client: TestClient, coordinator: TranslationCoordinator) -> None:
        response = client.post("/translate", json={"imageData": "data:text/plain;base64,aGk="})

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "INVALID_IMAGE"

    def test_oversized_image_data(
        self, client: TestClient, coordinator: TranslationCoordinator, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)

        response = client.post("/translate", json={"imageData": make_data_url(100, 100)})

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "INVALID_IMAGE"

    def test_non_https_url_rejected(self, client: TestClient, coordinator: TranslationCoordinator) -> None:
        response = client.post("/translate", json={"imageUrl": "http://cdn.example.com/001.jpg"})

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "INVALID_IMAGE"

    def test_fetch_failure(self, client: TestClient, coordinator: TranslationCoordinator) -> None:
        with patch(f"{ROUTE_MODULE}.fetch_image", new_callable=AsyncMock) as mock_fetch:
            mock_fetch.side_effect = ImageFetchError("이미지 접근이 거부되었습니다 (403)")

            response = client.post("/translate", json={"imageUrl": URL})

        assert response.status_code == 502
        assert response.json()["detail"]["code"] == "IMAGE_FETCH_FAILED"

    def test_rate_limited(
        self, client: TestClient, coordinator: TranslationCoordinator, fake_backend: FakeBackend
    ) -> None:
        fake_backend.responses = [TransientProviderError("Ollama API 요청 한도 초과")]

        with patch(f"{GATEWAY_MODULE}._wait", new_callable=AsyncMock):
            response = client.post("/translate", json={"imageData": make_data_url()})

        assert response.status_code == 429
        assert response.json()["detail"]["code"] == "RATE_LIMITED"
        assert len(fake_backend.calls) == 3

    def test_provider_failure(
        self, client: TestClient, coordinator: TranslationCoordinator, fake_backend: FakeBackend
    ) -> None:
        fake_backend.responses = [ProviderError("Ollama가 실행 중이 아닙니다", kind="network")]

        response = client.post("/translate", json={"imageData": make_data_url()})

        assert response.status_code == 502
        assert response.json()["detail"] == {
            "code": "TRANSLATION_FAILED",
            "message": "Ollama가 실행 중이 아닙니다",
        }
