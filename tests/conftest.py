import base64
from collections.abc import Generator
from io import BytesIO

import fakeredis
import pytest
from fakeredis import FakeAsyncRedis
from fastapi.testclient import TestClient
from PIL import Image

from comiclens.infra.redis import set_redis
from comiclens.infra.storage import MemoryStore, set_durable_store, set_session_store
from comiclens.main import app
from comiclens.schemas.translation import Annotation, BoundingBox
from comiclens.services.cache import CacheStore, set_cache_store
from comiclens.services.coordinator import TranslationCoordinator, set_coordinator
from comiclens.services.gateway import ProviderGateway, set_gateway
from comiclens.services.image import ImageData
from comiclens.services.preferences import Preferences, invalidate_preferences
from comiclens.services.prefetch import set_orchestrator

SAMPLE_RESPONSE = (
    '[{"original":"Hi","translated":"やあ","type":"speech","box":[100,200,300,600]}]'
)


def make_test_image(width: int = 800, height: int = 1200, fmt: str = "JPEG") -> bytes:
    """테스트용 실제 이미지 바이트 생성"""
    img = Image.new("RGB", (width, height), color="red")
    buf = BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


def make_data_url(width: int = 800, height: int = 1200) -> str:
    return "data:image/jpeg;base64," + base64.b64encode(make_test_image(width, height)).decode()


def make_annotation(translated: str = "こんにちは", top: float = 10.0) -> Annotation:
    return Annotation(
        bbox=BoundingBox(top=top, left=20.0, width=30.0, height=10.0),
        original="Hello",
        translated=translated,
    )


def make_preferences(**overrides: object) -> Preferences:
    return Preferences.defaults().model_copy(update=overrides)


class FakeBackend:
    """고정 응답을 돌려주는 provider 백엔드"""

    def __init__(self, responses: list[str | Exception] | None = None) -> None:
        self.responses = list(responses or [SAMPLE_RESPONSE])
        self.calls: list[tuple[str, str, str]] = []

    async def translate(
        self, image: ImageData, target_language: str, model: str, credentials: str
    ) -> str:
        self.calls.append((target_language, model, credentials))
        response = self.responses[min(len(self.calls), len(self.responses)) - 1]
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture(autouse=True)
def reset_singletons() -> Generator[None, None, None]:
    yield
    set_cache_store(None)
    set_gateway(None)
    set_coordinator(None)
    set_orchestrator(None)
    set_durable_store(None)
    set_session_store(None)
    invalidate_preferences()


@pytest.fixture
def fake_redis() -> Generator[FakeAsyncRedis, None, None]:
    r = FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)
    set_redis(r)
    yield r
    set_redis(None)


@pytest.fixture
def durable_store() -> MemoryStore:
    store = MemoryStore()
    set_durable_store(store)
    return store


@pytest.fixture
def session_store() -> MemoryStore:
    store = MemoryStore()
    set_session_store(store)
    return store


@pytest.fixture
def cache_store(durable_store: MemoryStore, session_store: MemoryStore) -> CacheStore:
    store = CacheStore(durable=durable_store, session=session_store)
    set_cache_store(store)
    return store


@pytest.fixture
def test_image() -> ImageData:
    return ImageData.from_bytes(make_test_image(1000, 1000), "image/jpeg")


@pytest.fixture
def client(durable_store: MemoryStore, session_store: MemoryStore) -> TestClient:
    return TestClient(app)


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def coordinator(
    durable_store: MemoryStore, session_store: MemoryStore, fake_backend: FakeBackend
) -> TranslationCoordinator:
    """로컬 Ollama 설정 + 가짜 백엔드로 동작하는 coordinator"""
    preferences = make_preferences(provider_id="ollama")

    async def load() -> Preferences:
        return preferences

    instance = TranslationCoordinator(
        cache=CacheStore(durable=durable_store, session=session_store),
        gateway=ProviderGateway(timeout=5.0, backend_resolver=lambda _: fake_backend),
        preferences_loader=load,
    )
    set_coordinator(instance)
    return instance
