import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from comiclens.config import get_settings
from comiclens.infra.redis import close_redis
from comiclens.infra.storage import StorageError, get_session_store
from comiclens.routes.prefetch import router as prefetch_router
from comiclens.routes.preferences import router as preferences_router
from comiclens.routes.stats import router as stats_router
from comiclens.routes.translate import router as translate_router
from comiclens.services.prefetch import shutdown_orchestrator

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    await shutdown_orchestrator()
    try:
        # 세션 한정 캐시 (blob URL/img-hash)는 프로세스 종료와 함께 소멸
        await get_session_store().clear()
    except StorageError as e:
        logger.warning(f"세션 캐시 정리 실패: {e}")
    await close_redis()


app = FastAPI(lifespan=lifespan)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type"],
    max_age=600,
)

app.include_router(translate_router)
app.include_router(prefetch_router)
app.include_router(preferences_router)
app.include_router(stats_router)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
