"""Prefetch Orchestrator

사용자가 보고 있는 페이지 앞뒤를 미리 번역해 캐시에 채운다.

상태 전이:
    idle ──enqueue──▶ (debounce) ──▶ active: 큐 통째로 교체 + generation 증가
    active ──큐 소진──▶ done: processed = total 강제, 이벤트 발행

- 큐 교체가 유일한 취소 수단. 아직 시작하지 않은 항목만 버려지고,
  처리 중인 항목은 끝까지 진행된다.
- 루프는 항상 하나. _running 플래그는 첫 await 전에 동기적으로 세운다.
- 배치 사이에는 provider RPM 제한에 맞춘 지연을 둔다.
- 항목별 실패는 로그만 남기고 진행률만 올린다. 루프 밖으로 예외가 나가지 않는다.
"""

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable, Sequence

from comiclens.config import get_settings
from comiclens.constants import PrefetchDefaults
from comiclens.schemas.base import BaseSchema
from comiclens.schemas.translation import PrefetchProgress, TranslationFailure
from comiclens.services.coordinator import TranslationCoordinator, get_coordinator
from comiclens.services.image import ImageData, fetch_image
from comiclens.services.preferences import Preferences, load_preferences
from comiclens.utils.url import image_filename, is_session_only_url, normalize_image_url

logger = logging.getLogger(__name__)

ImageFetcher = Callable[[str], Awaitable[ImageData]]
ProgressListener = Callable[[PrefetchProgress], None]


async def _wait(seconds: float) -> None:
    await asyncio.sleep(seconds)


class PrefetchRequest(BaseSchema):
    """prefetch 요청: urls(이미 정렬된 목록) 또는 pages + currentUrl"""

    urls: list[str] = []
    pages: list[str] = []
    current_url: str | None = None

    def targets(self) -> list[str]:
        if self.pages and self.current_url:
            return build_prefetch_queue(self.pages, self.current_url)
        return list(self.urls)


class PrefetchAccepted(BaseSchema):
    accepted: int


def build_prefetch_queue(
    pages: Sequence[str],
    current_url: str,
    forward: int = PrefetchDefaults.FORWARD_PAGES,
    backward: int = PrefetchDefaults.BACKWARD_PAGES,
) -> list[str]:
    """우선순위 순서의 prefetch 대상: 현재 페이지 → 다음 forward장 → 이전 backward장 (가까운 순)

    현재 페이지는 정규화 URL, 그다음 파일명으로 찾는다 (서명 토큰만 바뀐 URL 대응).
    찾지 못하면 목록 앞에서부터 forward + 1장.
    """
    unique = [p for p in dict.fromkeys(pages) if p and not is_session_only_url(p)]
    if not unique:
        return []

    normalized_current = normalize_image_url(current_url)
    index = next(
        (i for i, page in enumerate(unique) if normalize_image_url(page) == normalized_current),
        None,
    )
    if index is None:
        current_name = image_filename(current_url)
        index = next(
            (
                i
                for i, page in enumerate(unique)
                if current_name and image_filename(page) == current_name
            ),
            None,
        )
    if index is None:
        return unique[: forward + 1]

    ahead = unique[index + 1 : index + 1 + forward]
    behind = unique[max(0, index - backward) : index][::-1]
    return [unique[index], *ahead, *behind]


class PrefetchOrchestrator:
    def __init__(
        self,
        coordinator: TranslationCoordinator | None = None,
        fetch: ImageFetcher = fetch_image,
        preferences_loader: Callable[[], Awaitable[Preferences]] = load_preferences,
        concurrency: int = 1,
        max_queue: int = 50,
        debounce_seconds: float = 0.5,
        batch_delay_seconds: float = 4.2,
    ) -> None:
        if concurrency < 1:
            raise ValueError(f"concurrency는 1 이상이어야 합니다: {concurrency}")
        self._coordinator = coordinator
        self._fetch = fetch
        self._load_preferences = preferences_loader
        self._concurrency = concurrency
        self._max_queue = max_queue
        self._debounce_seconds = debounce_seconds
        self._batch_delay_seconds = batch_delay_seconds

        self._queue: deque[str] = deque()
        self._generation = 0
        self._request_seq = 0
        self._running = False
        self._processed = 0
        self._total = 0
        self._speculative: dict[str, asyncio.Task[ImageData]] = {}
        self._debounce_task: asyncio.Task[None] | None = None
        self._loop_task: asyncio.Task[None] | None = None
        self._listeners: list[ProgressListener] = []
        self._progress = PrefetchProgress(state="idle")

    @property
    def coordinator(self) -> TranslationCoordinator:
        return self._coordinator or get_coordinator()

    @property
    def progress(self) -> PrefetchProgress:
        return self._progress

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_running(self) -> bool:
        return self._running

    def subscribe(self, listener: ProgressListener) -> Callable[[], None]:
        """진행률 이벤트 구독. 반환값을 호출하면 구독 해제"""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def enqueue(self, urls: Sequence[str]) -> int:
        """prefetch 요청. debounce 후 기존 큐를 통째로 교체한다

        Returns:
            받아들인 항목 수 (비활성화 상태면 0)
        """
        self._request_seq += 1
        seq = self._request_seq

        preferences = await self._load_preferences()
        if seq != self._request_seq:
            # 설정을 읽는 사이 더 최근 요청이 들어옴
            return 0

        if not preferences.prefetch_enabled:
            self._cancel_debounce()
            return 0

        items = [url for url in dict.fromkeys(urls) if url and not is_session_only_url(url)]
        items = items[: self._max_queue]

        self._cancel_debounce()
        self._debounce_task = asyncio.create_task(self._replace_after_debounce(items))
        return len(items)

    async def _replace_after_debounce(self, items: list[str]) -> None:
        await asyncio.sleep(self._debounce_seconds)
        self._replace_queue(items)

    def _cancel_debounce(self) -> None:
        if self._debounce_task is not None and not self._debounce_task.done():
            self._debounce_task.cancel()
        self._debounce_task = None

    def _replace_queue(self, items: list[str]) -> None:
        self._generation += 1
        self._queue = deque(items)
        self._processed = 0
        self._total = len(items)
        self._clear_speculative()
        logger.info(f"prefetch 큐 교체 (generation={self._generation}, {len(items)}개)")
        self._emit("active")

        if not self._running:
            self._running = True
            self._loop_task = asyncio.create_task(self._run())

    async def _run(self) -> None:
        try:
            first_batch = True
            while self._queue:
                generation = self._generation
                size = min(self._concurrency, len(self._queue))
                batch = [self._queue.popleft() for _ in range(size)]
                for url in list(self._queue)[: self._concurrency]:
                    self._start_speculative(url)

                if not first_batch:
                    await _wait(self._batch_delay_seconds)
                first_batch = False

                if generation != self._generation:
                    logger.debug(f"교체된 큐의 배치 {len(batch)}개 폐기")
                    continue

                await asyncio.gather(*(self._process(url, generation) for url in batch))

            self._finish()
        finally:
            self._running = False
            self._loop_task = None

    async def _process(self, url: str, generation: int) -> None:
        try:
            if await self.coordinator.is_cached(url):
                logger.debug(f"이미 캐시됨, 건너뜀: {url}")
                return

            image = await self._take_image(url)
            outcome = await self.coordinator.translate(image, url)
            if isinstance(outcome, TranslationFailure):
                logger.warning(f"prefetch 번역 실패: {image_filename(url)} - {outcome.error}")
        except Exception as e:
            logger.warning(f"prefetch 항목 실패: {image_filename(url)} - {e}")
        finally:
            # 교체된 큐의 항목은 새 진행률에 반영하지 않음
            if generation == self._generation:
                self._processed = min(self._processed + 1, self._total)
                self._emit("active")

    async def _take_image(self, url: str) -> ImageData:
        task = self._speculative.pop(url, None)
        if task is not None:
            return await task
        return await self._fetch(url)

    def _start_speculative(self, url: str) -> None:
        if url not in self._speculative:
            self._speculative[url] = asyncio.create_task(self._fetch(url))

    def _clear_speculative(self) -> None:
        for task in self._speculative.values():
            if not task.done():
                task.cancel()
            elif not task.cancelled():
                # 아무도 기다리지 않은 실패를 회수 (경고 방지)
                task.exception()
        self._speculative.clear()

    def _finish(self) -> None:
        self._clear_speculative()
        self._processed = self._total
        logger.info(f"prefetch 완료 ({self._total}개)")
        self._emit("done")

    def _emit(self, state: str) -> None:
        self._progress = PrefetchProgress(
            state=state,  # type: ignore[arg-type]
            processed=self._processed,
            total=self._total,
        )
        for listener in list(self._listeners):
            try:
                listener(self._progress)
            except Exception:
                logger.exception("prefetch 진행률 리스너 오류")

    async def join(self) -> None:
        """대기 중인 debounce와 처리 루프가 모두 끝날 때까지 대기"""
        while True:
            pending = [
                task
                for task in (self._debounce_task, self._loop_task)
                if task is not None and not task.done()
            ]
            if not pending:
                return
            await asyncio.wait(pending)

    async def close(self) -> None:
        """남은 작업 취소 (종료 시)"""
        self._request_seq += 1
        tasks = [t for t in (self._debounce_task, self._loop_task) if t is not None and not t.done()]
        self._cancel_debounce()
        self._queue.clear()
        self._clear_speculative()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._running = False
        self._loop_task = None


class _OrchestratorHolder:
    instance: PrefetchOrchestrator | None = None


def get_orchestrator() -> PrefetchOrchestrator:
    if _OrchestratorHolder.instance is None:
        settings = get_settings()
        _OrchestratorHolder.instance = PrefetchOrchestrator(
            concurrency=settings.prefetch_concurrency,
            max_queue=settings.prefetch_max_queue,
            debounce_seconds=settings.prefetch_debounce_seconds,
            batch_delay_seconds=settings.prefetch_batch_delay_seconds,
        )
    return _OrchestratorHolder.instance


def set_orchestrator(orchestrator: PrefetchOrchestrator | None) -> None:
    _OrchestratorHolder.instance = orchestrator


async def shutdown_orchestrator() -> None:
    if _OrchestratorHolder.instance is not None:
        await _OrchestratorHolder.instance.close()
        _OrchestratorHolder.instance = None
