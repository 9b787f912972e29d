"""캐시 스케줄러.

캐시에서 먼저 꺼내고, 모자라면 원격 획득을 시도하며, 캐시가 줄어들면
백그라운드에서 다시 채운다.
"""

import asyncio
import logging
import math
import random
import time
from collections.abc import Awaitable, Callable

from snippet_sieve.acquisition import SnippetAcquirer
from snippet_sieve.models import BatchResult, CodeSnippet
from snippet_sieve.ratelimit import CORE, RateLimitTracker
from snippet_sieve.sources.static import random_static_snippet, static_snippets
from snippet_sieve.storage.snippet_cache import SnippetCache

logger = logging.getLogger(__name__)

FOREGROUND_RETRIES = 2
BATCH_RETRIES = 1
MIN_BATCH_ATTEMPTS = 8
MAX_BATCH_ATTEMPTS = 15
BATCH_PAUSE = 0.5

SnippetProvider = Callable[[], Awaitable[CodeSnippet | None]]


def batch_attempts(count: int) -> int:
    """배치 요청의 최대 획득 시도 수."""
    return min(max(math.ceil(count * 2), MIN_BATCH_ATTEMPTS), MAX_BATCH_ATTEMPTS)


class SnippetScheduler:
    """캐시 큐와 프리로드 정책을 소유하고 스니펫을 제공한다."""

    def __init__(
        self,
        acquirer: SnippetAcquirer,
        cache: SnippetCache,
        tracker: RateLimitTracker,
        low_water_mark: int = 10,
        preload_target: int = 15,
        batch_size: int = 3,
        min_preload_interval: float = 2.0,
        max_preload_backoff: float = 60.0,
        max_preload_failures: int = 5,
        batch_timeout: float = 8.0,
        call_timeout: float = 5.0,
        fallback_to_static: bool = False,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Args:
            acquirer: 원격 획득기
            cache: 스니펫 캐시
            tracker: 레이트 리밋 추적기
            low_water_mark: 캐시가 이보다 작으면 프리로드를 시작한다
            preload_target: 프리로드가 채울 캐시 크기
            batch_size: 동시에 진행할 획득 시도 수
            min_preload_interval: 프리로드 시도 간 최소 간격 (초)
            max_preload_backoff: 프리로드 백오프 상한 (초)
            max_preload_failures: 이만큼 연속 실패하면 프리로드를 쉰다
            batch_timeout: 배치 전체 제한 시간 (초)
            call_timeout: 획득 시도 하나의 제한 시간 (초)
            fallback_to_static: 원격 실패 시 번들 스니펫을 쓸지 여부
            rng: 번들 스니펫 선택용 난수 생성기
            sleep: 비동기 대기 함수
            clock: 경과 시간 측정용 단조 시계
        """
        self.acquirer = acquirer
        self.cache = cache
        self.tracker = tracker
        self.low_water_mark = low_water_mark
        self.preload_target = max(preload_target, low_water_mark)
        self.batch_size = batch_size
        self.min_preload_interval = min_preload_interval
        self.max_preload_backoff = max_preload_backoff
        self.max_preload_failures = max_preload_failures
        self.batch_timeout = batch_timeout
        self.call_timeout = call_timeout
        self.fallback_to_static = fallback_to_static
        self.rng = rng or random.Random()
        self._sleep = sleep
        self._clock = clock

        self._preload_task: asyncio.Task[int] | None = None
        self._background: set[asyncio.Task[CodeSnippet | None]] = set()
        self._failures = 0
        self._resume_at = 0.0
        self._closed = False

    @property
    def is_preloading(self) -> bool:
        return self._preload_task is not None and not self._preload_task.done()

    @property
    def consecutive_failures(self) -> int:
        return self._failures

    async def take_next(self) -> CodeSnippet | None:
        """캐시, 원격, 번들 순서로 스니펫 하나를 가져온다."""
        providers: list[tuple[str, SnippetProvider]] = [
            ("cache", self._from_cache),
            ("remote", self._from_remote),
        ]
        if self.fallback_to_static:
            providers.append(("static", self._from_static))

        try:
            for name, provider in providers:
                snippet = await provider()
                if snippet is not None:
                    logger.debug(f"Serving {snippet.repository}/{snippet.file_path} from {name}")
                    return snippet
            return None
        finally:
            self.ensure_preload()

    async def _from_cache(self) -> CodeSnippet | None:
        return self.cache.pop()

    async def _from_remote(self) -> CodeSnippet | None:
        if self.tracker.is_rate_limited(CORE):
            logger.info(
                "Rate limited, skipping remote fetch. "
                f"Reset in {self.tracker.time_until_reset(CORE)}s."
            )
            return None

        task = self._spawn(self.acquirer.acquire(max_retries=FOREGROUND_RETRIES))
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout=self.call_timeout)
        except TimeoutError:
            logger.info("Remote fetch timed out, result will be cached when ready")
            task.add_done_callback(self._store_late_result)
            return None

    async def _from_static(self) -> CodeSnippet | None:
        return random_static_snippet(self.rng)

    async def take_batch(
        self, count: int, fill_with_static: bool = False, fast_mode: bool = False
    ) -> BatchResult:
        """스니펫 여러 개를 모아 점수 순으로 반환한다.

        Args:
            count: 원하는 스니펫 수
            fill_with_static: 모자라면 번들 스니펫으로 채울지 여부
            fast_mode: 원격 획득에서 분석을 건너뛸지 여부
        """
        started = self._clock()
        snippets: list[CodeSnippet] = []
        seen: set[tuple[str, str, int, int]] = set()

        def collect(snippet: CodeSnippet) -> None:
            if snippet.key in seen:
                return
            seen.add(snippet.key)
            if len(snippets) < count:
                snippets.append(snippet)
            else:
                self.cache.push(snippet)

        while len(snippets) < count and len(self.cache) > 0:
            cached = self.cache.pop()
            if cached is not None:
                collect(cached)

        if len(snippets) < count:
            if self.tracker.is_rate_limited(CORE):
                logger.info("Rate limited, skipping remote batch fetch")
            else:
                await self._fan_out(count, started, snippets, collect, fast_mode)

        used_fallback = False
        if fill_with_static and len(snippets) < count:
            for snippet in static_snippets(count - len(snippets), self.rng):
                if snippet.key not in seen:
                    collect(snippet)
                    used_fallback = True

        snippets.sort(key=lambda s: s.score or 0, reverse=True)
        elapsed_ms = int((self._clock() - started) * 1000)
        logger.info(f"Batch returned {len(snippets)}/{count} snippets in {elapsed_ms}ms")

        self.ensure_preload()
        return BatchResult(
            snippets=snippets,
            rate_limited=self.tracker.is_rate_limited(CORE),
            used_fallback=used_fallback,
            elapsed_ms=elapsed_ms,
        )

    async def _fan_out(
        self,
        count: int,
        started: float,
        snippets: list[CodeSnippet],
        collect: Callable[[CodeSnippet], None],
        fast_mode: bool,
    ) -> None:
        max_attempts = batch_attempts(count)
        deadline = started + self.batch_timeout
        attempts = 0

        while attempts < max_attempts:
            remaining = deadline - self._clock()
            if remaining <= 0:
                logger.info(f"Batch deadline reached after {attempts} attempts")
                break

            group = min(self.batch_size, max_attempts - attempts)
            attempts += group
            tasks = [
                self._spawn(self.acquirer.acquire(max_retries=BATCH_RETRIES, fast_mode=fast_mode))
                for _ in range(group)
            ]
            done, pending = await asyncio.wait(tasks, timeout=min(self.call_timeout, remaining))

            for task in done:
                snippet = self._result_of(task)
                if snippet is not None:
                    collect(snippet)
            for task in pending:
                task.add_done_callback(self._store_late_result)

            if len(snippets) >= count or self.tracker.is_rate_limited(CORE):
                break
            if attempts < max_attempts:
                await self._sleep(BATCH_PAUSE)

    def _spawn(self, coro: Awaitable[CodeSnippet | None]) -> asyncio.Task[CodeSnippet | None]:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    def _result_of(self, task: asyncio.Task[CodeSnippet | None]) -> CodeSnippet | None:
        if task.cancelled():
            return None
        error = task.exception()
        if error is not None:
            logger.error(f"Acquisition failed unexpectedly: {error!r}")
            return None
        return task.result()

    def _store_late_result(self, task: asyncio.Task[CodeSnippet | None]) -> None:
        snippet = self._result_of(task)
        if snippet is not None and not self._closed:
            self.cache.push(snippet)
            logger.debug(f"Cached late result {snippet.repository}/{snippet.file_path}")

    def ensure_preload(self) -> asyncio.Task[int] | None:
        """캐시가 기준보다 작으면 백그라운드 프리로드를 시작한다."""
        if self._closed or self.is_preloading:
            return self._preload_task
        if len(self.cache) >= self.low_water_mark:
            return None
        if self.tracker.is_rate_limited(CORE):
            logger.debug("Rate limited, not starting preload")
            return None
        if self._clock() < self._resume_at:
            return None

        logger.info(f"Cache low ({len(self.cache)}), preloading to {self.preload_target}")
        self._preload_task = asyncio.ensure_future(self._preload_loop())
        return self._preload_task

    async def preload(self) -> int:
        """목표 크기까지 캐시를 채우고 추가한 개수를 반환한다."""
        if self.is_preloading and self._preload_task is not None:
            return await self._preload_task
        self._preload_task = asyncio.ensure_future(self._preload_loop())
        return await self._preload_task

    async def _preload_loop(self) -> int:
        added = 0
        while len(self.cache) < self.preload_target and not self._closed:
            if self.tracker.is_rate_limited(CORE):
                logger.info(
                    "Rate limited, pausing preload. "
                    f"Reset in {self.tracker.time_until_reset(CORE)}s."
                )
                break

            task = self._spawn(self.acquirer.acquire())
            await asyncio.wait([task])
            snippet = self._result_of(task)
            if snippet is not None:
                self.cache.push(snippet)
                added += 1
                self._failures = 0
                delay = self.min_preload_interval
            else:
                self._failures += 1
                if self._failures >= self.max_preload_failures:
                    self._resume_at = self._clock() + self.max_preload_backoff
                    logger.warning(
                        f"Preload failed {self._failures} times in a row, "
                        f"pausing for {self.max_preload_backoff}s"
                    )
                    break
                delay = self.preload_delay()

            if len(self.cache) < self.preload_target:
                await self._sleep(delay)

        logger.info(f"Preload added {added} snippets (cache size {len(self.cache)})")
        return added

    def preload_delay(self) -> float:
        """현재 연속 실패 횟수에 따른 다음 프리로드 지연 (초)."""
        return min(self.min_preload_interval * 2**self._failures, self.max_preload_backoff)

    async def wait_idle(self) -> None:
        """프리로드와 백그라운드 작업이 끝날 때까지 기다린다."""
        while self.is_preloading or self._background:
            pending: list[asyncio.Task] = list(self._background)
            if self._preload_task is not None and not self._preload_task.done():
                pending.append(self._preload_task)
            await asyncio.gather(*pending, return_exceptions=True)

    async def aclose(self) -> None:
        """백그라운드 작업을 취소하고 캐시를 저장한다."""
        self._closed = True
        tasks: list[asyncio.Task] = list(self._background)
        if self._preload_task is not None:
            tasks.append(self._preload_task)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self.cache.save()
