"""SnippetScheduler 테스트."""

import asyncio
from typing import Any

import pytest
from conftest import FakeClock, SleepRecorder, make_snippet

from snippet_sieve.models import CodeSnippet
from snippet_sieve.ratelimit import CORE, RateLimitTracker
from snippet_sieve.scheduler import (
    BATCH_PAUSE,
    BATCH_RETRIES,
    FOREGROUND_RETRIES,
    SnippetScheduler,
    batch_attempts,
)
from snippet_sieve.sources.static import STATIC_SNIPPETS
from snippet_sieve.storage.snippet_cache import SnippetCache


class ScriptedAcquirer:
    """정해 둔 결과를 순서대로 돌려주는 획득기."""

    def __init__(
        self,
        results: list[CodeSnippet | None] | None = None,
        delay: float = 0.0,
        error: Exception | None = None,
    ) -> None:
        self.results = list(results or [])
        self.delay = delay
        self.error = error
        self.calls: list[dict[str, Any]] = []

    async def acquire(
        self, max_retries: int | None = None, fast_mode: bool | None = None
    ) -> CodeSnippet | None:
        self.calls.append({"max_retries": max_retries, "fast_mode": fast_mode})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.results:
            return self.results.pop(0)
        return None


@pytest.fixture
def cache(clock: FakeClock) -> SnippetCache:
    """메모리 전용 캐시를 반환한다."""
    return SnippetCache(capacity=30, clock=clock)


@pytest.fixture
def pause() -> SleepRecorder:
    """스케줄러용 가짜 sleep을 반환한다."""
    return SleepRecorder()


def _scheduler(
    acquirer: ScriptedAcquirer,
    cache: SnippetCache,
    tracker: RateLimitTracker,
    clock: FakeClock,
    sleep: SleepRecorder,
    **kwargs: Any,
) -> SnippetScheduler:
    # 기본값으로는 프리로드를 시작하지 않는다
    options: dict[str, Any] = {"low_water_mark": 0, "preload_target": 0}
    options.update(kwargs)
    return SnippetScheduler(
        acquirer,  # type: ignore[arg-type]
        cache,
        tracker,
        sleep=sleep,
        clock=clock,
        **options,
    )


def _snippets(count: int, prefix: str = "f") -> list[CodeSnippet | None]:
    return [make_snippet(f"{prefix}{i}.py", score=i) for i in range(count)]


@pytest.mark.parametrize(
    ("count", "expected"),
    [(1, 8), (4, 8), (5, 10), (7, 14), (8, 15), (20, 15)],
)
def test_batch_attempts(count: int, expected: int) -> None:
    """요청 수의 두 배를 8~15 사이로 제한한다."""
    assert batch_attempts(count) == expected


class TestTakeNext:
    """take_next 테스트."""

    @pytest.mark.asyncio
    async def test_cache_first(
        self,
        cache: SnippetCache,
        tracker: RateLimitTracker,
        clock: FakeClock,
        pause: SleepRecorder,
    ) -> None:
        """캐시에 있으면 원격을 부르지 않는다."""
        cached = make_snippet("cached.py")
        cache.push(cached)
        acquirer = ScriptedAcquirer(_snippets(1))
        scheduler = _scheduler(acquirer, cache, tracker, clock, pause)

        assert await scheduler.take_next() == cached
        assert acquirer.calls == []
        await scheduler.aclose()

    @pytest.mark.asyncio
    async def test_remote_when_cache_empty(
        self,
        cache: SnippetCache,
        tracker: RateLimitTracker,
        clock: FakeClock,
        pause: SleepRecorder,
    ) -> None:
        """캐시가 비면 원격에서 가져온다."""
        remote = make_snippet("remote.py")
        acquirer = ScriptedAcquirer([remote])
        scheduler = _scheduler(acquirer, cache, tracker, clock, pause)

        assert await scheduler.take_next() == remote
        assert acquirer.calls == [{"max_retries": FOREGROUND_RETRIES, "fast_mode": None}]
        assert cache.stats.misses == 1
        await scheduler.aclose()

    @pytest.mark.asyncio
    async def test_static_fallback(
        self,
        cache: SnippetCache,
        tracker: RateLimitTracker,
        clock: FakeClock,
        pause: SleepRecorder,
    ) -> None:
        """원격도 실패하면 설정에 따라 번들 스니펫을 쓴다."""
        with_fallback = _scheduler(
            ScriptedAcquirer(), cache, tracker, clock, pause, fallback_to_static=True
        )
        without_fallback = _scheduler(ScriptedAcquirer(), cache, tracker, clock, pause)

        assert await with_fallback.take_next() in STATIC_SNIPPETS
        assert await without_fallback.take_next() is None
        await with_fallback.aclose()
        await without_fallback.aclose()

    @pytest.mark.asyncio
    async def test_skips_remote_when_rate_limited(
        self,
        cache: SnippetCache,
        tracker: RateLimitTracker,
        clock: FakeClock,
        pause: SleepRecorder,
    ) -> None:
        """core 한도가 소진됐으면 원격을 부르지 않는다."""
        tracker.mark_exhausted(CORE, reset_after=300)
        acquirer = ScriptedAcquirer(_snippets(1))
        scheduler = _scheduler(acquirer, cache, tracker, clock, pause)

        assert await scheduler.take_next() is None
        assert acquirer.calls == []
        await scheduler.aclose()

    @pytest.mark.asyncio
    async def test_late_result_is_cached(
        self,
        cache: SnippetCache,
        tracker: RateLimitTracker,
        clock: FakeClock,
        pause: SleepRecorder,
    ) -> None:
        """타임아웃 뒤에 끝난 획득 결과는 캐시에 들어간다."""
        late = make_snippet("late.py")
        acquirer = ScriptedAcquirer([late], delay=0.05)
        scheduler = _scheduler(acquirer, cache, tracker, clock, pause, call_timeout=0.01)

        assert await scheduler.take_next() is None
        await scheduler.wait_idle()

        assert [entry.file_path for entry in cache.entries()] == ["late.py"]
        await scheduler.aclose()


class TestTakeBatch:
    """take_batch 테스트."""

    @pytest.mark.asyncio
    async def test_drains_cache_first(
        self,
        cache: SnippetCache,
        tracker: RateLimitTracker,
        clock: FakeClock,
        pause: SleepRecorder,
    ) -> None:
        """캐시로 충분하면 원격을 부르지 않고 점수 순으로 돌려준다."""
        for name, score in (("a.py", 1), ("b.py", 5), ("c.py", 3)):
            cache.push(make_snippet(name, score=score))
        acquirer = ScriptedAcquirer()
        scheduler = _scheduler(acquirer, cache, tracker, clock, pause)

        result = await scheduler.take_batch(2)

        assert [s.file_path for s in result.snippets] == ["b.py", "a.py"]
        assert acquirer.calls == []
        assert len(cache) == 1
        assert result.used_fallback is False
        await scheduler.aclose()

    @pytest.mark.asyncio
    async def test_fans_out_remote_attempts(
        self,
        cache: SnippetCache,
        tracker: RateLimitTracker,
        clock: FakeClock,
        pause: SleepRecorder,
    ) -> None:
        """모자란 만큼 동시에 획득하고 점수 순으로 정렬한다."""
        results: list[CodeSnippet | None] = [
            make_snippet("x.py", score=3),
            make_snippet("y.py", score=9),
            make_snippet("z.py", score=6),
        ]
        acquirer = ScriptedAcquirer(results)
        scheduler = _scheduler(acquirer, cache, tracker, clock, pause)

        result = await scheduler.take_batch(3, fast_mode=True)

        assert [s.score for s in result.snippets] == [9, 6, 3]
        assert acquirer.calls == [{"max_retries": BATCH_RETRIES, "fast_mode": True}] * 3
        assert pause.delays == []
        assert result.rate_limited is False
        await scheduler.aclose()

    @pytest.mark.asyncio
    async def test_extra_results_go_to_cache(
        self,
        cache: SnippetCache,
        tracker: RateLimitTracker,
        clock: FakeClock,
        pause: SleepRecorder,
    ) -> None:
        """필요보다 많이 얻은 스니펫은 캐시에 넣는다."""
        scheduler = _scheduler(ScriptedAcquirer(_snippets(3)), cache, tracker, clock, pause)

        result = await scheduler.take_batch(2)

        assert len(result.snippets) == 2
        assert len(cache) == 1
        await scheduler.aclose()

    @pytest.mark.asyncio
    async def test_duplicates_are_dropped(
        self,
        cache: SnippetCache,
        tracker: RateLimitTracker,
        clock: FakeClock,
        pause: SleepRecorder,
    ) -> None:
        """같은 위치의 스니펫은 한 번만 담고 시도 한도까지 계속한다."""
        same = make_snippet("same.py")
        acquirer = ScriptedAcquirer([same, same, make_snippet("other.py")])
        scheduler = _scheduler(acquirer, cache, tracker, clock, pause)

        result = await scheduler.take_batch(3)

        assert sorted(s.file_path for s in result.snippets) == ["other.py", "same.py"]
        assert len(acquirer.calls) == batch_attempts(3)
        assert pause.delays == [BATCH_PAUSE, BATCH_PAUSE]
        await scheduler.aclose()

    @pytest.mark.asyncio
    async def test_deadline_stops_fan_out(
        self, cache: SnippetCache, tracker: RateLimitTracker, clock: FakeClock
    ) -> None:
        """배치 제한 시간이 지나면 더 시도하지 않는다."""
        acquirer = ScriptedAcquirer()
        scheduler = _scheduler(
            acquirer, cache, tracker, clock, SleepRecorder(clock), batch_timeout=1.0
        )

        result = await scheduler.take_batch(5)

        # 0초, 0.5초에 한 묶음씩 시작하고 1초에 멈춘다
        assert result.snippets == []
        assert len(acquirer.calls) == 6
        assert result.elapsed_ms == 1000
        await scheduler.aclose()

    @pytest.mark.asyncio
    async def test_fill_with_static(
        self,
        cache: SnippetCache,
        tracker: RateLimitTracker,
        clock: FakeClock,
        pause: SleepRecorder,
    ) -> None:
        """원격이 모자라면 번들 스니펫으로 채운다."""
        scheduler = _scheduler(ScriptedAcquirer(), cache, tracker, clock, pause)

        result = await scheduler.take_batch(2, fill_with_static=True)

        assert len(result.snippets) == 2
        assert all(s in STATIC_SNIPPETS for s in result.snippets)
        assert result.used_fallback is True
        await scheduler.aclose()

    @pytest.mark.asyncio
    async def test_rate_limited_batch(
        self,
        cache: SnippetCache,
        tracker: RateLimitTracker,
        clock: FakeClock,
        pause: SleepRecorder,
    ) -> None:
        """한도 소진 중에는 원격 없이 결과를 돌려준다."""
        tracker.mark_exhausted(CORE)
        acquirer = ScriptedAcquirer(_snippets(3))
        scheduler = _scheduler(acquirer, cache, tracker, clock, pause)

        result = await scheduler.take_batch(2, fill_with_static=True)

        assert acquirer.calls == []
        assert result.rate_limited is True
        assert result.used_fallback is True
        await scheduler.aclose()

    @pytest.mark.asyncio
    async def test_acquirer_errors_are_contained(
        self,
        cache: SnippetCache,
        tracker: RateLimitTracker,
        clock: FakeClock,
        pause: SleepRecorder,
    ) -> None:
        """획득 중 예외가 나도 배치는 빈 결과로 끝난다."""
        acquirer = ScriptedAcquirer(error=RuntimeError("boom"))
        scheduler = _scheduler(acquirer, cache, tracker, clock, pause)

        result = await scheduler.take_batch(1)

        assert result.snippets == []
        assert len(acquirer.calls) == batch_attempts(1)
        await scheduler.aclose()


class TestPreload:
    """프리로드 테스트."""

    @pytest.mark.asyncio
    async def test_fills_to_target(
        self,
        cache: SnippetCache,
        tracker: RateLimitTracker,
        clock: FakeClock,
        pause: SleepRecorder,
    ) -> None:
        """목표 크기까지 채우고 성공 사이에는 최소 간격을 둔다."""
        scheduler = _scheduler(
            ScriptedAcquirer(_snippets(5)),
            cache,
            tracker,
            clock,
            pause,
            low_water_mark=2,
            preload_target=4,
        )

        assert await scheduler.preload() == 4
        assert len(cache) == 4
        assert pause.delays == [2.0, 2.0, 2.0]
        assert scheduler.consecutive_failures == 0
        await scheduler.aclose()

    @pytest.mark.asyncio
    async def test_backoff_doubles_after_failures(
        self,
        cache: SnippetCache,
        tracker: RateLimitTracker,
        clock: FakeClock,
        pause: SleepRecorder,
    ) -> None:
        """연속 실패마다 지연이 두 배가 되고 성공하면 초기화된다."""
        results: list[CodeSnippet | None] = [None, None, None, make_snippet()]
        scheduler = _scheduler(
            ScriptedAcquirer(results), cache, tracker, clock, pause, preload_target=1
        )

        assert await scheduler.preload() == 1
        assert pause.delays == [4.0, 8.0, 16.0]
        assert scheduler.consecutive_failures == 0
        await scheduler.aclose()

    @pytest.mark.asyncio
    async def test_backoff_is_capped_and_pauses(
        self,
        cache: SnippetCache,
        tracker: RateLimitTracker,
        clock: FakeClock,
        pause: SleepRecorder,
    ) -> None:
        """지연은 상한을 넘지 않고, 연속 실패가 쌓이면 잠시 쉰다."""
        scheduler = _scheduler(
            ScriptedAcquirer(),
            cache,
            tracker,
            clock,
            pause,
            low_water_mark=1,
            preload_target=1,
            max_preload_backoff=10.0,
            max_preload_failures=5,
        )

        assert await scheduler.preload() == 0
        assert pause.delays == [4.0, 8.0, 10.0, 10.0]
        assert scheduler.consecutive_failures == 5

        # 쉬는 동안에는 자동 프리로드를 시작하지 않는다
        assert scheduler.ensure_preload() is None
        clock.advance(11)
        assert scheduler.ensure_preload() is not None
        await scheduler.aclose()

    @pytest.mark.asyncio
    async def test_take_next_triggers_preload(
        self,
        cache: SnippetCache,
        tracker: RateLimitTracker,
        clock: FakeClock,
        pause: SleepRecorder,
    ) -> None:
        """꺼낸 뒤 캐시가 기준보다 작으면 백그라운드로 채운다."""
        acquirer = ScriptedAcquirer(_snippets(3))
        scheduler = _scheduler(
            acquirer, cache, tracker, clock, pause, low_water_mark=2, preload_target=2
        )

        snippet = await scheduler.take_next()
        await scheduler.wait_idle()

        assert snippet is not None
        assert len(cache) == 2
        assert scheduler.is_preloading is False
        await scheduler.aclose()

    @pytest.mark.asyncio
    async def test_no_preload_when_rate_limited(
        self,
        cache: SnippetCache,
        tracker: RateLimitTracker,
        clock: FakeClock,
        pause: SleepRecorder,
    ) -> None:
        """한도 소진 중에는 프리로드를 시작하지 않는다."""
        tracker.mark_exhausted(CORE)
        scheduler = _scheduler(
            ScriptedAcquirer(_snippets(3)),
            cache,
            tracker,
            clock,
            pause,
            low_water_mark=2,
            preload_target=2,
        )

        assert scheduler.ensure_preload() is None
        await scheduler.aclose()

    @pytest.mark.asyncio
    async def test_aclose_cancels_background_work(
        self,
        cache: SnippetCache,
        tracker: RateLimitTracker,
        clock: FakeClock,
        pause: SleepRecorder,
    ) -> None:
        """종료하면 진행 중인 획득을 취소하고 결과를 캐시에 넣지 않는다."""
        acquirer = ScriptedAcquirer(_snippets(1), delay=10)
        scheduler = _scheduler(acquirer, cache, tracker, clock, pause, call_timeout=0.01)

        assert await scheduler.take_next() is None
        await scheduler.aclose()

        assert len(cache) == 0
        assert scheduler.is_preloading is False
