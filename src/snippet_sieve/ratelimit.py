"""GitHub API 레이트 리밋 추적 모듈."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Mapping

from snippet_sieve.models import RateLimitState

logger = logging.getLogger(__name__)

CORE = "core"
SEARCH = "search"

MIN_DELAY_MS = 100
SEARCH_DELAY_MS = 2000
LOW_QUOTA_DELAY_MS = 500
LOW_QUOTA_THRESHOLD = 10
DEFAULT_RESET_AFTER = 60
WAIT_LOG_INTERVAL = 10.0


def resource_for_path(path: str) -> str:
    """요청 경로에 해당하는 리소스 종류를 반환한다."""
    return SEARCH if "/search/" in path else CORE


def _read_int(headers: Mapping[str, str], key: str) -> int | None:
    value = headers.get(key)
    if value is None:
        # 일반 dict는 대소문자를 구분한다
        value = next((v for k, v in headers.items() if k.lower() == key), None)
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class RateLimitTracker:
    """리소스별 남은 한도를 기억하고 요청 간 지연을 계산한다."""

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Args:
            clock: 현재 unix 시각을 반환하는 함수
            sleep: 비동기 대기 함수
        """
        self._clock = clock
        self._sleep = sleep
        self._limits: dict[str, RateLimitState] = {}
        self._last_wait_log: dict[str, float] = {}

    def _now(self) -> int:
        return int(self._clock())

    def update_from_headers(
        self, headers: Mapping[str, str], resource: str = CORE
    ) -> RateLimitState | None:
        """응답 헤더의 한도 정보로 상태를 교체한다."""
        remaining = _read_int(headers, "x-ratelimit-remaining")
        reset_time = _read_int(headers, "x-ratelimit-reset")
        limit = _read_int(headers, "x-ratelimit-limit")

        if remaining is None or reset_time is None:
            return None
        if remaining < 0 or reset_time <= 0:
            return None

        return self.record(resource, remaining, reset_time, limit or 0)

    def record(
        self, resource: str, remaining: int, reset_time: int, limit: int = 0
    ) -> RateLimitState:
        """리소스 상태를 그대로 교체한다."""
        state = RateLimitState(
            resource=resource,
            remaining=remaining,
            reset_time=reset_time,
            limit=limit,
        )
        self._limits[resource] = state
        return state

    def mark_exhausted(
        self, resource: str = CORE, reset_after: int = DEFAULT_RESET_AFTER
    ) -> RateLimitState:
        """헤더 없이 받은 403을 한도 소진으로 기록한다."""
        previous = self._limits.get(resource)
        state = RateLimitState(
            resource=resource,
            remaining=0,
            reset_time=self._now() + reset_after,
            limit=previous.limit if previous else 0,
        )
        self._limits[resource] = state
        return state

    def record_quota_exceeded(
        self, resource: str = CORE, reset_time: int | None = None
    ) -> RateLimitState:
        """403 응답을 기록한다. 이미 소진 상태면 그대로 둔다."""
        state = self._limits.get(resource)
        if state is not None and self.is_rate_limited(resource):
            return state
        if reset_time and reset_time > self._now():
            return self.record(resource, 0, reset_time, state.limit if state else 0)
        return self.mark_exhausted(resource)

    def is_rate_limited(self, resource: str = CORE) -> bool:
        state = self._limits.get(resource)
        if state is None:
            return False
        return state.remaining <= 0 and state.reset_time > self._now()

    def can_make_request(self, resource: str = CORE) -> bool:
        """요청을 보내도 되는지 판단한다."""
        state = self._limits.get(resource)
        if state is None or state.remaining > 5:
            return True
        if state.reset_time > self._now():
            return state.remaining > 0
        return True

    def time_until_reset(self, resource: str = CORE) -> int:
        """한도 초기화까지 남은 시간 (초)."""
        state = self._limits.get(resource)
        if state is None:
            return 0
        return max(0, state.reset_time - self._now())

    def delay_before_next_request(self, resource: str = CORE) -> int:
        """다음 요청 전에 기다려야 할 시간 (ms)."""
        state = self._limits.get(resource)
        if state is None:
            return MIN_DELAY_MS

        now = self._now()
        if state.remaining <= 0 and state.reset_time > now:
            # 1초 여유
            return (state.reset_time - now + 1) * 1000

        if state.remaining < LOW_QUOTA_THRESHOLD:
            return SEARCH_DELAY_MS if resource == SEARCH else LOW_QUOTA_DELAY_MS

        return SEARCH_DELAY_MS if resource == SEARCH else MIN_DELAY_MS

    def remaining(self, resource: str = CORE) -> int | None:
        state = self._limits.get(resource)
        return state.remaining if state else None

    def status(self) -> dict[str, RateLimitState]:
        """디버깅용 상태 스냅샷."""
        return {name: state.model_copy() for name, state in self._limits.items()}

    async def wait_turn(self, resource: str = CORE) -> None:
        """요청 전에 레이트 리밋 정책에 맞춰 대기한다."""
        if self.is_rate_limited(resource):
            wait_seconds = self.time_until_reset(resource)
            if wait_seconds <= 0:
                return
            now = time.monotonic()
            last = self._last_wait_log.get(resource)
            if last is None or now - last > WAIT_LOG_INTERVAL:
                logger.info(f"Rate limited ({resource}). Waiting {wait_seconds}s...")
                self._last_wait_log[resource] = now
            await self._sleep(wait_seconds)
            return

        delay_ms = self.delay_before_next_request(resource)
        if delay_ms > 0:
            await self._sleep(delay_ms / 1000)
