"""스니펫 한 개를 원격에서 가져오는 획득 시도 모듈."""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import TypeVar

from snippet_sieve.analysis.extractor import detect_language
from snippet_sieve.analysis.scoring import choose_span, placeholder_span
from snippet_sieve.config import ExtractionLimits, ScoringWeights
from snippet_sieve.models import MAX_SNIPPET_LINES, CodeSnippet, CommitInfo, ScoredSpan
from snippet_sieve.ratelimit import RateLimitTracker
from snippet_sieve.sources.base import (
    CodeHost,
    HostError,
    MalformedContentError,
    NotFoundError,
    QuotaExceededError,
    TransientError,
)
from snippet_sieve.sources.locator import SourceLocator

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AcquisitionState(str, Enum):
    """획득 시도 단계."""

    IDLE = "idle"
    LOCATING = "locating"
    EXTRACTING = "extracting"
    SCORING = "scoring"
    SELECTING = "selecting"
    DONE = "done"
    FAILED = "failed"


def blob_url(repository: str, branch: str, path: str, start: int, end: int) -> str:
    """줄 범위를 가리키는 GitHub 블롭 URL."""
    return f"https://github.com/{repository}/blob/{branch}/{path}#L{start}-L{end}"


class SnippetAcquirer:
    """저장소 선택부터 구간 선택까지 한 번의 획득을 재시도와 함께 수행한다."""

    def __init__(
        self,
        host: CodeHost,
        locator: SourceLocator,
        tracker: RateLimitTracker,
        rng: random.Random | None = None,
        weights: ScoringWeights | None = None,
        limits: ExtractionLimits | None = None,
        max_retries: int = 3,
        call_timeout: float = 5.0,
        retry_delay: float = 1.0,
        quota_retry_delay: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        fast_mode: bool = False,
    ) -> None:
        """
        Args:
            host: 코드 호스트
            locator: 저장소/파일 탐색기
            tracker: 레이트 리밋 추적기
            rng: 무작위 선택에 쓸 난수 생성기
            weights: 점수 가중치
            limits: 구간 추출 한도
            max_retries: 기본 최대 시도 횟수
            call_timeout: 원격 단계별 타임아웃 (초)
            retry_delay: 일반 오류 후 지연 (초, 시도 횟수에 비례)
            quota_retry_delay: 403 이후 지연 (초, 시도 횟수에 비례)
            sleep: 비동기 대기 함수
            fast_mode: True면 분석 없이 파일 중간 블록을 쓴다
        """
        self.host = host
        self.locator = locator
        self.tracker = tracker
        self.rng = rng or random.Random()
        self.weights = weights or ScoringWeights()
        self.limits = limits or ExtractionLimits()
        self.max_retries = max_retries
        self.call_timeout = call_timeout
        self.retry_delay = retry_delay
        self.quota_retry_delay = quota_retry_delay
        self.fast_mode = fast_mode
        self._sleep = sleep
        self._state = AcquisitionState.IDLE

    @property
    def state(self) -> AcquisitionState:
        """마지막으로 기록된 단계."""
        return self._state

    def _enter(self, state: AcquisitionState) -> None:
        logger.debug(f"Acquisition {self._state.value} -> {state.value}")
        self._state = state

    async def _call(self, awaitable: Awaitable[T]) -> T:
        return await asyncio.wait_for(awaitable, timeout=self.call_timeout)

    async def acquire(
        self, max_retries: int | None = None, fast_mode: bool | None = None
    ) -> CodeSnippet | None:
        """스니펫 하나를 가져온다. 모든 시도가 실패하면 None.

        Args:
            max_retries: 이번 호출의 최대 시도 횟수
            fast_mode: 이번 호출에서 분석을 건너뛸지 여부
        """
        attempts = max_retries or self.max_retries
        fast = self.fast_mode if fast_mode is None else fast_mode
        quota_warned = False

        for attempt in range(1, attempts + 1):
            delay = 0.0
            try:
                snippet = await self._attempt(fast)
            except QuotaExceededError as e:
                self.tracker.record_quota_exceeded(e.resource, e.reset_time)
                if not quota_warned:
                    logger.warning(
                        f"GitHub API rate limit hit ({e.resource}). "
                        f"Reset in {self.tracker.time_until_reset(e.resource)}s."
                    )
                    quota_warned = True
                delay = self.quota_retry_delay * attempt
            except (NotFoundError, MalformedContentError) as e:
                logger.debug(f"Attempt {attempt} skipped: {e}")
                continue
            except (TransientError, TimeoutError) as e:
                logger.info(f"Attempt {attempt}/{attempts} failed: {str(e) or 'timed out'}")
                delay = self.retry_delay * attempt
            except HostError as e:
                logger.error(f"Attempt {attempt}/{attempts} failed: {e}")
                delay = self.retry_delay * attempt
            else:
                if snippet is not None:
                    self._enter(AcquisitionState.DONE)
                    return snippet
                continue

            if attempt < attempts:
                await self._sleep(delay)

        self._enter(AcquisitionState.FAILED)
        logger.info(f"No snippet after {attempts} attempts")
        return None

    async def _attempt(self, fast: bool) -> CodeSnippet | None:
        self._enter(AcquisitionState.LOCATING)
        pool = await self._call(self.locator.pick_repository_pool())
        repository = self.rng.choice(pool)
        owner, repo = repository.split("/", 1)

        branch = await self._call(self.host.get_default_branch(owner, repo))
        files = await self._call(self.locator.find_candidate_files(owner, repo, branch))
        if not files:
            logger.debug(f"No code files in {repository}")
            return None

        code_file = self.rng.choice(files)
        commit = code_file.commit or await self._lookup_commit(owner, repo, code_file.path)

        self._enter(AcquisitionState.EXTRACTING)
        content = await self._call(
            self.host.get_file_content(owner, repo, code_file.path, branch)
        )
        lines = content.split("\n")
        if len(lines) < self.limits.min_file_lines:
            logger.debug(f"{repository}/{code_file.path} is too short ({len(lines)} lines)")
            return None

        language = detect_language(code_file.path)

        self._enter(AcquisitionState.SCORING)
        if fast:
            span = placeholder_span(lines, language, self.weights.fast_mode_score, self.limits)
        else:
            span = choose_span(lines, language, self.rng, self.weights, self.limits)

        self._enter(AcquisitionState.SELECTING)
        return self._build_snippet(
            repository, branch, code_file.path, lines, language, span, commit
        )

    async def _lookup_commit(self, owner: str, repo: str, path: str) -> CommitInfo | None:
        try:
            return await self._call(self.locator.lookup_commit_info(owner, repo, path))
        except TimeoutError:
            return None

    def _build_snippet(
        self,
        repository: str,
        branch: str,
        path: str,
        lines: list[str],
        language: str,
        span: ScoredSpan,
        commit: CommitInfo | None,
    ) -> CodeSnippet:
        start = span.start
        max_lines = min(self.limits.max_section_lines, MAX_SNIPPET_LINES)
        end = min(span.end, start + max_lines - 1, len(lines))
        return CodeSnippet(
            repository=repository,
            file_path=path,
            content="\n".join(lines[start - 1 : end]),
            language=language,
            start_line=start,
            end_line=end,
            url=blob_url(repository, branch, path, start, end),
            score=span.score,
            metrics=span.metrics,
            commit_author=commit.author if commit else None,
            commit_author_login=commit.author_login if commit else None,
            commit_date=commit.date if commit else None,
        )
