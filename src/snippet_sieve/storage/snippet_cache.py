"""스니펫 캐시 모듈.

최대 개수가 정해진 FIFO 큐에 스니펫을 모아 두고, 디렉터리가 주어지면
JSON 파일로 세션 간에 유지한다.
"""

import logging
import time
from collections import deque
from collections.abc import Callable
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from snippet_sieve.models import CacheEntry, CacheStats, CodeSnippet

logger = logging.getLogger(__name__)

CACHE_VERSION = "2"
CACHE_NAMESPACE = "snippet_sieve"
SNIPPETS_FILE = "snippets.json"
STATS_FILE = "stats.json"
DEFAULT_TTL_SECONDS = 7 * 24 * 60 * 60


class CacheBlob(BaseModel):
    """디스크에 저장되는 캐시 형식."""

    version: str = Field(description="캐시 형식 버전")
    snippets: list[CacheEntry] = Field(default_factory=list)
    last_updated: float = Field(default=0.0, description="마지막 저장 시각 (unix 초)")


class SnippetCache:
    """용량 제한이 있는 스니펫 FIFO 큐."""

    def __init__(
        self,
        capacity: int = 30,
        directory: Path | None = None,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """
        Args:
            capacity: 최대 스니펫 수
            directory: 캐시 파일 상위 디렉터리. None이면 메모리에만 둔다.
            ttl_seconds: 항목 유효 기간 (초)
            clock: 현재 unix 시각을 반환하는 함수
        """
        if capacity < 1:
            raise ValueError("capacity must be positive")

        self.capacity = capacity
        self.ttl_seconds = ttl_seconds
        self.directory = directory / CACHE_NAMESPACE if directory else None
        self._clock = clock
        self._entries: deque[CacheEntry] = deque()
        now = clock()
        self._stats = CacheStats(created=now, last_updated=now)

    @property
    def is_persistent(self) -> bool:
        """디스크에 저장하는지 확인한다."""
        return self.directory is not None

    @property
    def stats(self) -> CacheStats:
        return self._stats.model_copy()

    def __len__(self) -> int:
        self._drop_expired()
        return len(self._entries)

    def entries(self) -> list[CacheEntry]:
        """현재 캐시 항목 (오래된 순)."""
        self._drop_expired()
        return list(self._entries)

    def push(self, snippet: CodeSnippet) -> None:
        """스니펫을 넣는다. 같은 위치의 스니펫이 있으면 교체한다."""
        entry = CacheEntry(**snippet.model_dump(), cached_at=self._clock())

        for index, existing in enumerate(self._entries):
            if existing.key == entry.key:
                self._entries[index] = entry
                break
        else:
            self._entries.append(entry)
            while len(self._entries) > self.capacity:
                evicted = self._entries.popleft()
                logger.debug(f"Evicted {evicted.repository}/{evicted.file_path}")

        self._touch()
        self.save()

    def pop(self) -> CodeSnippet | None:
        """가장 오래된 스니펫을 꺼낸다. 적중/실패를 통계에 기록한다."""
        self._drop_expired()

        if not self._entries:
            self._stats.misses += 1
            self._touch()
            self._save_stats()
            return None

        entry = self._entries.popleft()
        self._stats.hits += 1
        self._touch()
        self.save()
        return entry.to_snippet()

    def clear(self) -> None:
        self._entries.clear()
        self._touch()
        self.save()

    def _touch(self) -> None:
        self._stats.last_updated = self._clock()

    def _drop_expired(self) -> None:
        cutoff = self._clock() - self.ttl_seconds
        fresh = [entry for entry in self._entries if entry.cached_at > cutoff]
        if len(fresh) != len(self._entries):
            logger.debug(f"Dropped {len(self._entries) - len(fresh)} expired snippets")
            self._entries = deque(fresh)

    def load(self) -> None:
        """디스크에서 캐시와 통계를 읽는다. 읽을 수 없으면 빈 캐시로 시작한다."""
        if self.directory is None:
            return

        self._entries = deque()
        snippets_path = self.directory / SNIPPETS_FILE
        if snippets_path.exists():
            try:
                blob = CacheBlob.model_validate_json(snippets_path.read_text(encoding="utf-8"))
            except (OSError, ValidationError) as e:
                logger.warning(f"Discarding unreadable snippet cache: {e}")
            else:
                if blob.version != CACHE_VERSION:
                    logger.info(
                        f"Cache version changed ({blob.version} -> {CACHE_VERSION}), clearing"
                    )
                else:
                    self._entries = deque(blob.snippets[-self.capacity :])
                    self._drop_expired()

        stats_path = self.directory / STATS_FILE
        if stats_path.exists():
            try:
                self._stats = CacheStats.model_validate_json(stats_path.read_text(encoding="utf-8"))
            except (OSError, ValidationError) as e:
                logger.warning(f"Discarding unreadable cache stats: {e}")

        logger.debug(f"Loaded {len(self._entries)} cached snippets")

    def save(self) -> None:
        """캐시와 통계를 디스크에 쓴다."""
        if self.directory is None:
            return

        blob = CacheBlob(
            version=CACHE_VERSION,
            snippets=list(self._entries),
            last_updated=self._clock(),
        )
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            (self.directory / SNIPPETS_FILE).write_text(blob.model_dump_json(), encoding="utf-8")
        except OSError as e:
            logger.error(f"Failed to save snippet cache: {e}")
            return
        self._save_stats()

    def _save_stats(self) -> None:
        if self.directory is None:
            return
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            (self.directory / STATS_FILE).write_text(
                self._stats.model_dump_json(), encoding="utf-8"
            )
        except OSError as e:
            logger.error(f"Failed to save cache stats: {e}")
