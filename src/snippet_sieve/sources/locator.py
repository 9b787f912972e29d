"""후보 저장소와 코드 파일을 찾는 모듈."""

import logging
import re
from collections.abc import Awaitable, Callable, Iterable
from datetime import UTC, date, datetime, timedelta
from typing import Any

from snippet_sieve.models import CodeFile, CommitInfo
from snippet_sieve.ratelimit import SEARCH, RateLimitTracker
from snippet_sieve.sources.base import (
    CodeHost,
    HostError,
    NotFoundError,
    QuotaExceededError,
)
from snippet_sieve.sources.static import POPULAR_REPOSITORIES

logger = logging.getLogger(__name__)

CODE_FILE_PATTERN = re.compile(r"\.(js|ts|jsx|tsx|py|java|cpp|c|go|rs|rb|php)$", re.IGNORECASE)
EXCLUDED_DIRECTORIES = {"node_modules", "vendor"}
SEARCH_LANGUAGES = " ".join(
    f"language:{name}" for name in ("javascript", "typescript", "python", "rust", "go")
)

RepositoryProvider = Callable[[], Awaitable[list[str]]]


def is_code_file(path: str, max_path_length: int = 200) -> bool:
    """분석 대상 코드 파일인지 확인한다."""
    return (
        0 < len(path) < max_path_length
        and CODE_FILE_PATTERN.search(path) is not None
        and ".min." not in path
    )


def _commit_info(commit_data: dict[str, Any]) -> CommitInfo:
    """커밋 응답에서 작성자 정보를 뽑는다."""
    commit = commit_data.get("commit") or {}
    git_author = commit.get("author") or {}
    git_committer = commit.get("committer") or {}
    account = commit_data.get("author") or {}

    return CommitInfo(
        author=git_author.get("name") or account.get("login") or "Unknown",
        author_login=account.get("login") or git_author.get("name") or "Unknown",
        date=git_committer.get("date")
        or git_author.get("date")
        or datetime.now(UTC).isoformat(),
    )


class SourceLocator:
    """저장소 풀을 고르고 저장소 안에서 코드 파일을 찾는다."""

    def __init__(
        self,
        host: CodeHost,
        tracker: RateLimitTracker,
        fallback_repositories: Iterable[str] = POPULAR_REPOSITORIES,
        commit_window: int = 5,
        max_depth: int = 3,
        max_subdirectories: int = 3,
        enough_files: int = 10,
        max_file_size: int = 1_000_000,
        today: Callable[[], date] = date.today,
    ) -> None:
        """
        Args:
            host: 코드 호스트
            tracker: 레이트 리밋 추적기
            fallback_repositories: 마지막 단계에서 쓰는 저장소 목록
            commit_window: 살펴볼 최근 커밋 수
            max_depth: 디렉터리 탐색 최대 깊이
            max_subdirectories: 단계마다 탐색할 하위 디렉터리 수
            enough_files: 이만큼 찾으면 탐색을 멈춘다
            max_file_size: 이보다 큰 파일은 건너뛴다 (바이트)
            today: 오늘 날짜를 반환하는 함수
        """
        self.host = host
        self.tracker = tracker
        self.fallback_repositories = list(fallback_repositories)
        self.commit_window = commit_window
        self.max_depth = max_depth
        self.max_subdirectories = max_subdirectories
        self.enough_files = enough_files
        self.max_file_size = max_file_size
        self._today = today

        if not self.fallback_repositories:
            raise ValueError("fallback_repositories must not be empty")

    @property
    def providers(self) -> list[RepositoryProvider]:
        """선호 순서대로 정렬된 저장소 공급자."""
        return [
            self.brand_new_repositories,
            self.trending_repositories,
            self.popular_repositories,
        ]

    async def pick_repository_pool(self) -> list[str]:
        """비어 있지 않은 저장소 목록을 반환한다."""
        for provider in self.providers:
            repositories = await provider()
            if repositories:
                return repositories
        return list(self.fallback_repositories)

    async def brand_new_repositories(self) -> list[str]:
        """최근 생성되었거나 방금 갱신된 저장소."""
        if self.tracker.is_rate_limited(SEARCH):
            return []

        created_since = (self._today() - timedelta(days=7)).isoformat()
        pushed_since = (self._today() - timedelta(days=1)).isoformat()
        queries = [
            (f"created:>{created_since} {SEARCH_LANGUAGES} language:java stars:>5", "stars"),
            (f"pushed:>{pushed_since} {SEARCH_LANGUAGES} language:java stars:>3", "updated"),
        ]

        repositories: dict[str, None] = {}
        for query, sort in queries:
            # 앞 검색에서 한도가 소진됐을 수 있다
            if self.tracker.is_rate_limited(SEARCH):
                break
            for name in await self._search(query, sort):
                repositories.setdefault(name, None)

        return list(repositories)

    async def trending_repositories(self) -> list[str]:
        """지난 1주일 동안 별을 많이 받은 신규 저장소."""
        if self.tracker.is_rate_limited(SEARCH):
            return []

        since = (self._today() - timedelta(days=7)).isoformat()
        return await self._search(f"created:>{since} {SEARCH_LANGUAGES} stars:>10", "stars")

    async def popular_repositories(self) -> list[str]:
        return list(self.fallback_repositories)

    async def _search(self, query: str, sort: str) -> list[str]:
        try:
            return await self.host.search_repositories(query, sort=sort, per_page=20)
        except QuotaExceededError as e:
            self.tracker.record_quota_exceeded(e.resource, e.reset_time)
            logger.warning(
                f"Search API rate limit hit. Reset in {self.tracker.time_until_reset(SEARCH)}s."
            )
        except NotFoundError:
            pass
        except HostError as e:
            logger.error(f"Error searching repositories: {e}")
        return []

    async def find_candidate_files(self, owner: str, repo: str, branch: str) -> list[CodeFile]:
        """최근 커밋 파일을 먼저 찾고, 없으면 디렉터리를 탐색한다."""
        recent = await self.find_recently_committed(owner, repo, branch)
        if recent:
            return recent
        return await self.walk_code_files(owner, repo, branch)

    async def find_recently_committed(self, owner: str, repo: str, branch: str) -> list[CodeFile]:
        """최근 커밋에서 추가/수정된 코드 파일을 찾는다."""
        try:
            commits = await self.host.list_commits(owner, repo, ref=branch, per_page=10)
        except QuotaExceededError as e:
            self.tracker.record_quota_exceeded(e.resource, e.reset_time)
            return []
        except HostError as e:
            if not isinstance(e, NotFoundError):
                logger.error(f"Error listing commits for {owner}/{repo}: {e}")
            return []

        files: dict[str, CodeFile] = {}
        for commit in commits[: self.commit_window]:
            sha = commit.get("sha")
            if not sha:
                continue
            try:
                detail = await self.host.get_commit(owner, repo, sha)
            except QuotaExceededError as e:
                self.tracker.record_quota_exceeded(e.resource, e.reset_time)
                break
            except NotFoundError:
                continue
            except HostError as e:
                logger.error(f"Error getting commit {sha}: {e}")
                continue

            info = _commit_info(detail)
            for changed in detail.get("files") or []:
                path = changed.get("filename", "")
                if changed.get("status") not in ("added", "modified"):
                    continue
                if not is_code_file(path):
                    continue
                existing = files.get(path)
                # 같은 파일이면 더 최근 커밋을 쓴다
                if existing is None or (existing.commit and info.date > existing.commit.date):
                    files[path] = CodeFile(path=path, commit=info)

        return list(files.values())

    async def walk_code_files(
        self,
        owner: str,
        repo: str,
        branch: str,
        path: str = "",
        depth: int = 0,
    ) -> list[CodeFile]:
        """깊이와 분기 수를 제한해 디렉터리를 재귀 탐색한다."""
        if depth >= self.max_depth:
            return []

        try:
            entries = await self.host.list_directory(owner, repo, path, branch)
        except QuotaExceededError as e:
            self.tracker.record_quota_exceeded(e.resource, e.reset_time)
            return []
        except HostError as e:
            if not isinstance(e, NotFoundError):
                logger.error(f"Error searching in {owner}/{repo}/{path}: {e}")
            return []

        code_files: list[CodeFile] = []
        directories: list[str] = []
        for entry in entries:
            name = entry.get("name", "")
            entry_path = entry.get("path") or name
            if entry.get("type") == "file" and is_code_file(name):
                size = entry.get("size")
                if size and size < self.max_file_size:
                    code_files.append(CodeFile(path=entry_path, size=size))
            elif (
                entry.get("type") == "dir"
                and not name.startswith(".")
                and name not in EXCLUDED_DIRECTORIES
            ):
                directories.append(entry_path)

        # 루트에 가까운 파일을 선호한다
        if code_files and depth <= 1:
            return code_files

        for directory in directories[: self.max_subdirectories]:
            code_files.extend(
                await self.walk_code_files(owner, repo, branch, directory, depth + 1)
            )
            if len(code_files) >= self.enough_files:
                break

        return code_files

    async def lookup_commit_info(self, owner: str, repo: str, path: str) -> CommitInfo | None:
        """파일을 마지막으로 수정한 커밋 정보. 실패하면 None."""
        try:
            commits = await self.host.list_commits(owner, repo, path=path, per_page=1)
        except QuotaExceededError as e:
            self.tracker.record_quota_exceeded(e.resource, e.reset_time)
            return None
        except HostError:
            return None

        if not commits:
            return None
        return _commit_info(commits[0])
