"""공용 테스트 픽스처."""

from collections import Counter
from typing import Any

import pytest

from snippet_sieve.models import CodeSnippet
from snippet_sieve.ratelimit import RateLimitTracker
from snippet_sieve.sources.base import NotFoundError

# 20줄짜리 JavaScript 함수 (결정 지점 4개)
SAMPLE_FUNCTION = """function normalizeUsers(users, options) {
  const result = []
  for (const user of users) {
    if (!user.active) {
      continue
    }
    const name = user.name.trim()
    if (options.lowercase) {
      result.push(name.toLowerCase())
    } else {
      result.push(name)
    }
  }
  const unique = new Set(result)
  const sorted = Array.from(unique)
  sorted.sort()
  const limit = options.limit || sorted.length
  const trimmed = sorted.slice(0, limit)
  return trimmed
}"""

# 8줄짜리 함수 하나만 있는 파일
SHORT_FUNCTION = """function add(a, b) {
  const sum = a + b
  if (sum > 0) {
    return sum
  }
  return 0
  // done
}"""


def make_module(body_lines: int = 60) -> str:
    """여러 함수가 들어 있는 JavaScript 파일을 만든다."""
    lines = ["// generated module", ""]
    lines.extend(SAMPLE_FUNCTION.split("\n"))
    lines.append("")
    while len(lines) < body_lines:
        lines.append(f"const value{len(lines)} = compute({len(lines)})")
    return "\n".join(lines)


class FakeClock:
    """수동으로 움직이는 시계."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SleepRecorder:
    """실제로 기다리지 않고 요청된 대기 시간만 기록한다."""

    def __init__(self, clock: FakeClock | None = None) -> None:
        self.delays: list[float] = []
        self.clock = clock

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        if self.clock is not None:
            self.clock.advance(seconds)


class FakeHost:
    """메모리 안의 코드 호스트."""

    def __init__(
        self,
        files: dict[str, str] | None = None,
        branch: str = "main",
        search_results: list[str] | None = None,
        commits: list[dict[str, Any]] | None = None,
        commit_details: dict[str, dict[str, Any]] | None = None,
        directories: dict[str, list[dict[str, Any]]] | None = None,
        failures: dict[str, Exception] | None = None,
    ) -> None:
        self.files = files or {}
        self.branch = branch
        self.search_results = search_results or []
        self.commits = commits or []
        self.commit_details = commit_details or {}
        self.directories = directories or {}
        self.failures = failures or {}
        self.calls: Counter[str] = Counter()

    def _check(self, name: str) -> None:
        self.calls[name] += 1
        error = self.failures.get(name)
        if error is not None:
            raise error

    async def get_default_branch(self, owner: str, repo: str) -> str:
        self._check("get_default_branch")
        return self.branch

    async def get_file_content(self, owner: str, repo: str, path: str, ref: str) -> str:
        self._check("get_file_content")
        if path not in self.files:
            raise NotFoundError(f"Not found: {path}", status_code=404)
        return self.files[path]

    async def list_directory(
        self, owner: str, repo: str, path: str, ref: str
    ) -> list[dict[str, Any]]:
        self._check("list_directory")
        if path not in self.directories:
            raise NotFoundError(f"Not found: {path}", status_code=404)
        return self.directories[path]

    async def list_commits(
        self,
        owner: str,
        repo: str,
        ref: str | None = None,
        path: str | None = None,
        per_page: int = 10,
    ) -> list[dict[str, Any]]:
        self._check("list_commits")
        return self.commits[:per_page]

    async def get_commit(self, owner: str, repo: str, sha: str) -> dict[str, Any]:
        self._check("get_commit")
        if sha not in self.commit_details:
            raise NotFoundError(f"Not found: {sha}", status_code=404)
        return self.commit_details[sha]

    async def search_repositories(
        self, query: str, sort: str = "stars", per_page: int = 20
    ) -> list[str]:
        self._check("search_repositories")
        return self.search_results[:per_page]

    async def get_rate_limit(self) -> dict[str, Any]:
        self._check("get_rate_limit")
        return {"resources": {}}


def make_snippet(name: str = "a.py", score: int = 10, lines: int = 3) -> CodeSnippet:
    """테스트용 스니펫을 만든다."""
    return CodeSnippet(
        repository="octo/repo",
        file_path=name,
        content="\n".join(f"line {i}" for i in range(lines)),
        language="python",
        start_line=1,
        end_line=lines,
        url=f"https://github.com/octo/repo/blob/main/{name}#L1-L{lines}",
        score=score,
    )


def file_entry(path: str, size: int = 2048) -> dict[str, Any]:
    """디렉터리 목록의 파일 항목."""
    return {"name": path.rsplit("/", 1)[-1], "path": path, "type": "file", "size": size}


def dir_entry(path: str) -> dict[str, Any]:
    """디렉터리 목록의 디렉터리 항목."""
    return {"name": path.rsplit("/", 1)[-1], "path": path, "type": "dir"}


@pytest.fixture
def clock() -> FakeClock:
    """고정된 시계를 반환한다."""
    return FakeClock()


@pytest.fixture
def sleeper(clock: FakeClock) -> SleepRecorder:
    """시계를 움직이는 가짜 sleep을 반환한다."""
    return SleepRecorder(clock)


@pytest.fixture
def tracker(clock: FakeClock, sleeper: SleepRecorder) -> RateLimitTracker:
    """가짜 시계를 쓰는 RateLimitTracker를 반환한다."""
    return RateLimitTracker(clock=clock, sleep=sleeper)


@pytest.fixture
def host() -> FakeHost:
    """파일 하나가 있는 FakeHost를 반환한다."""
    return FakeHost(
        files={"src/users.js": make_module()},
        directories={"": [file_entry("src/users.js")]},
    )
