"""SourceLocator 테스트."""

from datetime import date
from typing import Any

import pytest
from conftest import FakeHost, dir_entry, file_entry

from snippet_sieve.ratelimit import CORE, SEARCH, RateLimitTracker
from snippet_sieve.sources.base import QuotaExceededError, TransientError
from snippet_sieve.sources.locator import SourceLocator, is_code_file
from snippet_sieve.sources.static import POPULAR_REPOSITORIES


def _locator(host: FakeHost, tracker: RateLimitTracker, **kwargs: Any) -> SourceLocator:
    return SourceLocator(host, tracker, today=lambda: date(2024, 5, 10), **kwargs)


def _commit(sha: str) -> dict[str, Any]:
    return {"sha": sha}


def _detail(date_str: str, files: list[tuple[str, str]], login: str = "octocat") -> dict[str, Any]:
    return {
        "author": {"login": login},
        "commit": {
            "author": {"name": "Octo Cat", "date": date_str},
            "committer": {"date": date_str},
        },
        "files": [{"filename": name, "status": status} for name, status in files],
    }


class TestIsCodeFile:
    """is_code_file 테스트."""

    @pytest.mark.parametrize("path", ["src/app.ts", "lib/util.PY", "main.go", "a/b/c.rs"])
    def test_accepts_code_files(self, path: str) -> None:
        """코드 확장자를 가진 파일을 받아들인다."""
        assert is_code_file(path) is True

    @pytest.mark.parametrize("path", ["README.md", "dist/app.min.js", "image.png", ""])
    def test_rejects_other_files(self, path: str) -> None:
        """문서, 압축본, 바이너리는 거른다."""
        assert is_code_file(path) is False

    def test_rejects_long_paths(self) -> None:
        """경로가 너무 길면 거른다."""
        assert is_code_file("a/" * 100 + "x.py") is False


class TestRepositoryPool:
    """저장소 풀 선택 테스트."""

    @pytest.mark.asyncio
    async def test_brand_new_repositories_first(self, tracker: RateLimitTracker) -> None:
        """신규 저장소 검색 결과가 있으면 그것을 쓴다."""
        host = FakeHost(search_results=["new/one", "new/two"])
        pool = await _locator(host, tracker).pick_repository_pool()

        # 두 검색 결과를 순서대로 합치고 중복은 제거한다
        assert pool == ["new/one", "new/two"]
        assert host.calls["search_repositories"] == 2

    @pytest.mark.asyncio
    async def test_falls_back_to_popular(self, tracker: RateLimitTracker) -> None:
        """검색 결과가 비면 인기 저장소 목록을 쓴다."""
        host = FakeHost(search_results=[])
        pool = await _locator(host, tracker).pick_repository_pool()

        assert pool == POPULAR_REPOSITORIES
        # 신규 검색 2번, 트렌딩 검색 1번
        assert host.calls["search_repositories"] == 3

    @pytest.mark.asyncio
    async def test_skips_search_when_rate_limited(self, tracker: RateLimitTracker) -> None:
        """search 한도가 소진됐으면 검색하지 않는다."""
        tracker.mark_exhausted(SEARCH, reset_after=120)
        host = FakeHost(search_results=["new/one"])

        pool = await _locator(host, tracker).pick_repository_pool()

        assert pool == POPULAR_REPOSITORIES
        assert host.calls["search_repositories"] == 0

    @pytest.mark.asyncio
    async def test_search_quota_error_is_recorded(self, tracker: RateLimitTracker) -> None:
        """검색 403은 기록되고 다음 단계로 넘어간다."""
        host = FakeHost(
            failures={"search_repositories": QuotaExceededError("quota", resource=SEARCH)}
        )
        pool = await _locator(host, tracker).pick_repository_pool()

        assert pool == POPULAR_REPOSITORIES
        assert tracker.is_rate_limited(SEARCH) is True
        # 첫 403 이후에는 검색하지 않는다
        assert host.calls["search_repositories"] == 1

    def test_empty_fallback_rejected(self, tracker: RateLimitTracker) -> None:
        """대체 저장소 목록은 비어 있을 수 없다."""
        with pytest.raises(ValueError):
            SourceLocator(FakeHost(), tracker, fallback_repositories=[])


class TestFindCandidateFiles:
    """후보 파일 탐색 테스트."""

    @pytest.mark.asyncio
    async def test_recent_commits_first(self, tracker: RateLimitTracker) -> None:
        """최근 커밋에서 추가/수정된 코드 파일을 찾는다."""
        host = FakeHost(
            commits=[_commit("c1"), _commit("c2")],
            commit_details={
                "c1": _detail(
                    "2024-05-09T10:00:00Z",
                    [("src/a.py", "modified"), ("README.md", "modified"), ("old.js", "removed")],
                ),
                "c2": _detail(
                    "2024-05-08T10:00:00Z", [("src/a.py", "added"), ("lib/b.ts", "added")]
                ),
            },
        )

        files = await _locator(host, tracker).find_candidate_files("octo", "repo", "main")
        by_path = {f.path: f for f in files}

        assert set(by_path) == {"src/a.py", "lib/b.ts"}
        assert by_path["src/a.py"].commit is not None
        assert by_path["src/a.py"].commit.date == "2024-05-09T10:00:00Z"
        assert by_path["src/a.py"].commit.author == "Octo Cat"
        assert by_path["src/a.py"].commit.author_login == "octocat"
        assert host.calls["list_directory"] == 0

    @pytest.mark.asyncio
    async def test_only_first_commits_are_inspected(self, tracker: RateLimitTracker) -> None:
        """최근 커밋 중 앞쪽 몇 개만 상세 조회한다."""
        commits = [_commit(f"c{i}") for i in range(10)]
        details = {
            f"c{i}": _detail("2024-05-01T00:00:00Z", [(f"f{i}.js", "added")]) for i in range(10)
        }
        host = FakeHost(commits=commits, commit_details=details)

        files = await _locator(host, tracker).find_candidate_files("octo", "repo", "main")

        assert len(files) == 5
        assert host.calls["get_commit"] == 5

    @pytest.mark.asyncio
    async def test_walks_directories_without_commits(self, tracker: RateLimitTracker) -> None:
        """커밋에서 못 찾으면 디렉터리를 탐색한다."""
        host = FakeHost(
            directories={
                "": [
                    file_entry("README.md"),
                    dir_entry(".github"),
                    dir_entry("node_modules"),
                    dir_entry("src"),
                ],
                "src": [file_entry("src/main.py"), file_entry("src/huge.py", size=2_000_000)],
            }
        )

        files = await _locator(host, tracker).find_candidate_files("octo", "repo", "main")

        assert [f.path for f in files] == ["src/main.py"]

    @pytest.mark.asyncio
    async def test_root_files_returned_directly(self, tracker: RateLimitTracker) -> None:
        """얕은 단계에서 코드 파일을 찾으면 더 내려가지 않는다."""
        host = FakeHost(directories={"": [file_entry("index.js"), dir_entry("src")]})

        files = await _locator(host, tracker).walk_code_files("octo", "repo", "main")

        assert [f.path for f in files] == ["index.js"]
        assert host.calls["list_directory"] == 1

    @pytest.mark.asyncio
    async def test_walk_respects_depth_and_branching(self, tracker: RateLimitTracker) -> None:
        """깊이와 하위 디렉터리 수를 제한한다."""
        host = FakeHost(
            directories={
                "": [dir_entry(f"d{i}") for i in range(5)],
                **{f"d{i}": [dir_entry(f"d{i}/deep")] for i in range(5)},
                **{f"d{i}/deep": [dir_entry(f"d{i}/deep/deeper")] for i in range(5)},
                **{f"d{i}/deep/deeper": [file_entry(f"d{i}/deep/deeper/x.py")] for i in range(5)},
            }
        )

        files = await _locator(host, tracker).walk_code_files("octo", "repo", "main")

        # 깊이 3에 있는 파일에는 도달하지 않는다
        assert files == []
        # 루트 1 + 하위 3 + 그 아래 3
        assert host.calls["list_directory"] == 7

    @pytest.mark.asyncio
    async def test_quota_error_while_walking(self, tracker: RateLimitTracker) -> None:
        """탐색 중 403은 기록하고 빈 결과를 돌려준다."""
        host = FakeHost(failures={"list_directory": QuotaExceededError("quota")})

        files = await _locator(host, tracker).walk_code_files("octo", "repo", "main")

        assert files == []
        assert tracker.is_rate_limited(CORE) is True

    @pytest.mark.asyncio
    async def test_transient_commit_error_falls_back_to_walk(
        self, tracker: RateLimitTracker
    ) -> None:
        """커밋 조회 실패는 로그만 남기고 디렉터리 탐색으로 넘어간다."""
        host = FakeHost(
            failures={"list_commits": TransientError("boom", status_code=502)},
            directories={"": [file_entry("app.go")]},
        )

        files = await _locator(host, tracker).find_candidate_files("octo", "repo", "main")

        assert [f.path for f in files] == ["app.go"]


class TestLookupCommitInfo:
    """lookup_commit_info 테스트."""

    @pytest.mark.asyncio
    async def test_returns_latest_commit(self, tracker: RateLimitTracker) -> None:
        """파일의 최신 커밋 작성자를 반환한다."""
        host = FakeHost(commits=[_detail("2024-05-01T00:00:00Z", [], login="hubot")])
        info = await _locator(host, tracker).lookup_commit_info("octo", "repo", "a.py")

        assert info is not None
        assert info.author_login == "hubot"

    @pytest.mark.asyncio
    async def test_failure_yields_none(self, tracker: RateLimitTracker) -> None:
        """조회 실패는 None."""
        host = FakeHost(failures={"list_commits": TransientError("boom")})
        assert await _locator(host, tracker).lookup_commit_info("octo", "repo", "a.py") is None
