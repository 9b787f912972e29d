"""코드 호스트 프로토콜과 오류 정의."""

from typing import Any, Protocol

from snippet_sieve.ratelimit import CORE


class HostError(Exception):
    """코드 호스트 호출 실패."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        resource: str = CORE,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.resource = resource


class NotFoundError(HostError):
    """404: 다른 후보로 넘어간다."""


class QuotaExceededError(HostError):
    """403/429: 한도 소진."""

    def __init__(
        self,
        message: str,
        status_code: int | None = 403,
        resource: str = CORE,
        reset_time: int | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code, resource=resource)
        self.reset_time = reset_time


class MalformedContentError(HostError):
    """파일 대신 디렉터리가 오는 등 내용이 기대와 다르다."""


class TransientError(HostError):
    """타임아웃, 연결 실패, 5xx."""


class CodeHost(Protocol):
    """저장소 내용과 메타데이터를 제공하는 호스트 프로토콜."""

    async def get_default_branch(self, owner: str, repo: str) -> str:
        """기본 브랜치 이름을 가져온다."""
        ...

    async def get_file_content(self, owner: str, repo: str, path: str, ref: str) -> str:
        """파일 내용을 텍스트로 가져온다."""
        ...

    async def list_directory(
        self, owner: str, repo: str, path: str, ref: str
    ) -> list[dict[str, Any]]:
        """디렉터리 항목 목록을 가져온다."""
        ...

    async def list_commits(
        self,
        owner: str,
        repo: str,
        ref: str | None = None,
        path: str | None = None,
        per_page: int = 10,
    ) -> list[dict[str, Any]]:
        """최근 커밋 목록을 가져온다."""
        ...

    async def get_commit(self, owner: str, repo: str, sha: str) -> dict[str, Any]:
        """변경 파일을 포함한 커밋 상세를 가져온다."""
        ...

    async def search_repositories(
        self, query: str, sort: str = "stars", per_page: int = 20
    ) -> list[str]:
        """검색 조건에 맞는 저장소 전체 이름 목록을 가져온다."""
        ...

    async def get_rate_limit(self) -> dict[str, Any]:
        """현재 한도 정보를 가져온다."""
        ...
