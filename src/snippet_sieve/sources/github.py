"""GitHub REST API 클라이언트."""

import base64
import binascii
import logging
from typing import Any, Self
from urllib.parse import quote

import httpx

from snippet_sieve.ratelimit import RateLimitTracker, resource_for_path
from snippet_sieve.sources.base import (
    HostError,
    MalformedContentError,
    NotFoundError,
    QuotaExceededError,
    TransientError,
)

logger = logging.getLogger(__name__)

API_BASE = "https://api.github.com"


class GitHubClient:
    """GitHub API를 호출하고 응답 헤더로 레이트 리밋 상태를 갱신한다."""

    def __init__(
        self,
        token: str | None = None,
        tracker: RateLimitTracker | None = None,
        base_url: str = API_BASE,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Args:
            token: GitHub 토큰. 없으면 비인증 한도를 사용한다.
            tracker: 레이트 리밋 추적기. None이면 새로 만든다.
            base_url: API 주소
            timeout: HTTP 요청 타임아웃 (초)
            transport: 테스트용 httpx transport
        """
        self.tracker = tracker or RateLimitTracker()
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=self._get_headers(token),
            timeout=timeout,
            transport=transport,
            follow_redirects=True,
        )

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _get_headers(self, token: str | None) -> dict[str, str]:
        """GitHub API 요청 헤더를 만든다."""
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _raise_for_status(self, response: httpx.Response, path: str, resource: str) -> None:
        """상태 코드를 오류 분류로 바꾼다."""
        status = response.status_code
        if status < 400:
            return

        if status == 404:
            raise NotFoundError(f"Not found: {path}", status_code=status, resource=resource)

        if status in (403, 429):
            if not self.tracker.is_rate_limited(resource):
                retry_after = response.headers.get("retry-after")
                reset_after = int(retry_after) if retry_after and retry_after.isdigit() else 60
                self.tracker.mark_exhausted(resource, reset_after=reset_after)
            state = self.tracker.status().get(resource)
            raise QuotaExceededError(
                f"Quota exceeded ({resource}): {path}",
                status_code=status,
                resource=resource,
                reset_time=state.reset_time if state else None,
            )

        if status >= 500:
            raise TransientError(
                f"Server error {status}: {path}", status_code=status, resource=resource
            )

        raise HostError(f"GitHub API error {status}: {path}", status_code=status, resource=resource)

    async def _get(
        self, path: str, params: dict[str, Any] | None = None, wait: bool = True
    ) -> Any:
        """GET 요청을 보내고 JSON을 반환한다."""
        resource = resource_for_path(path)
        if wait:
            await self.tracker.wait_turn(resource)

        try:
            response = await self._client.get(path, params=params)
        except httpx.TimeoutException as e:
            raise TransientError(f"Timed out: {path}", resource=resource) from e
        except httpx.RequestError as e:
            raise TransientError(f"Request failed: {path}: {e}", resource=resource) from e

        # 오류 응답에도 한도 헤더가 있다
        self.tracker.update_from_headers(response.headers, resource)
        self._raise_for_status(response, path, resource)

        try:
            return response.json()
        except ValueError as e:
            raise MalformedContentError(
                f"Invalid JSON: {path}", status_code=response.status_code, resource=resource
            ) from e

    def _contents_path(self, owner: str, repo: str, path: str) -> str:
        path = path.strip("/")
        if not path:
            return f"/repos/{owner}/{repo}/contents"
        return f"/repos/{owner}/{repo}/contents/{quote(path)}"

    async def get_default_branch(self, owner: str, repo: str) -> str:
        data: dict[str, Any] = await self._get(f"/repos/{owner}/{repo}")
        return str(data.get("default_branch") or "main")

    async def get_file_content(self, owner: str, repo: str, path: str, ref: str) -> str:
        data = await self._get(self._contents_path(owner, repo, path), params={"ref": ref})

        if isinstance(data, list) or data.get("type") != "file":
            raise MalformedContentError(f"Not a file: {owner}/{repo}/{path}")
        if data.get("encoding") != "base64" or not data.get("content"):
            raise MalformedContentError(f"No inline content: {owner}/{repo}/{path}")

        try:
            return base64.b64decode(data["content"]).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as e:
            raise MalformedContentError(f"Undecodable content: {owner}/{repo}/{path}") from e

    async def list_directory(
        self, owner: str, repo: str, path: str, ref: str
    ) -> list[dict[str, Any]]:
        data = await self._get(self._contents_path(owner, repo, path), params={"ref": ref})
        if not isinstance(data, list):
            raise MalformedContentError(f"Not a directory: {owner}/{repo}/{path}")
        return data

    async def list_commits(
        self,
        owner: str,
        repo: str,
        ref: str | None = None,
        path: str | None = None,
        per_page: int = 10,
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"per_page": per_page}
        if ref:
            params["sha"] = ref
        if path:
            params["path"] = path
        data: list[dict[str, Any]] = await self._get(
            f"/repos/{owner}/{repo}/commits", params=params
        )
        return data

    async def get_commit(self, owner: str, repo: str, sha: str) -> dict[str, Any]:
        data: dict[str, Any] = await self._get(f"/repos/{owner}/{repo}/commits/{sha}")
        return data

    async def search_repositories(
        self, query: str, sort: str = "stars", per_page: int = 20
    ) -> list[str]:
        data: dict[str, Any] = await self._get(
            "/search/repositories",
            params={"q": query, "sort": sort, "order": "desc", "per_page": per_page},
        )
        return [item["full_name"] for item in data.get("items", []) if item.get("full_name")]

    async def get_rate_limit(self) -> dict[str, Any]:
        """/rate_limit 조회. 이 호출은 한도를 소모하지 않는다."""
        data: dict[str, Any] = await self._get("/rate_limit", wait=False)
        for resource, info in data.get("resources", {}).items():
            try:
                self.tracker.record(
                    resource,
                    remaining=int(info["remaining"]),
                    reset_time=int(info["reset"]),
                    limit=int(info.get("limit", 0)),
                )
            except (KeyError, TypeError, ValueError):
                logger.debug(f"Skipping malformed rate limit entry: {resource}")
        return data
