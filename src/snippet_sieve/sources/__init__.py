"""코드 호스트 및 저장소 탐색 모듈."""

from snippet_sieve.sources.base import (
    CodeHost,
    HostError,
    MalformedContentError,
    NotFoundError,
    QuotaExceededError,
    TransientError,
)
from snippet_sieve.sources.github import GitHubClient
from snippet_sieve.sources.locator import SourceLocator
from snippet_sieve.sources.static import POPULAR_REPOSITORIES, STATIC_SNIPPETS

__all__ = [
    "POPULAR_REPOSITORIES",
    "STATIC_SNIPPETS",
    "CodeHost",
    "GitHubClient",
    "HostError",
    "MalformedContentError",
    "NotFoundError",
    "QuotaExceededError",
    "SourceLocator",
    "TransientError",
]
