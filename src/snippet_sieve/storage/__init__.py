"""스니펫 캐시 저장소 모듈."""

from snippet_sieve.storage.snippet_cache import SnippetCache

__all__ = ["SnippetCache"]
