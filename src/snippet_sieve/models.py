"""데이터 모델 정의."""

from enum import Enum
from typing import Self

from pydantic import BaseModel, ConfigDict, Field, model_validator

MAX_SNIPPET_LINES = 35


class SpanKind(str, Enum):
    """후보 구간 종류."""

    FUNCTION = "function"
    CLASS = "class"
    BLOCK = "block"


class SnippetMetrics(BaseModel):
    """스니펫 요약 지표."""

    model_config = ConfigDict(frozen=True)

    complexity: int = Field(default=1, description="근사 순환 복잡도")
    code_smells: int = Field(default=0, description="코드 스멜 수")
    interesting_patterns: int = Field(default=0, description="흥미 패턴 수")
    educational_value: int = Field(default=0, description="교육적 가치 태그 수")
    potential_issues: int = Field(default=0, description="잠재 이슈 수")


class CodeSnippet(BaseModel):
    """사용자에게 제공되는 코드 스니펫."""

    model_config = ConfigDict(frozen=True)

    repository: str = Field(description="저장소 전체 이름 (owner/repo)")
    file_path: str = Field(description="저장소 내 파일 경로")
    content: str = Field(description="스니펫 본문")
    language: str = Field(description="프로그래밍 언어")
    start_line: int = Field(ge=1, description="시작 줄 (1부터)")
    end_line: int = Field(ge=1, description="끝 줄 (포함)")
    url: str = Field(description="GitHub 블롭 URL")
    score: int | None = Field(default=None, description="흥미도 점수")
    metrics: SnippetMetrics | None = Field(default=None, description="지표")
    commit_author: str | None = Field(default=None, description="커밋 작성자 이름")
    commit_author_login: str | None = Field(default=None, description="커밋 작성자 로그인")
    commit_date: str | None = Field(default=None, description="커밋 날짜 (ISO)")

    @model_validator(mode="after")
    def _check_line_range(self) -> Self:
        line_count = len(self.content.split("\n"))
        if line_count > MAX_SNIPPET_LINES:
            raise ValueError(f"content has {line_count} lines (max {MAX_SNIPPET_LINES})")
        if self.end_line - self.start_line + 1 != line_count:
            raise ValueError(
                f"line range {self.start_line}-{self.end_line} does not match "
                f"{line_count} content lines"
            )
        return self

    @property
    def key(self) -> tuple[str, str, int, int]:
        """캐시 중복 판단용 식별자."""
        return (self.repository, self.file_path, self.start_line, self.end_line)


class CandidateSpan(BaseModel):
    """점수화 전 후보 구간 (1부터 시작, 끝 줄 포함)."""

    model_config = ConfigDict(frozen=True)

    start: int = Field(ge=1, description="시작 줄")
    end: int = Field(ge=1, description="끝 줄")
    kind: SpanKind = Field(default=SpanKind.BLOCK, description="구간 종류")

    @property
    def line_count(self) -> int:
        return self.end - self.start + 1


class ComplexityMetrics(BaseModel):
    """구간 복잡도 지표."""

    cyclomatic_complexity: int = 1
    nesting_depth: int = 0
    line_length_issues: int = 0
    magic_numbers: int = 0
    long_parameter_list: bool = False


class PatternTags(BaseModel):
    """패턴 검사 결과 라벨."""

    code_smells: list[str] = Field(default_factory=list)
    interesting_patterns: list[str] = Field(default_factory=list)
    potential_issues: list[str] = Field(default_factory=list)
    educational_value: list[str] = Field(default_factory=list)


class ScoredSpan(CandidateSpan):
    """점수가 매겨진 후보 구간."""

    score: int = Field(description="흥미도 점수")
    metrics: SnippetMetrics = Field(description="요약 지표")
    reasons: list[str] = Field(default_factory=list, description="점수 근거")
    tags: PatternTags = Field(default_factory=PatternTags, description="패턴 라벨")


class RateLimitState(BaseModel):
    """리소스별 API 남은 한도."""

    resource: str = Field(description="리소스 종류 ('core' | 'search')")
    remaining: int = Field(description="남은 요청 수")
    reset_time: int = Field(description="한도 초기화 시각 (unix 초)")
    limit: int = Field(default=0, description="전체 한도")


class CommitInfo(BaseModel):
    """파일을 마지막으로 수정한 커밋 정보."""

    author: str = Field(default="Unknown", description="작성자 이름")
    author_login: str = Field(default="Unknown", description="작성자 로그인")
    date: str = Field(description="커밋 날짜 (ISO)")


class CodeFile(BaseModel):
    """후보 코드 파일."""

    path: str = Field(description="저장소 내 경로")
    size: int | None = Field(default=None, description="바이트 크기")
    commit: CommitInfo | None = Field(default=None, description="최근 커밋 정보")

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]


class CacheEntry(CodeSnippet):
    """캐시에 저장된 스니펫."""

    cached_at: float = Field(description="캐시 저장 시각 (unix 초)")

    def to_snippet(self) -> CodeSnippet:
        return CodeSnippet.model_validate(self.model_dump(exclude={"cached_at"}))


class CacheStats(BaseModel):
    """캐시 적중 통계."""

    hits: int = 0
    misses: int = 0
    created: float = 0.0
    last_updated: float = 0.0


class BatchResult(BaseModel):
    """배치 요청 결과."""

    snippets: list[CodeSnippet] = Field(default_factory=list)
    rate_limited: bool = Field(default=False, description="레이트 리밋 상태 여부")
    used_fallback: bool = Field(default=False, description="번들 스니펫 사용 여부")
    elapsed_ms: int = Field(default=0, description="소요 시간 (ms)")
