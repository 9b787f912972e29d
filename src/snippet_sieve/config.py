"""설정 관리 모듈."""

from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ScoringWeights(BaseModel):
    """구간 점수 가중치.

    경험적으로 정한 값들이라 설정으로 덮어쓸 수 있게 둔다.
    """

    moderate_complexity_min: int = Field(default=5, description="보통 복잡도 하한")
    moderate_complexity_max: int = Field(default=15, description="보통 복잡도 상한")
    moderate_complexity_bonus: int = Field(default=15, description="보통 복잡도 가산점")
    high_complexity_bonus: int = Field(default=20, description="높은 복잡도 가산점")
    deep_nesting_threshold: int = Field(default=3, description="깊은 중첩 기준")
    deep_nesting_bonus: int = Field(default=10, description="깊은 중첩 가산점")
    code_smell_weight: int = Field(default=5, description="코드 스멜 1개당 점수")
    interesting_pattern_weight: int = Field(default=8, description="흥미 패턴 1개당 점수")
    potential_issue_weight: int = Field(default=15, description="잠재 이슈 1개당 점수")
    educational_value_weight: int = Field(default=10, description="교육적 가치 1개당 점수")
    magic_number_bonus: int = Field(default=5, description="매직 넘버 가산점")
    long_parameter_list_bonus: int = Field(default=5, description="긴 파라미터 목록 가산점")
    ideal_length_min: int = Field(default=15, description="이상적인 길이 하한 (줄)")
    ideal_length_max: int = Field(default=30, description="이상적인 길이 상한 (줄)")
    ideal_length_bonus: int = Field(default=5, description="이상적인 길이 가산점")
    acceptable_length_max: int = Field(default=35, description="허용 길이 상한 (줄)")
    acceptable_length_bonus: int = Field(default=2, description="허용 길이 가산점")
    oversized_penalty: int = Field(default=15, description="너무 긴 구간 감점")
    fallback_score: int = Field(default=3, description="기본 블록의 고정 점수")
    fast_mode_score: int = Field(default=5, description="빠른 모드 스니펫의 고정 점수")


class ExtractionLimits(BaseModel):
    """구간 추출 한도."""

    min_section_lines: int = Field(default=10, ge=1, description="구간 최소 줄 수")
    max_section_lines: int = Field(default=35, ge=1, description="구간 최대 줄 수")
    min_file_lines: int = Field(default=15, ge=1, description="분석할 파일의 최소 줄 수")
    min_window_lines: int = Field(default=15, ge=1, description="슬라이딩 윈도우 최소 줄 수")


class Settings(BaseSettings):
    """애플리케이션 설정."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    github_token: str | None = Field(default=None, description="GitHub API 토큰")
    github_api_base: str = Field(
        default="https://api.github.com",
        description="GitHub REST API 주소",
    )

    # 타임아웃과 재시도
    request_timeout: float = Field(default=10.0, description="HTTP 요청 타임아웃 (초)")
    call_timeout: float = Field(default=5.0, description="원격 단계별 타임아웃 (초)")
    batch_timeout: float = Field(default=8.0, description="배치 전체 제한 시간 (초)")
    max_retries: int = Field(default=3, ge=1, description="획득 최대 시도 횟수")
    retry_delay: float = Field(default=1.0, description="일반 오류 후 재시도 지연 (초)")
    quota_retry_delay: float = Field(default=2.0, description="403 이후 재시도 지연 (초)")

    # 캐시와 프리로드
    batch_size: int = Field(default=3, ge=1, description="동시에 진행할 획득 시도 수")
    cache_capacity: int = Field(default=30, ge=1, description="캐시 최대 스니펫 수")
    low_water_mark: int = Field(default=10, ge=0, description="프리로드 시작 기준")
    preload_target: int = Field(default=15, ge=1, description="프리로드 목표 캐시 크기")
    min_preload_interval: float = Field(default=2.0, description="프리로드 최소 간격 (초)")
    max_preload_backoff: float = Field(default=60.0, description="프리로드 최대 대기 (초)")
    max_preload_failures: int = Field(default=5, ge=1, description="프리로드 연속 실패 허용 횟수")
    cache_dir: Path = Field(
        default=Path.home() / ".cache",
        description="캐시 파일을 둘 디렉터리",
    )
    cache_ttl_days: int = Field(default=7, ge=1, description="캐시 항목 유효 기간 (일)")

    extraction: ExtractionLimits = Field(default_factory=ExtractionLimits)
    scoring: ScoringWeights = Field(default_factory=ScoringWeights)


settings = Settings()
