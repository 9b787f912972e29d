"""구간 점수 계산과 가중 무작위 선택."""

import logging
import random
from collections.abc import Callable, Sequence

from snippet_sieve.analysis.extractor import default_block, extract_sections, sliding_windows
from snippet_sieve.analysis.metrics import analyze_complexity, detect_patterns
from snippet_sieve.config import ExtractionLimits, ScoringWeights
from snippet_sieve.models import (
    CandidateSpan,
    ComplexityMetrics,
    PatternTags,
    ScoredSpan,
    SnippetMetrics,
)

logger = logging.getLogger(__name__)

TOP_TIER_SHARE = 0.3
MID_TIER_SHARE = 0.4
TOP_TIER_PROBABILITY = 0.7
MID_TIER_PROBABILITY = 0.95

SpanProvider = Callable[[], ScoredSpan | None]


def compute_score(
    span: CandidateSpan,
    complexity: ComplexityMetrics,
    tags: PatternTags,
    weights: ScoringWeights | None = None,
) -> tuple[int, list[str]]:
    """지표를 합산해 점수와 근거를 반환한다."""
    w = weights or ScoringWeights()
    score = 0
    reasons: list[str] = []

    cc = complexity.cyclomatic_complexity
    if w.moderate_complexity_min <= cc <= w.moderate_complexity_max:
        score += w.moderate_complexity_bonus
        reasons.append(f"Moderate complexity ({cc})")
    elif cc > w.moderate_complexity_max:
        score += w.high_complexity_bonus
        reasons.append(f"High complexity ({cc}) - review needed")

    if complexity.nesting_depth >= w.deep_nesting_threshold:
        score += w.deep_nesting_bonus
        reasons.append(f"Deep nesting ({complexity.nesting_depth} levels)")

    if tags.code_smells:
        score += len(tags.code_smells) * w.code_smell_weight
        reasons.append(f"Code smells: {', '.join(tags.code_smells)}")

    if tags.interesting_patterns:
        score += len(tags.interesting_patterns) * w.interesting_pattern_weight
        reasons.append(f"Patterns: {', '.join(tags.interesting_patterns[:3])}")

    if tags.potential_issues:
        score += len(tags.potential_issues) * w.potential_issue_weight
        reasons.append(f"Issues: {', '.join(tags.potential_issues)}")

    if tags.educational_value:
        score += len(tags.educational_value) * w.educational_value_weight
        reasons.append(f"Educational: {', '.join(tags.educational_value)}")

    length = span.line_count
    if w.ideal_length_min <= length <= w.ideal_length_max:
        score += w.ideal_length_bonus
    elif w.ideal_length_max < length <= w.acceptable_length_max:
        score += w.acceptable_length_bonus
    elif length > w.acceptable_length_max:
        score -= w.oversized_penalty

    if complexity.magic_numbers > 0:
        score += w.magic_number_bonus
        reasons.append(f"{complexity.magic_numbers} magic number(s)")

    if complexity.long_parameter_list:
        score += w.long_parameter_list_bonus
        reasons.append("Long parameter list")

    return score, reasons


def _summary(complexity: ComplexityMetrics, tags: PatternTags) -> SnippetMetrics:
    return SnippetMetrics(
        complexity=complexity.cyclomatic_complexity,
        code_smells=len(tags.code_smells),
        interesting_patterns=len(tags.interesting_patterns),
        educational_value=len(tags.educational_value),
        potential_issues=len(tags.potential_issues),
    )


def score_span(
    lines: list[str],
    span: CandidateSpan,
    language: str,
    weights: ScoringWeights | None = None,
) -> ScoredSpan:
    """구간 하나를 분석하고 점수를 매긴다. 같은 입력이면 항상 같은 결과."""
    complexity = analyze_complexity(lines, span.start, span.end)
    tags = detect_patterns(lines, span.start, span.end, language)
    score, reasons = compute_score(span, complexity, tags, weights)
    return ScoredSpan(
        start=span.start,
        end=span.end,
        kind=span.kind,
        score=score,
        metrics=_summary(complexity, tags),
        reasons=reasons,
        tags=tags,
    )


def select_weighted(
    spans: Sequence[ScoredSpan], rng: random.Random | None = None
) -> ScoredSpan | None:
    """상위 구간에 치우치도록 무작위로 하나를 고른다.

    점수 내림차순으로 상위 30%, 중간 40%, 나머지로 나누고
    각각 70%, 25%, 5% 확률로 고른 등급 안에서 균등하게 뽑는다.
    """
    if not spans:
        return None

    rng = rng or random.Random()
    ranked = sorted(spans, key=lambda span: span.score, reverse=True)
    n = len(ranked)
    top_size = max(1, int(n * TOP_TIER_SHARE))
    mid_size = max(1, int(n * MID_TIER_SHARE))

    top = ranked[:top_size]
    mid = ranked[top_size : top_size + mid_size]
    rest = ranked[top_size + mid_size :]

    r = rng.random()
    if r < TOP_TIER_PROBABILITY:
        tiers = [top, mid, rest]
    elif r < MID_TIER_PROBABILITY:
        tiers = [mid, rest]
    else:
        tiers = [rest]

    for tier in tiers:
        if tier:
            return rng.choice(tier)
    return ranked[0]


def choose_span(
    lines: list[str],
    language: str,
    rng: random.Random | None = None,
    weights: ScoringWeights | None = None,
    limits: ExtractionLimits | None = None,
) -> ScoredSpan:
    """선언 구간, 슬라이딩 윈도, 중간 블록 순서로 구간을 고른다."""
    limits = limits or ExtractionLimits()
    weights = weights or ScoringWeights()
    rng = rng or random.Random()

    def from_sections() -> ScoredSpan | None:
        sections = extract_sections(
            "\n".join(lines),
            language,
            min_lines=limits.min_section_lines,
            max_lines=limits.max_section_lines,
        )
        scored = [score_span(lines, span, language, weights) for span in sections]
        return select_weighted([span for span in scored if span.score > 0], rng)

    def from_windows() -> ScoredSpan | None:
        windows = sliding_windows(
            len(lines), window=limits.max_section_lines, min_lines=limits.min_window_lines
        )
        scored = [score_span(lines, span, language, weights) for span in windows]
        return select_weighted([span for span in scored if span.score > 0], rng)

    providers: list[tuple[str, SpanProvider]] = [
        ("sections", from_sections),
        ("windows", from_windows),
    ]
    for name, provider in providers:
        chosen = provider()
        if chosen is not None:
            logger.debug(f"Picked {chosen.kind.value} span {chosen.start}-{chosen.end} from {name}")
            return chosen

    return placeholder_span(lines, language, weights.fallback_score, limits)


def placeholder_span(
    lines: list[str],
    language: str,
    score: int,
    limits: ExtractionLimits | None = None,
) -> ScoredSpan:
    """파일 중간 블록에 고정 점수를 붙인다."""
    limits = limits or ExtractionLimits()
    block = default_block(len(lines), max_lines=limits.max_section_lines)
    analyzed = score_span(lines, block, language)
    return analyzed.model_copy(update={"score": score})
