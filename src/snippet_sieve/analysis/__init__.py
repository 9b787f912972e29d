"""구간 추출, 지표 분석, 점수화 모듈."""

from snippet_sieve.analysis.extractor import detect_language, extract_sections
from snippet_sieve.analysis.scoring import choose_span, score_span, select_weighted

__all__ = ["choose_span", "detect_language", "extract_sections", "score_span", "select_weighted"]
