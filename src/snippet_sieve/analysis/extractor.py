"""함수/클래스 경계를 찾아 후보 구간을 만드는 모듈.

구문 분석 없이 줄 단위 정규식과 괄호 균형으로 경계를 추정한다.
"""

import re
from dataclasses import dataclass

from snippet_sieve.models import CandidateSpan, SpanKind

LANGUAGE_BY_EXTENSION = {
    "js": "javascript",
    "jsx": "javascript",
    "ts": "typescript",
    "tsx": "typescript",
    "py": "python",
    "java": "java",
    "cpp": "cpp",
    "c": "c",
    "go": "go",
    "rs": "rust",
    "rb": "ruby",
    "php": "php",
}


@dataclass(frozen=True)
class DeclarationPatterns:
    """언어별 선언 패턴."""

    function: re.Pattern[str]
    klass: re.Pattern[str]


DECLARATION_PATTERNS: dict[str, DeclarationPatterns] = {
    "javascript": DeclarationPatterns(
        function=re.compile(
            r"^(export\s+)?(default\s+)?(async\s+)?function\*?\s+\w+"
            r"|^(export\s+)?(const|let|var)\s+\w+\s*=\s*(async\s+)?\("
        ),
        klass=re.compile(r"^(export\s+)?(default\s+)?class\s+\w+"),
    ),
    "typescript": DeclarationPatterns(
        function=re.compile(
            r"^(export\s+)?(default\s+)?(async\s+)?function\*?\s+\w+"
            r"|^(export\s+)?(const|let|var)\s+\w+\s*[:=]\s*(async\s+)?\("
        ),
        klass=re.compile(r"^(export\s+)?(default\s+)?(abstract\s+)?class\s+\w+"),
    ),
    "python": DeclarationPatterns(
        function=re.compile(r"^(async\s+)?def\s+\w+"),
        klass=re.compile(r"^class\s+\w+"),
    ),
    "java": DeclarationPatterns(
        function=re.compile(
            r"^((public|private|protected)\s+)?(static\s+)?(final\s+)?"
            r"(?!(return|new|else|throw|case)\b)[\w<>\[\],]+\s+\w+\s*\("
        ),
        klass=re.compile(r"^(public\s+)?(abstract\s+)?(final\s+)?class\s+\w+"),
    ),
    "go": DeclarationPatterns(
        function=re.compile(r"^func\s+(\(.*?\)\s*)?\w+\s*\("),
        klass=re.compile(r"^type\s+\w+\s+(struct|interface)"),
    ),
    "rust": DeclarationPatterns(
        function=re.compile(r"^(pub(\(\w+\))?\s+)?(async\s+)?fn\s+\w+"),
        klass=re.compile(r"^(pub(\(\w+\))?\s+)?(struct|enum|impl|trait)\b"),
    ),
}


def detect_language(path: str) -> str:
    """파일 확장자로 언어를 추정한다."""
    name = path.rsplit("/", 1)[-1]
    if "." not in name:
        return "text"
    extension = name.rsplit(".", 1)[-1].lower()
    return LANGUAGE_BY_EXTENSION.get(extension, extension or "text")


def _finalize(
    start: int, end: int, kind: SpanKind, min_lines: int, max_lines: int
) -> CandidateSpan | None:
    """최소 길이 미만이면 버리고, 최대 길이를 넘으면 앞부분만 남긴다."""
    if end - start + 1 < min_lines:
        return None
    if end - start + 1 > max_lines:
        end = start + max_lines - 1
    if end - start + 1 < min_lines:
        return None
    return CandidateSpan(start=start, end=end, kind=kind)


def _match_declaration(trimmed: str, patterns: DeclarationPatterns) -> SpanKind | None:
    if patterns.klass.search(trimmed):
        return SpanKind.CLASS
    if patterns.function.search(trimmed):
        return SpanKind.FUNCTION
    return None


def _extract_braced(
    lines: list[str], patterns: DeclarationPatterns, min_lines: int, max_lines: int
) -> list[CandidateSpan]:
    spans: list[CandidateSpan] = []
    start: int | None = None
    kind = SpanKind.FUNCTION
    braces = 0
    parens = 0

    for index, line in enumerate(lines, start=1):
        matched = _match_declaration(line.strip(), patterns)
        if matched is not None:
            # 새 선언이 나오면 열린 구간을 정리한다
            if start is not None:
                span = _finalize(start, index - 1, kind, min_lines, max_lines)
                if span:
                    spans.append(span)
            start, kind = index, matched
            braces = parens = 0

        if start is None:
            continue

        for char in line:
            if char == "{":
                braces += 1
            elif char == "}":
                braces -= 1
            elif char == "(":
                parens += 1
            elif char == ")":
                parens -= 1

        if braces == 0 and parens == 0 and index - start + 1 >= min_lines:
            span = _finalize(start, index, kind, min_lines, max_lines)
            if span:
                spans.append(span)
            start = None

    if start is not None:
        span = _finalize(start, len(lines), kind, min_lines, max_lines)
        if span:
            spans.append(span)

    return spans


def _indent(line: str) -> int:
    return len(line) - len(line.lstrip())


def _extract_indented(
    lines: list[str], patterns: DeclarationPatterns, min_lines: int, max_lines: int
) -> list[CandidateSpan]:
    spans: list[CandidateSpan] = []
    start: int | None = None
    kind = SpanKind.FUNCTION
    indent = 0
    parens = 0
    last_code_line = 0

    def close(end: int) -> None:
        nonlocal start
        if start is not None:
            span = _finalize(start, end, kind, min_lines, max_lines)
            if span:
                spans.append(span)
        start = None

    for index, line in enumerate(lines, start=1):
        trimmed = line.strip()
        if not trimmed:
            continue

        # 선언보다 왼쪽(또는 같은 위치)으로 돌아오면 구간이 끝난다
        if start is not None and parens == 0 and _indent(line) <= indent:
            close(last_code_line)

        matched = _match_declaration(trimmed, patterns)
        if matched is not None:
            close(index - 1 if start is not None else index)
            start, kind, indent = index, matched, _indent(line)
            parens = 0

        if start is not None:
            parens += trimmed.count("(") + trimmed.count("[") + trimmed.count("{")
            parens -= trimmed.count(")") + trimmed.count("]") + trimmed.count("}")
            parens = max(parens, 0)
        last_code_line = index

    close(last_code_line)
    return spans


def extract_sections(
    content: str,
    language: str,
    min_lines: int = 10,
    max_lines: int = 35,
) -> list[CandidateSpan]:
    """언어별 선언을 기준으로 후보 구간을 추출한다.

    Args:
        content: 파일 내용
        language: 언어 이름 (알 수 없으면 javascript 규칙을 쓴다)
        min_lines: 구간 최소 줄 수
        max_lines: 구간 최대 줄 수. 넘으면 앞부분만 남긴다.

    Returns:
        줄 순서대로 정렬된 후보 구간
    """
    lines = content.split("\n")
    patterns = DECLARATION_PATTERNS.get(language, DECLARATION_PATTERNS["javascript"])
    if language == "python":
        return _extract_indented(lines, patterns, min_lines, max_lines)
    return _extract_braced(lines, patterns, min_lines, max_lines)


def sliding_windows(
    line_count: int, window: int = 35, min_lines: int = 15
) -> list[CandidateSpan]:
    """모든 위치에서 시작하는 겹치는 블록 구간을 만든다."""
    return [
        CandidateSpan(start=i + 1, end=min(i + window, line_count), kind=SpanKind.BLOCK)
        for i in range(max(0, line_count - min_lines + 1))
    ]


def default_block(line_count: int, max_lines: int = 35) -> CandidateSpan:
    """파일 중간의 기본 블록."""
    start = max(1, line_count // 2 - 15)
    end = max(start, min(start + max_lines - 1, line_count))
    return CandidateSpan(start=start, end=end, kind=SpanKind.BLOCK)
