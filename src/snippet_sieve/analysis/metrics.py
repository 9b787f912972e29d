"""구간 복잡도와 패턴을 휴리스틱으로 분석하는 모듈."""

import re
from collections.abc import Callable
from dataclasses import dataclass

from snippet_sieve.models import ComplexityMetrics, PatternTags

DECISION_PATTERN = re.compile(
    r"\bif\s*\(|\belse\s*if\b|\belif\b|\bswitch\s*\(|\bcase\s+|\bcatch\s*\("
    r"|\bexcept\b|\bwhile\s*\(|\bfor\s*\(|&&|\|\|"
    r"|^(if|while|for)\b.*:$"
)
MAGIC_NUMBER_PATTERN = re.compile(r"\b\d{2,}\b")
LONG_PARAMETER_PATTERN = re.compile(r"\([^)]{50,}\)")
DECLARED_NAME_PATTERN = re.compile(r"\b(?:def|function|fn|func)\s+(?:\([^)]*\)\s*)?(\w+)")

LONG_LINE = 100
LONG_METHOD_LINES = 50

SCRIPT_LANGUAGES = {"javascript", "typescript"}


@dataclass(frozen=True)
class Section:
    """패턴 검사 대상 구간."""

    lines: list[str]
    language: str

    @property
    def text(self) -> str:
        return "\n".join(self.lines)


@dataclass(frozen=True)
class PatternRule:
    """버킷, 라벨, 판정 함수 한 묶음."""

    bucket: str
    label: str
    predicate: Callable[[Section], bool]


def analyze_complexity(lines: list[str], start: int, end: int) -> ComplexityMetrics:
    """구간의 복잡도 지표를 계산한다.

    Args:
        lines: 파일 전체 줄
        start: 시작 줄 (1부터)
        end: 끝 줄 (포함)
    """
    complexity = 1
    depth = 0
    max_depth = 0
    line_length_issues = 0
    magic_numbers = 0
    long_parameter_list = False

    for line in lines[start - 1 : end]:
        trimmed = line.strip()

        # 한 줄에 분기 토큰이 여러 개여도 한 번만 센다
        if DECISION_PATTERN.search(trimmed):
            complexity += 1

        for char in trimmed:
            if char in "{(":
                depth += 1
                max_depth = max(max_depth, depth)
            elif char in "})":
                depth = max(0, depth - 1)

        if len(line) > LONG_LINE:
            line_length_issues += 1
        magic_numbers += len(MAGIC_NUMBER_PATTERN.findall(trimmed))
        if LONG_PARAMETER_PATTERN.search(trimmed):
            long_parameter_list = True

    return ComplexityMetrics(
        cyclomatic_complexity=complexity,
        nesting_depth=max_depth,
        line_length_issues=line_length_issues,
        magic_numbers=magic_numbers,
        long_parameter_list=long_parameter_list,
    )


def _matches(pattern: str, flags: int = 0) -> Callable[[Section], bool]:
    compiled = re.compile(pattern, flags)
    return lambda section: compiled.search(section.text) is not None


def _script_only(predicate: Callable[[Section], bool]) -> Callable[[Section], bool]:
    return lambda section: section.language in SCRIPT_LANGUAGES and predicate(section)


def _both(
    present: Callable[[Section], bool], absent: Callable[[Section], bool]
) -> Callable[[Section], bool]:
    return lambda section: present(section) and not absent(section)


_BRACED_TRIPLE_IF = re.compile(r"if\s*\([^)]*\)\s*\{[^}]*if\s*\([^)]*\)\s*\{[^}]*if\s*\(")


def _deep_nesting(section: Section) -> bool:
    if _BRACED_TRIPLE_IF.search(section.text):
        return True
    if section.language != "python":
        return False

    # 들여쓰기가 점점 깊어지는 if 세 개
    stack: list[int] = []
    for line in section.lines:
        trimmed = line.strip()
        if not trimmed:
            continue
        indent = len(line) - len(line.lstrip())
        while stack and indent <= stack[-1]:
            stack.pop()
        if re.match(r"(el)?if\b.*:$", trimmed):
            stack.append(indent)
            if len(stack) >= 3:
                return True
    return False


def _empty_handler(section: Section) -> bool:
    if re.search(r"catch\s*\([^)]*\)\s*\{\s*\}", section.text):
        return True
    return re.search(r"except[^:\n]*:\s*\n\s*pass\b", section.text) is not None


def _recursion(section: Section) -> bool:
    if re.search(r"recursive|recursion", section.text, re.IGNORECASE):
        return True
    for index, line in enumerate(section.lines):
        found = DECLARED_NAME_PATTERN.search(line)
        if not found:
            continue
        call = re.compile(rf"\b{re.escape(found.group(1))}\s*\(")
        return any(call.search(rest) for rest in section.lines[index + 1 :])
    return False


def _block_documentation(section: Section) -> bool:
    if re.search(r"/\*\*[\s\S]*?\*/", section.text):
        return True
    return section.language == "python" and re.search(r'"""|\'\'\'', section.text) is not None


PATTERN_RULES: list[PatternRule] = [
    # 코드 스멜
    PatternRule(
        "code_smells",
        "Long method/function",
        lambda section: len(section.lines) > LONG_METHOD_LINES,
    ),
    PatternRule("code_smells", "Deep nesting", _deep_nesting),
    PatternRule(
        "code_smells",
        "Debug statements",
        _matches(r"console\.(log|warn|error)|^\s*print\(|\bpdb\.set_trace\(", re.MULTILINE),
    ),
    PatternRule(
        "code_smells", "TODO/FIXME comments", _matches(r"TODO|FIXME|HACK|XXX", re.IGNORECASE)
    ),
    PatternRule("code_smells", "Empty catch block", _empty_handler),
    PatternRule(
        "code_smells", "Use of var (consider let/const)", _script_only(_matches(r"\bvar\s+\w+"))
    ),
    PatternRule(
        "code_smells", "Loose equality (==)", _script_only(_matches(r"[^=!]==\s*[^=]|!=\s*[^=]"))
    ),
    PatternRule("code_smells", "Use of eval", _matches(r"\beval\s*\(|new Function|\bexec\s*\(")),
    # 흥미 패턴
    PatternRule(
        "interesting_patterns",
        "Async/await pattern",
        _matches(r"async\s+(function|def)|await\s+"),
    ),
    PatternRule(
        "interesting_patterns",
        "Promise patterns",
        _matches(r"Promise\.(all|race|allSettled)|asyncio\.(gather|wait)\b"),
    ),
    PatternRule(
        "interesting_patterns", "React hooks", _matches(r"\buse(State|Effect|Callback|Memo)\b")
    ),
    PatternRule(
        "interesting_patterns",
        "Functional programming",
        _matches(r"\.(map|filter|reduce)\s*\(|\b(map|filter)\(lambda"),
    ),
    PatternRule(
        "interesting_patterns",
        "Error handling",
        _matches(r"\btry\s*(\{|:)|catch\s*\(|finally\s*(\{|:)|\bexcept\b"),
    ),
    PatternRule(
        "interesting_patterns",
        "Type definitions",
        _matches(r"\b(class|interface|type|struct|enum|trait)\s+\w+"),
    ),
    PatternRule(
        "interesting_patterns", "Decorators", _matches(r"^\s*@\w+|decorator", re.MULTILINE)
    ),
    PatternRule(
        "interesting_patterns",
        "Regex patterns",
        _matches(
            r"\.test\s*\(|\.match\s*\(|\bre\.(compile|match|search|sub)\(|regex",
            re.IGNORECASE,
        ),
    ),
    PatternRule("interesting_patterns", "Recursive algorithm", _recursion),
    # 잠재 이슈
    PatternRule(
        "potential_issues",
        "Potential XSS (innerHTML)",
        _matches(r"\.innerHTML\s*=|dangerouslySetInnerHTML|document\.write\s*\("),
    ),
    PatternRule(
        "potential_issues",
        "Possible hardcoded credentials",
        _both(
            _matches(r"password|secret|api[_-]?key|token", re.IGNORECASE),
            _matches(r"process\.env|os\.environ|getenv|config|settings"),
        ),
    ),
    PatternRule(
        "potential_issues",
        "Possible SQL injection risk",
        lambda section: bool(
            re.search(r"\b(SELECT|INSERT|DELETE|UPDATE)\b", section.text, re.IGNORECASE)
            and re.search(r"\$\{|\+.*\+|f[\"'].*\{|%\s*\(|\.format\(", section.text)
        ),
    ),
    PatternRule(
        "potential_issues",
        "Possible memory leak (missing cleanup)",
        _both(_matches(r"setTimeout|setInterval"), _matches(r"clearTimeout|clearInterval")),
    ),
    PatternRule(
        "potential_issues",
        "Async in forEach (may not work as expected)",
        _matches(r"\.forEach\s*\([^)]*async"),
    ),
    PatternRule(
        "potential_issues",
        "Async map without Promise.all",
        _both(_matches(r"\.map\s*\([^)]*async"), _matches(r"Promise\.all")),
    ),
    # 교육적 가치
    PatternRule(
        "educational_value",
        "Algorithm implementation",
        _matches(r"algorithm|sort|search|binary|tree|graph", re.IGNORECASE),
    ),
    PatternRule(
        "educational_value",
        "Design pattern",
        _matches(r"design pattern|factory|singleton|observer|strategy", re.IGNORECASE),
    ),
    PatternRule(
        "educational_value",
        "Performance optimization",
        _matches(r"optimization|performance|memoization|caching", re.IGNORECASE),
    ),
    PatternRule(
        "educational_value",
        "Security implementation",
        _matches(r"security|authentication|authorization|encryption", re.IGNORECASE),
    ),
    PatternRule(
        "educational_value",
        "Test code",
        _matches(r"\btest|\bspec\b|describe\(|\bit\(|expect\(|\bassert\b"),
    ),
    PatternRule("educational_value", "Well-documented code", _block_documentation),
]


def detect_patterns(
    lines: list[str],
    start: int,
    end: int,
    language: str,
    rules: list[PatternRule] = PATTERN_RULES,
) -> PatternTags:
    """규칙 표의 모든 판정을 독립적으로 적용해 라벨을 모은다."""
    section = Section(lines=lines[start - 1 : end], language=language)
    tags = PatternTags()
    for rule in rules:
        if rule.predicate(section):
            getattr(tags, rule.bucket).append(rule.label)
    return tags
