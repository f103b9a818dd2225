from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from codeassay.languages.registry import detect_language, ecosystem_for

Category = Literal["security", "performance", "quality", "accessibility"]
Severity = Literal["critical", "high", "medium", "low"]
DuplicationKind = Literal["exact", "similar", "cross-language"]
DuplicationSeverity = Literal["high", "medium", "low"]
Priority = Literal["immediate", "high", "medium", "low"]

CATEGORIES: tuple[Category, ...] = ("security", "performance", "quality", "accessibility")
SEVERITIES: tuple[Severity, ...] = ("critical", "high", "medium", "low")


class InvalidInputError(ValueError):
    """Raised for inputs the engine refuses to analyze (missing unit, non-text content)."""


@dataclass(frozen=True, slots=True)
class SourceUnit:
    path: str
    language: str
    text: str
    line_count: int

    @property
    def ecosystem(self) -> str:
        return ecosystem_for(self.language)

    @classmethod
    def from_text(cls, path: str, text: str, *, language: str | None = None) -> SourceUnit:
        if not isinstance(text, str):
            raise InvalidInputError(f"{path}: source text must be str, got {type(text).__name__}")
        _check_encodable(path, text)
        if language is None:
            language = detect_language(path) or "unknown"
        return cls(path=str(path), language=language, text=text, line_count=len(text.splitlines()))

    @classmethod
    def from_bytes(
        cls, path: str, data: bytes, *, encoding: str = "utf-8", language: str | None = None
    ) -> SourceUnit:
        try:
            text = data.decode(encoding)
        except (UnicodeDecodeError, LookupError) as exc:
            raise InvalidInputError(f"{path}: cannot decode source as {encoding}: {exc}") from exc
        return cls.from_text(path, text, language=language)


def _check_encodable(path: str, text: str) -> None:
    try:
        text.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise InvalidInputError(f"{path}: source text is not valid Unicode: {exc}") from exc


def check_unit(unit: object, *, label: str = "unit") -> SourceUnit:
    """Return `unit` unchanged, or raise `InvalidInputError` if the engine cannot analyze it."""

    if not isinstance(unit, SourceUnit):
        raise InvalidInputError(f"{label} is {type(unit).__name__}, expected SourceUnit")
    if not isinstance(unit.text, str):
        raise InvalidInputError(f"{unit.path}: source text must be str, got {type(unit.text).__name__}")
    _check_encodable(unit.path, unit.text)
    return unit


@dataclass(frozen=True, slots=True)
class Issue:
    rule_id: str
    category: Category
    severity: Severity
    path: str
    line: int  # 1-based
    title: str
    description: str
    suggestion: str | None = None
    column: int | None = None  # 1-based
    code: str = ""
    references: tuple[str, ...] = ()
    issue_id: str | None = None  # assigned during aggregation


@dataclass(frozen=True, slots=True)
class Metrics:
    lines_of_code: int = 0
    function_count: int = 0
    class_count: int = 0
    import_count: int = 0
    cyclomatic_complexity: int = 1
    comment_ratio: float = 0.0


@dataclass(frozen=True, slots=True)
class FileAnalysis:
    unit: SourceUnit
    issues: tuple[Issue, ...] = ()
    metrics: Metrics = field(default_factory=Metrics)
    degraded: bool = False
    skipped: bool = False

    @property
    def path(self) -> str:
        return self.unit.path


@dataclass(frozen=True, slots=True)
class CodeBlock:
    path: str
    language: str
    ecosystem: str
    line_start: int
    line_end: int
    lines: tuple[str, ...]
    canonical: tuple[str, ...]
    shapes: tuple[str, ...]

    @property
    def size(self) -> int:
        return len(self.lines)


@dataclass(frozen=True, slots=True)
class Duplication:
    kind: DuplicationKind
    similarity: float
    severity: DuplicationSeverity
    blocks: tuple[CodeBlock, CodeBlock]
    title: str
    description: str
    suggestion: str
    impact: str
    estimated_effort: float
    duplication_id: str | None = None  # assigned during aggregation


@dataclass(frozen=True, slots=True)
class DuplicationSummary:
    total: int = 0
    exact: int = 0
    similar: int = 0
    cross_language: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    estimated_effort: float = 0.0


@dataclass(frozen=True, slots=True)
class ScoreSummary:
    overall: int
    security: int
    performance: int
    quality: int
    accessibility: int
    severity_counts: dict[str, int] = field(default_factory=dict)
    category_counts: dict[str, int] = field(default_factory=dict)

    def category_score(self, category: Category) -> int:
        return int(getattr(self, category))


@dataclass(frozen=True, slots=True)
class Recommendation:
    priority: Priority
    category: Category
    title: str
    description: str
    estimated_effort_hours: float
    files: tuple[str, ...]
    issue_ids: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class Assessment:
    files: tuple[FileAnalysis, ...]
    issues: tuple[Issue, ...]
    duplications: tuple[Duplication, ...]
    summary: ScoreSummary
    duplication_summary: DuplicationSummary
    recommendations: tuple[Recommendation, ...]
    not_analyzed: tuple[str, ...] = ()

    @property
    def degraded_files(self) -> tuple[str, ...]:
        return tuple(analysis.path for analysis in self.files if analysis.degraded)
