from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import replace

from codeassay.engine.duplication import summarize_duplications
from codeassay.engine.types import (
    CATEGORIES,
    SEVERITIES,
    Assessment,
    Category,
    Duplication,
    FileAnalysis,
    Issue,
    Priority,
    Recommendation,
    ScoreSummary,
    Severity,
)

MAX_SCORE = 100

# Security findings sink the score fastest; low-severity findings are
# informational and never cost points.
SEVERITY_PENALTY: dict[Category, dict[Severity, int]] = {
    "security": {"critical": 30, "high": 15, "medium": 5, "low": 0},
    "performance": {"critical": 25, "high": 10, "medium": 5, "low": 0},
    "quality": {"critical": 20, "high": 10, "medium": 5, "low": 0},
    "accessibility": {"critical": 20, "high": 10, "medium": 5, "low": 0},
}

CATEGORY_LABELS: dict[Category, str] = {
    "security": "Security",
    "performance": "Performance",
    "quality": "Quality",
    "accessibility": "Accessibility",
}

CATEGORY_PRIORITY: dict[Category, Priority] = {
    "security": "immediate",
    "performance": "high",
    "quality": "medium",
    "accessibility": "medium",
}

HOURS_PER_FINDING: dict[Category, float] = {
    "security": 2.0,
    "performance": 1.5,
    "quality": 1.0,
    "accessibility": 1.0,
}

PRIORITY_RANK: dict[Priority, int] = {"immediate": 0, "high": 1, "medium": 2, "low": 3}

_RECOMMENDATION_TITLES: dict[Category, str] = {
    "security": "Address security vulnerabilities",
    "performance": "Optimize performance",
    "quality": "Improve code quality",
    "accessibility": "Improve accessibility",
}


def penalty_for(issue: Issue) -> int:
    return SEVERITY_PENALTY.get(issue.category, SEVERITY_PENALTY["quality"]).get(issue.severity, 0)


def compute_scores(issues: Iterable[Issue]) -> ScoreSummary:
    penalties: dict[str, int] = {category: 0 for category in CATEGORIES}
    severity_counts: dict[str, int] = {severity: 0 for severity in SEVERITIES}
    category_counts: dict[str, int] = {category: 0 for category in CATEGORIES}
    total_penalty = 0

    for issue in issues:
        points = penalty_for(issue)
        penalties[issue.category] = penalties.get(issue.category, 0) + points
        total_penalty += points
        severity_counts[issue.severity] = severity_counts.get(issue.severity, 0) + 1
        category_counts[issue.category] = category_counts.get(issue.category, 0) + 1

    def score_for(category: str) -> int:
        return max(0, MAX_SCORE - penalties[category])

    return ScoreSummary(
        overall=max(0, MAX_SCORE - total_penalty),
        security=score_for("security"),
        performance=score_for("performance"),
        quality=score_for("quality"),
        accessibility=score_for("accessibility"),
        severity_counts=severity_counts,
        category_counts=category_counts,
    )


def assign_issue_ids(issues: Iterable[Issue]) -> list[Issue]:
    """Tag issues with `<rule_id>-<n>`, numbering each rule id in merge order."""

    counters: dict[str, int] = {}
    tagged: list[Issue] = []
    for issue in issues:
        counters[issue.rule_id] = counters.get(issue.rule_id, 0) + 1
        tagged.append(replace(issue, issue_id=f"{issue.rule_id}-{counters[issue.rule_id]}"))
    return tagged


def assign_duplication_ids(duplications: Iterable[Duplication]) -> list[Duplication]:
    return [replace(dup, duplication_id=f"DUP-{index}") for index, dup in enumerate(duplications, start=1)]


def build_recommendations(
    issues: Sequence[Issue],
    duplications: Sequence[Duplication] = (),
) -> list[Recommendation]:
    """
    One recommendation per category that has findings.

    Duplications count toward the quality group; they do not change scores.
    """

    groups: dict[Category, tuple[list[str], set[str]]] = {}
    for issue in issues:
        ids, files = groups.setdefault(issue.category, ([], set()))
        ids.append(issue.issue_id or issue.rule_id)
        files.add(issue.path)
    for dup in duplications:
        ids, files = groups.setdefault("quality", ([], set()))
        ids.append(dup.duplication_id or "DUP")
        files.update(block.path for block in dup.blocks)

    recommendations: list[Recommendation] = []
    for category, (ids, files) in groups.items():
        count = len(ids)
        plural = "s" if count != 1 else ""
        recommendations.append(
            Recommendation(
                priority=CATEGORY_PRIORITY[category],
                category=category,
                title=_RECOMMENDATION_TITLES[category],
                description=(
                    f"Found {count} {category} finding{plural} across {len(files)} file"
                    f"{'s' if len(files) != 1 else ''}."
                ),
                estimated_effort_hours=round(count * HOURS_PER_FINDING[category], 2),
                files=tuple(sorted(files)),
                issue_ids=tuple(ids),
            )
        )
    recommendations.sort(key=lambda rec: (PRIORITY_RANK[rec.priority], rec.category))
    return recommendations


def aggregate(
    files: Sequence[FileAnalysis],
    duplications: Sequence[Duplication] = (),
    *,
    extra_issues: Iterable[Issue] = (),
) -> Assessment:
    """
    Merge per-file results (plus externally produced issues) into one `Assessment`.

    Pure: the same inputs always give an equal result.
    """

    merged = [issue for analysis in files for issue in analysis.issues]
    merged.extend(extra_issues)
    issues = assign_issue_ids(merged)
    tagged_duplications = assign_duplication_ids(duplications)
    return Assessment(
        files=tuple(files),
        issues=tuple(issues),
        duplications=tuple(tagged_duplications),
        summary=compute_scores(issues),
        duplication_summary=summarize_duplications(tagged_duplications),
        recommendations=tuple(build_recommendations(issues, tagged_duplications)),
        not_analyzed=tuple(analysis.path for analysis in files if analysis.skipped),
    )


def format_scores_terminal(summary: ScoreSummary) -> str:
    return " | ".join(f"{CATEGORY_LABELS[category]} {summary.category_score(category)}" for category in CATEGORIES)
