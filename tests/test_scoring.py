from __future__ import annotations

from helpers import analyze_text

from codeassay.engine.duplication import detect
from codeassay.engine.scoring import aggregate, build_recommendations, compute_scores, format_scores_terminal
from codeassay.engine.types import Issue, SourceUnit


def _issue(rule_id: str, category: str, severity: str, path: str = "src/app.py") -> Issue:
    return Issue(
        rule_id=rule_id,
        category=category,  # type: ignore[arg-type]
        severity=severity,  # type: ignore[arg-type]
        path=path,
        line=1,
        title=rule_id,
        description=rule_id,
    )


def test_single_critical_security_issue_scores_seventy() -> None:
    assessment = aggregate([analyze_text("src/app.py", 'password = "hunter2"\n')])
    summary = assessment.summary

    assert summary.overall == 70
    assert summary.security == 70
    assert summary.performance == 100
    assert summary.quality == 100
    assert summary.accessibility == 100
    assert summary.severity_counts["critical"] == 1
    assert summary.category_counts["security"] == 1


def test_scores_never_drop_below_zero() -> None:
    summary = compute_scores([_issue("S03", "security", "critical")] * 10)
    assert summary.overall == 0
    assert summary.security == 0
    assert summary.quality == 100


def test_low_severity_findings_cost_nothing() -> None:
    summary = compute_scores([_issue("Q04", "quality", "low")] * 5)
    assert summary.overall == 100
    assert summary.severity_counts["low"] == 5


def test_aggregate_assigns_ids_and_merges_extra_issues() -> None:
    analyses = [
        analyze_text("src/a.py", 'password = "a1"\n'),
        analyze_text("src/b.py", 'secret = "b2"\n'),
    ]
    external = _issue("D01", "security", "high", path="requirements.txt")

    assessment = aggregate(analyses, extra_issues=[external])

    assert [issue.issue_id for issue in assessment.issues] == ["S03-1", "S03-2", "D01-1"]
    assert assessment.summary.overall == 100 - 30 - 30 - 15
    security = assessment.recommendations[0]
    assert security.priority == "immediate"
    assert security.files == ("requirements.txt", "src/a.py", "src/b.py")
    assert security.issue_ids == ("S03-1", "S03-2", "D01-1")
    assert security.estimated_effort_hours == 6.0


def test_recommendations_are_ordered_by_priority() -> None:
    issues = [
        _issue("Q02", "quality", "low"),
        _issue("P01", "performance", "medium"),
        _issue("A01", "accessibility", "medium", path="web/index.html"),
        _issue("S11", "security", "high"),
    ]
    recommendations = build_recommendations(issues)
    assert [rec.category for rec in recommendations] == ["security", "performance", "accessibility", "quality"]
    assert [rec.priority for rec in recommendations] == ["immediate", "high", "medium", "medium"]


def test_duplications_feed_quality_recommendation_without_changing_scores() -> None:
    text = "def scale(x):\n    y = x + 1\n    z = y * 2\n    log(z)\n    return z\n"
    units = [SourceUnit.from_text("src/a.py", text), SourceUnit.from_text("src/b.py", text)]
    duplications = detect(units)
    assert len(duplications) == 1

    assessment = aggregate([analyze_text(unit.path, unit.text) for unit in units], duplications)

    assert assessment.summary.overall == 100
    assert assessment.duplications[0].duplication_id == "DUP-1"
    assert assessment.duplication_summary.exact == 1
    quality = next(rec for rec in assessment.recommendations if rec.category == "quality")
    assert quality.issue_ids == ("DUP-1",)
    assert quality.files == ("src/a.py", "src/b.py")


def test_aggregate_is_deterministic() -> None:
    analyses = [analyze_text("src/a.py", 'password = "a1"\nprint(1)\n')]
    assert aggregate(analyses) == aggregate(analyses)


def test_format_scores_terminal() -> None:
    summary = compute_scores([_issue("P01", "performance", "medium")])
    assert format_scores_terminal(summary) == "Security 100 | Performance 95 | Quality 100 | Accessibility 100"
