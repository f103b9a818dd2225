from __future__ import annotations

import logging
from pathlib import Path

import pytest
from helpers import write_source

import codeassay.engine.batch as batch_mod
from codeassay.audit import AuditCallbacks, assess_sources, assess_units, audit_path, rule_set_for
from codeassay.config import CodeAssayConfig, RulesConfig
from codeassay.engine.batch import analyze_batch
from codeassay.engine.types import InvalidInputError, SourceUnit

_GOOD = "def add(a, b):\n    return a + b\n"


def _units(count: int) -> list[SourceUnit]:
    return [SourceUnit.from_text(f"src/m{i}.py", _GOOD) for i in range(count)]


def test_batch_with_one_broken_file_returns_every_entry() -> None:
    units = _units(4)
    units.insert(2, SourceUnit.from_text("src/broken.py", "def broken(:\n"))

    results = analyze_batch(units, workers=3)

    assert [analysis.path for analysis in results] == [unit.path for unit in units]
    q01 = [issue for analysis in results for issue in analysis.issues if issue.rule_id == "Q01"]
    assert len(q01) == 1
    assert q01[0].path == "src/broken.py"
    assert [analysis.degraded for analysis in results] == [False, False, True, False, False]


def test_batch_results_do_not_depend_on_workers() -> None:
    units = _units(6) + [SourceUnit.from_text("src/pw.py", 'password = "x1"\n')]
    assert analyze_batch(units, workers=1) == analyze_batch(units, workers=4)


def test_batch_deadline_skips_files_not_started(caplog) -> None:
    ticks = iter([0.0, 0.5, 1.5, 2.0])
    done: list[str] = []

    with caplog.at_level(logging.WARNING, logger="codeassay.engine.batch"):
        results = analyze_batch(
            _units(3),
            timeout=1.0,
            clock=lambda: next(ticks),
            on_file_done=done.append,
        )

    assert [analysis.skipped for analysis in results] == [False, True, True]
    assert results[1].issues == ()
    assert done == ["src/m0.py", "src/m1.py", "src/m2.py"]
    assert "2 of 3" in caplog.text


def test_batch_rejects_invalid_input() -> None:
    with pytest.raises(InvalidInputError):
        analyze_batch([None])  # type: ignore[list-item]
    with pytest.raises(InvalidInputError):
        analyze_batch(_units(1), timeout=0)


def test_batch_rejects_unencodable_unit_before_analyzing(monkeypatch) -> None:
    analyzed: list[str] = []
    monkeypatch.setattr(batch_mod, "analyze", lambda unit, rules=None: analyzed.append(unit.path))
    bad = SourceUnit(path="web/a.js", language="javascript", text='const s = "\ud800";', line_count=1)

    with pytest.raises(InvalidInputError):
        analyze_batch([*_units(1), bad])
    assert analyzed == []


def test_assess_units_lists_not_analyzed_files() -> None:
    ticks = iter([0.0, 0.1, 5.0])
    assessment = assess_units(_units(2), timeout=1.0, clock=lambda: next(ticks))
    assert assessment.not_analyzed == ("src/m1.py",)
    assert len(assessment.files) == 2


def test_assess_sources_end_to_end() -> None:
    assessment = assess_sources(
        [
            ("src/app.py", 'password = "hunter2"\n'),
            ("lib/main.dart", "void main() {}\n"),
        ]
    )
    assert assessment.summary.overall == 70
    assert assessment.degraded_files == ("lib/main.dart",)
    assert [issue.issue_id for issue in assessment.issues] == ["S03-1"]


def test_rule_set_honors_enable_disable_and_overrides(caplog) -> None:
    config = CodeAssayConfig(
        rules=RulesConfig(enable=("security",), disable=("S11",), severity_overrides={"S03": "low", "X42": "high"})
    )
    with caplog.at_level(logging.WARNING, logger="codeassay.audit"):
        rule_set = rule_set_for(config)

    ids = {rule.rule_id for rule in rule_set.rules}
    assert "S03" in ids
    assert "S11" not in ids
    assert "Q02" not in ids
    assert next(rule for rule in rule_set.rules if rule.rule_id == "S03").severity == "low"
    assert "X42" in caplog.text

    assessment = assess_units([SourceUnit.from_text("src/app.py", 'password = "x"\nprint(1)\n')], config=config)
    assert [(issue.rule_id, issue.severity) for issue in assessment.issues] == [("S03", "low")]
    assert assessment.summary.overall == 100


def test_parse_failure_is_reported_even_when_quality_rules_are_disabled() -> None:
    config = CodeAssayConfig(rules=RulesConfig(enable="security"))
    assessment = assess_units([SourceUnit.from_text("src/broken.py", "def broken(:\n")], config=config)
    assert [issue.rule_id for issue in assessment.issues] == ["Q01"]


def test_audit_path_scans_project_and_reports_progress(project_target) -> None:
    root: Path = project_target.project_root
    write_source(root, "src/app.py", 'password = "hunter2"\n')
    write_source(root, "src/util.py", _GOOD)
    write_source(root, "node_modules/lib/index.js", "eval(x)\n")

    loaded: list[Path] = []
    ready: list[int] = []
    analyzed: list[str] = []
    callbacks = AuditCallbacks(
        on_file_loaded=loaded.append,
        on_units_ready=ready.append,
        on_file_analyzed=analyzed.append,
    )

    result = audit_path(root, workers=2, callbacks=callbacks)

    assert result.target.project_root == root.resolve()
    assert [path.name for path in result.files] == ["app.py", "util.py"]
    assert ready == [2]
    assert len(loaded) == 2
    assert sorted(analyzed) == ["src/app.py", "src/util.py"]
    assert result.assessment.summary.overall == 70
    assert [issue.path for issue in result.assessment.issues] == ["src/app.py"]


def test_audit_path_can_disable_duplication(project_target) -> None:
    root: Path = project_target.project_root
    text = "def scale(x):\n    y = x + 1\n    z = y * 2\n    log(z)\n    return z\n"
    write_source(root, "src/a.py", text)
    write_source(root, "src/b.py", text)

    assert len(audit_path(root).assessment.duplications) == 1
    assert audit_path(root, duplication=False).assessment.duplications == ()
