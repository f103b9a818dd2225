from __future__ import annotations

import logging

import pytest
from helpers import analyze_text, rule_ids_of

from codeassay.engine.analyzer import analyze, comment_ratio
from codeassay.engine.syntax import CALL
from codeassay.engine.types import InvalidInputError, SourceUnit
from codeassay.rules.base import Rule
from codeassay.rules.registry import RuleSet


def test_hardcoded_password_is_critical_security_issue() -> None:
    analysis = analyze_text("src/app.py", 'password = "hunter2"\n')

    issues = [issue for issue in analysis.issues if issue.rule_id == "S03"]
    assert len(issues) == 1
    issue = issues[0]
    assert issue.category == "security"
    assert issue.severity == "critical"
    assert issue.line == 1
    assert issue.column == 1
    assert "password" in issue.description
    assert "CWE-259" in issue.references
    assert not analysis.degraded


def test_credentials_in_test_files_are_ignored() -> None:
    analysis = analyze_text("tests/test_login.py", 'password = "hunter2"\n')
    assert "S03" not in rule_ids_of(analysis)


def test_interpolated_or_empty_values_are_not_credentials() -> None:
    analysis = analyze_text("src/app.py", 'token = f"{prefix}-x"\nsecret = ""\napi_key = load()\n')
    assert "S03" not in rule_ids_of(analysis)


def test_three_nested_loops_report_one_p01() -> None:
    text = "\n".join(
        [
            "def grid(n):",
            "    for a in range(n):",
            "        for b in range(n):",
            "            for c in range(n):",
            "                emit(a, b, c)",
            "",
        ]
    )
    analysis = analyze_text("src/grid.py", text)
    p01 = [issue for issue in analysis.issues if issue.rule_id == "P01"]
    assert len(p01) == 1
    assert p01[0].line == 4
    assert "3 levels" in p01[0].description


def test_two_nested_loops_do_not_report_p01() -> None:
    text = "for a in rows:\n    for b in cols:\n        emit(a, b)\n"
    assert "P01" not in rule_ids_of(analyze_text("src/grid.py", text))


def test_dynamic_exec_shell_and_pickle_rules() -> None:
    text = "\n".join(
        [
            "import pickle",
            "import subprocess",
            "",
            "def run(cmd, blob):",
            "    eval(cmd)",
            "    subprocess.run(cmd, shell=True)",
            "    subprocess.run([cmd], shell=False)",
            "    return pickle.loads(blob)",
            "",
        ]
    )
    ids = rule_ids_of(analyze_text("src/run.py", text))
    assert ids.count("S01") == 1
    assert ids.count("S04") == 1
    assert ids.count("S05") == 1


def test_yaml_load_without_loader_is_flagged() -> None:
    text = "import yaml\nyaml.load(data)\nyaml.load(data, Loader=yaml.SafeLoader)\nyaml.safe_load(data)\n"
    assert rule_ids_of(analyze_text("src/cfg.py", text)).count("S05") == 1


def test_open_outside_with_is_unmanaged_resource() -> None:
    text = "def read(path):\n    handle = open(path)\n    return handle.read()\n"
    issues = [issue for issue in analyze_text("src/io_utils.py", text).issues if issue.rule_id == "P02"]
    assert len(issues) == 1
    assert "close" in issues[0].description


def test_open_in_with_or_closed_in_scope_is_fine() -> None:
    text = "\n".join(
        [
            "def read(path):",
            "    with open(path) as handle:",
            "        return handle.read()",
            "",
            "def read_again(path):",
            "    handle = open(path)",
            "    try:",
            "        return handle.read()",
            "    finally:",
            "        handle.close()",
            "",
        ]
    )
    assert "P02" not in rule_ids_of(analyze_text("src/io_utils.py", text))


def test_quality_rules_on_python_source() -> None:
    methods = "\n".join(f"    def m{i}(self):\n        return {i}\n" for i in range(16))
    text = "\n".join(
        [
            "def configure(a, b, c, d, e):",
            "    print(a)",
            "    timeout = 3600",
            "    return b",
            "",
            "MAX_SIZE = 4096",
            "OFFSET = -500",
            "",
            "try:",
            "    configure(1, 2, 3, 4, 5)",
            "except Exception:",
            "    pass",
            "",
            "class Big:",
            methods,
        ]
    )
    analysis = analyze_text("src/settings.py", text)
    ids = rule_ids_of(analysis)

    assert ids.count("Q02") == 1
    assert ids.count("Q03") == 1
    assert ids.count("Q06") == 1
    assert ids.count("Q07") == 1
    assert ids.count("Q08") == 1
    magic = next(issue for issue in analysis.issues if issue.rule_id == "Q03")
    assert "3600" in magic.description


def test_complex_function_reports_q05() -> None:
    body = "\n".join(f"    if x == {i}:\n        return {i}" for i in range(10))
    text = f"def pick(x):\n{body}\n    return -1\n"
    analysis = analyze_text("src/pick.py", text)
    q05 = [issue for issue in analysis.issues if issue.rule_id == "Q05"]
    assert len(q05) == 1
    assert "11" in q05[0].description


def test_line_rules_run_on_parsed_files() -> None:
    long_line = "x = '" + "a" * 130 + "'"
    text = f'URL = "http://api.example.com/v1"\nLOCAL = "http://localhost:8000"\nimport hashlib\nh = hashlib.md5()\n{long_line}\n'
    ids = rule_ids_of(analyze_text("src/net.py", text))
    assert ids.count("S10") == 1
    assert ids.count("S11") == 1
    assert ids.count("Q04") == 1


def test_metrics_for_python_source() -> None:
    text = "\n".join(
        [
            "# helpers",
            "import os",
            "",
            "class Loader:",
            "    def load(self, path):",
            "        if path and os.path.exists(path):",
            "            return path",
            "        return None",
            "",
        ]
    )
    metrics = analyze_text("src/loader.py", text).metrics
    assert metrics.lines_of_code == 8
    assert metrics.function_count == 1
    assert metrics.class_count == 1
    assert metrics.import_count == 1
    # if + `and`
    assert metrics.cyclomatic_complexity == 3
    assert metrics.comment_ratio == pytest.approx(12.5)


def test_comment_ratio_counts_block_comment_interiors() -> None:
    lines = ("/*", " * docs", " */", "let x = 1;")
    assert comment_ratio(lines, ("//", "/*")) == 75.0
    assert comment_ratio((), ("#",)) == 0.0


def test_syntax_error_degrades_with_single_parse_failure() -> None:
    text = 'def broken(:\n    pass\npassword = "hunter2"\neval(data)\n'
    analysis = analyze_text("src/broken.py", text)

    assert analysis.degraded
    ids = rule_ids_of(analysis)
    assert ids.count("Q01") == 1
    # line-based fallbacks still run
    assert "S13" in ids
    assert "S12" in ids
    q01 = next(issue for issue in analysis.issues if issue.rule_id == "Q01")
    assert q01.line == 1
    assert q01.description.startswith("Failed to parse file:")


def test_unparsed_languages_degrade_without_parse_failure() -> None:
    text = "void main() {\n  final apiKey = 'abc123';\n  print('hi');\n}\n"
    analysis = analyze(SourceUnit.from_text("lib/main.dart", text))

    assert analysis.degraded
    ids = rule_ids_of(analysis)
    assert "Q01" not in ids
    assert "S13" in ids
    assert analysis.metrics.function_count == 0
    assert analysis.metrics.lines_of_code == 4


def test_analyze_rejects_non_units() -> None:
    with pytest.raises(InvalidInputError):
        analyze(None)  # type: ignore[arg-type]


def test_source_unit_from_bytes_rejects_undecodable_input() -> None:
    with pytest.raises(InvalidInputError):
        SourceUnit.from_bytes("src/blob.py", b"\xff\xfe\x00bad")


def test_source_unit_rejects_text_that_cannot_be_encoded() -> None:
    with pytest.raises(InvalidInputError):
        SourceUnit.from_text("web/a.js", 'const s = "\ud800";')


def test_try_without_except_is_reported() -> None:
    text = "\n".join(
        [
            "def sync(job):",
            "    try:",
            "        job.run()",
            "    finally:",
            "        job.close()",
            "",
            "def safe_sync(job):",
            "    try:",
            "        job.run()",
            "    except TimeoutError:",
            "        job.retry()",
            "",
        ]
    )
    q10 = [issue for issue in analyze_text("src/jobs.py", text).issues if issue.rule_id == "Q10"]

    assert [(issue.line, issue.severity, issue.category) for issue in q10] == [(2, "medium", "quality")]


def test_analysis_is_deterministic() -> None:
    text = 'password = "hunter2"\nfor a in x:\n    for b in y:\n        for c in z:\n            print(a)\n'
    first = analyze_text("src/app.py", text)
    second = analyze_text("src/app.py", text)
    assert first == second


def test_failing_rule_is_logged_and_skipped(caplog) -> None:
    def explode(node, ctx):  # type: ignore[no-untyped-def]
        raise ZeroDivisionError("boom")

    broken = Rule(
        rule_id="Z99",
        title="Broken rule",
        category="quality",
        severity="low",
        description="never",
        kinds=frozenset({CALL}),
        predicate=explode,
    )
    rules = RuleSet.from_rules([broken])

    with caplog.at_level(logging.WARNING, logger="codeassay.engine.analyzer"):
        analysis = analyze(SourceUnit.from_text("src/app.py", "run()\nrun()\n"), rules=rules)

    assert analysis.issues == ()
    assert not analysis.degraded
    assert "Z99" in caplog.text
