from __future__ import annotations

import json

from rich.console import Console

from codeassay.audit import assess_sources
from codeassay.reporters.json_reporter import REPORT_SCHEMA_VERSION, render_json
from codeassay.reporters.terminal import render_terminal

_CLONE = "def scale(x):\n    y = x + 1\n    z = y * 2\n    log(z)\n    return z\n"


def _assessment():
    return assess_sources(
        [
            ("src/app.py", 'password = "hunter2"\n\n' + _CLONE),
            ("src/copy.py", _CLONE),
            ("src/broken.py", "def broken(:\n"),
        ]
    )


def test_render_json_payload_shape() -> None:
    payload = json.loads(render_json(_assessment()))

    assert payload["schema_version"] == REPORT_SCHEMA_VERSION
    assert payload["tool"]["name"] == "CodeAssay"
    assert payload["summary"]["files_analyzed"] == 3
    assert {issue["rule_id"] for issue in payload["issues"]} == {"S03", "Q01"}
    assert payload["degraded"] == ["src/broken.py"]
    assert payload["not_analyzed"] == []

    dup = payload["duplications"][0]
    assert dup["id"] == "DUP-1"
    assert dup["kind"] == "exact"
    assert [block["path"] for block in dup["blocks"]] == ["src/app.py", "src/copy.py"]

    files = {entry["path"]: entry for entry in payload["files"]}
    assert files["src/copy.py"]["metrics"]["function_count"] == 1
    assert files["src/broken.py"]["degraded"] is True


def test_render_json_is_stable() -> None:
    assert render_json(_assessment()) == render_json(_assessment())


def test_render_terminal_includes_issues_duplications_and_summary() -> None:
    console = Console(record=True, width=120)
    render_terminal(_assessment(), console=console)
    text = console.export_text()

    assert "src/app.py" in text
    assert "S03" in text
    assert 'password = "hunter2"' in text
    assert "DUP-1" in text
    assert "Recommendations" in text
    assert "Score: 65/100" in text
    assert "Degraded: src/broken.py" in text


def test_render_terminal_quiet_prints_summary_only() -> None:
    console = Console(record=True, width=120)
    render_terminal(_assessment(), console=console, show_details=False)
    text = console.export_text()

    assert "S03" not in text
    assert "Score: 65/100" in text
