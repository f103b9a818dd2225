from __future__ import annotations

from pathlib import Path

import pytest

from codeassay.config import (
    DEFAULT_RULE_GROUPS,
    CodeAssayConfig,
    ConfigError,
    RulesConfig,
    compute_enabled_rule_ids,
    load_config,
    parse_config_table,
    path_is_ignored,
)
from codeassay.rules.registry import rule_by_id, rule_ids


def test_load_config_defaults_when_no_pyproject(tmp_path: Path) -> None:
    config = load_config(tmp_path)
    assert isinstance(config, CodeAssayConfig)
    assert config.threshold == 60
    assert config.fail_under_threshold is False
    assert "python" in config.languages
    assert config.duplication.threshold == 80
    assert config.duplication.min_lines == 5
    assert config.duplication.max_lines == 100


def test_load_config_reads_tool_table(tmp_path: Path) -> None:
    (tmp_path / "pyproject.toml").write_text(
        """
[tool.codeassay]
threshold = 75
fail-under-threshold = true
languages = ["python", "javascript"]
workers = 4
timeout = 30

[tool.codeassay.rules]
enable = ["security", "Q05"]
disable = ["S10"]
severity_overrides = { S03 = "high" }

[tool.codeassay.duplication]
threshold = 90
min-lines = 8
max-lines = 60

[tool.codeassay.ignore]
paths = ["generated/", "*.pb.py"]
""".lstrip(),
        encoding="utf-8",
    )

    config = load_config(tmp_path)
    assert config.threshold == 75
    assert config.fail_under_threshold is True
    assert config.languages == ("python", "javascript")
    assert config.workers == 4
    assert config.timeout == 30.0
    assert config.rules.enable == ("security", "Q05")
    assert config.rules.disable == ("S10",)
    assert dict(config.rules.severity_overrides) == {"S03": "high"}
    assert (config.duplication.threshold, config.duplication.min_lines, config.duplication.max_lines) == (90, 8, 60)
    assert config.ignore.paths == ("generated/", "*.pb.py")

    enabled = compute_enabled_rule_ids(config, available_rule_ids=rule_ids())
    assert "Q05" in enabled
    assert "S03" in enabled
    assert "S10" not in enabled
    assert "P01" not in enabled


def test_invalid_toml_raises_config_error(tmp_path: Path) -> None:
    (tmp_path / "pyproject.toml").write_text("[tool.codeassay\nthreshold = 1\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(tmp_path)


@pytest.mark.parametrize(
    "table",
    [
        {"threshold": 101},
        {"threshold": "high"},
        {"fail-under-threshold": "yes"},
        {"languages": ["cobol"]},
        {"workers": 0},
        {"timeout": -1},
        {"rules": {"enable": ["nonsense"]}},
        {"rules": {"severity_overrides": {"S03": "fatal"}}},
        {"duplication": {"threshold": 0}},
        {"duplication": {"min-lines": 10, "max-lines": 5}},
        {"ignore": {"paths": "generated/"}},
    ],
)
def test_invalid_values_raise_config_error(table: dict) -> None:
    with pytest.raises(ConfigError):
        parse_config_table(table)


def test_rule_groups_cover_every_registered_rule() -> None:
    grouped = set().union(*(ids for name, ids in DEFAULT_RULE_GROUPS.items() if name != "all"))
    assert grouped == rule_ids()
    assert set(DEFAULT_RULE_GROUPS["all"]) == rule_ids()


def test_rule_groups_match_rule_categories() -> None:
    for group in ("security", "performance", "quality", "accessibility"):
        rules = [rule_by_id(rule_id) for rule_id in DEFAULT_RULE_GROUPS[group]]
        categories = {rule.category for rule in rules if rule is not None}
        assert categories == {group}


def test_compute_enabled_rule_ids_supports_group_disable() -> None:
    config = CodeAssayConfig(rules=RulesConfig(enable="all", disable=("quality",)))
    enabled = compute_enabled_rule_ids(config, available_rule_ids=rule_ids())
    assert not any(rule_id.startswith("Q") for rule_id in enabled)
    assert "S01" in enabled


def test_path_is_ignored_patterns(tmp_path: Path) -> None:
    patterns = ["generated/", "*.pb.py", "src/**/legacy/*.js"]
    assert path_is_ignored(tmp_path / "generated" / "api.py", project_root=tmp_path, ignore_patterns=patterns)
    assert path_is_ignored(tmp_path / "src" / "msg.pb.py", project_root=tmp_path, ignore_patterns=patterns)
    assert path_is_ignored(tmp_path / "src" / "app" / "legacy" / "old.js", project_root=tmp_path, ignore_patterns=patterns)
    assert not path_is_ignored(tmp_path / "src" / "app.py", project_root=tmp_path, ignore_patterns=patterns)
    assert not path_is_ignored(Path("/elsewhere/app.py"), project_root=tmp_path, ignore_patterns=patterns)
