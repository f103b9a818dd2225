from __future__ import annotations

import fnmatch
import re
import tomllib
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, cast

from codeassay.engine.types import SEVERITIES, Severity
from codeassay.languages.registry import language_names


class ConfigError(ValueError):
    """Raised when a `[tool.codeassay]` configuration table is invalid."""


RuleId = str
RuleGroup = str

_RULE_ID_RE = re.compile(r"^[A-Z][0-9]{2,}$")

DEFAULT_THRESHOLD = 60
DEFAULT_FAIL_UNDER_THRESHOLD = False
DEFAULT_LANGUAGES: tuple[str, ...] = language_names()
DEFAULT_DUPLICATION_THRESHOLD = 80
DEFAULT_MIN_BLOCK_LINES = 5
DEFAULT_MAX_BLOCK_LINES = 100

# Mirrors the rule registry; tests keep the two in sync.
DEFAULT_RULE_GROUPS: dict[RuleGroup, tuple[RuleId, ...]] = {
    "security": ("S01", "S02", "S03", "S04", "S05", "S06", "S10", "S11", "S12", "S13"),
    "performance": ("P01", "P02", "P03", "P04", "P05"),
    "quality": ("Q01", "Q02", "Q03", "Q04", "Q05", "Q06", "Q07", "Q08", "Q09", "Q10"),
    "accessibility": ("A01", "A02"),
}
DEFAULT_RULE_GROUPS["all"] = tuple(
    rule_id for group in ("security", "performance", "quality", "accessibility") for rule_id in DEFAULT_RULE_GROUPS[group]
)


def _normalize_group(value: str) -> str:
    return value.strip().lower().replace("-", "_")


def _normalize_rule_id(value: str) -> str:
    return value.strip().upper()


def _validate_str_list(value: Any, *, field_name: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if not isinstance(value, list) or any(not isinstance(v, str) for v in value):
        raise ConfigError(f"`{field_name}` must be a list of strings.")
    return tuple(v.strip() for v in value)


def _validate_severity(value: Any, *, field_name: str) -> Severity:
    if not isinstance(value, str):
        raise ConfigError(f"`{field_name}` must be a string.")
    normalized = value.strip().lower()
    if normalized not in SEVERITIES:
        raise ConfigError(f"`{field_name}` must be one of: {', '.join(SEVERITIES)}.")
    return cast(Severity, normalized)


@dataclass(frozen=True, slots=True)
class RulesConfig:
    enable: str | tuple[str, ...] = "all"
    disable: tuple[str, ...] = ()
    severity_overrides: Mapping[RuleId, Severity] = field(default_factory=lambda: MappingProxyType({}))


@dataclass(frozen=True, slots=True)
class DuplicationConfig:
    enabled: bool = True
    threshold: int = DEFAULT_DUPLICATION_THRESHOLD
    min_lines: int = DEFAULT_MIN_BLOCK_LINES
    max_lines: int = DEFAULT_MAX_BLOCK_LINES


@dataclass(frozen=True, slots=True)
class IgnoreConfig:
    paths: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class CodeAssayConfig:
    threshold: int = DEFAULT_THRESHOLD
    fail_under_threshold: bool = DEFAULT_FAIL_UNDER_THRESHOLD
    languages: tuple[str, ...] = DEFAULT_LANGUAGES
    workers: int | None = None
    timeout: float | None = None
    rules: RulesConfig = field(default_factory=RulesConfig)
    duplication: DuplicationConfig = field(default_factory=DuplicationConfig)
    ignore: IgnoreConfig = field(default_factory=IgnoreConfig)


def load_config(project_dir: Path | str = ".") -> CodeAssayConfig:
    """
    Load configuration from `pyproject.toml` within `project_dir`.

    If no file / no `[tool.codeassay]` table exists, returns defaults.
    """

    pyproject_path = Path(project_dir) / "pyproject.toml"
    if not pyproject_path.exists():
        return CodeAssayConfig()

    try:
        data = tomllib.loads(pyproject_path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {pyproject_path}: {exc}") from exc

    tool_table = data.get("tool", {})
    if not isinstance(tool_table, dict):
        return CodeAssayConfig()

    table = tool_table.get("codeassay", {})
    if not isinstance(table, dict) or not table:
        return CodeAssayConfig()

    return parse_config_table(table)


def parse_config_table(table: dict[str, Any]) -> CodeAssayConfig:
    threshold = table.get("threshold", DEFAULT_THRESHOLD)
    if not isinstance(threshold, int) or isinstance(threshold, bool):
        raise ConfigError("`tool.codeassay.threshold` must be an integer.")
    if not (0 <= threshold <= 100):
        raise ConfigError("`tool.codeassay.threshold` must be between 0 and 100.")

    fail_under = table.get("fail-under-threshold", table.get("fail_under_threshold", DEFAULT_FAIL_UNDER_THRESHOLD))
    if not isinstance(fail_under, bool):
        raise ConfigError("`tool.codeassay.fail-under-threshold` must be a boolean.")

    languages = _parse_languages(table.get("languages"))

    workers = table.get("workers")
    if workers is not None and (not isinstance(workers, int) or isinstance(workers, bool) or workers <= 0):
        raise ConfigError("`tool.codeassay.workers` must be an integer > 0.")

    timeout = table.get("timeout")
    if timeout is not None:
        if not isinstance(timeout, (int, float)) or isinstance(timeout, bool) or timeout <= 0:
            raise ConfigError("`tool.codeassay.timeout` must be a number of seconds > 0.")
        timeout = float(timeout)

    return CodeAssayConfig(
        threshold=threshold,
        fail_under_threshold=fail_under,
        languages=languages,
        workers=workers,
        timeout=timeout,
        rules=_parse_rules_config(table.get("rules", {})),
        duplication=_parse_duplication_config(table.get("duplication", {})),
        ignore=_parse_ignore_config(table.get("ignore", {})),
    )


def _parse_languages(value: Any) -> tuple[str, ...]:
    if value is None:
        return DEFAULT_LANGUAGES
    names = _validate_str_list(value, field_name="tool.codeassay.languages")
    known = set(DEFAULT_LANGUAGES)
    normalized = tuple(name.lower() for name in names if name)
    unknown = [name for name in normalized if name not in known]
    if unknown:
        raise ConfigError(
            f"`tool.codeassay.languages` contains unknown language(s): {', '.join(unknown)}. "
            f"Known: {', '.join(DEFAULT_LANGUAGES)}."
        )
    return normalized


def _parse_rules_config(value: Any) -> RulesConfig:
    if value is None:
        return RulesConfig()
    if not isinstance(value, dict):
        raise ConfigError("`tool.codeassay.rules` must be a table.")

    enable: str | tuple[str, ...]
    enable_raw = value.get("enable", "all")
    if isinstance(enable_raw, str):
        stripped = enable_raw.strip()
        if "," in stripped or ";" in stripped:
            enable = _split_rule_tokens(stripped)
        else:
            enable = stripped or "all"
    elif isinstance(enable_raw, list) and all(isinstance(v, str) for v in enable_raw):
        enable = _split_rule_list(enable_raw)
    else:
        raise ConfigError("`tool.codeassay.rules.enable` must be a string or a list of strings.")

    disable = _split_rule_list(_validate_str_list(value.get("disable", []), field_name="tool.codeassay.rules.disable"))

    _validate_rule_tokens((enable,) if isinstance(enable, str) else enable, field_name="tool.codeassay.rules.enable")
    _validate_rule_tokens(disable, field_name="tool.codeassay.rules.disable")

    overrides_raw = value.get("severity_overrides", value.get("severity-overrides"))
    severity_overrides: dict[RuleId, Severity] = {}
    if overrides_raw is not None:
        if not isinstance(overrides_raw, dict):
            raise ConfigError("`tool.codeassay.rules.severity_overrides` must be a table.")
        for raw_rule_id, raw_severity in overrides_raw.items():
            rule_id = _normalize_rule_id(str(raw_rule_id))
            if not _RULE_ID_RE.match(rule_id):
                raise ConfigError(
                    f"`tool.codeassay.rules.severity_overrides.{raw_rule_id}` is invalid; expected a rule id like S03."
                )
            severity_overrides[rule_id] = _validate_severity(
                raw_severity,
                field_name=f"tool.codeassay.rules.severity_overrides.{raw_rule_id}",
            )

    return RulesConfig(enable=enable, disable=disable, severity_overrides=MappingProxyType(severity_overrides))


def _parse_duplication_config(value: Any) -> DuplicationConfig:
    if value is None:
        return DuplicationConfig()
    if not isinstance(value, dict):
        raise ConfigError("`tool.codeassay.duplication` must be a table.")

    enabled = value.get("enabled", True)
    if not isinstance(enabled, bool):
        raise ConfigError("`tool.codeassay.duplication.enabled` must be a boolean.")

    threshold = value.get("threshold", DEFAULT_DUPLICATION_THRESHOLD)
    if not isinstance(threshold, int) or isinstance(threshold, bool) or not (1 <= threshold <= 100):
        raise ConfigError("`tool.codeassay.duplication.threshold` must be an integer between 1 and 100.")

    min_lines = value.get("min-lines", value.get("min_lines", DEFAULT_MIN_BLOCK_LINES))
    max_lines = value.get("max-lines", value.get("max_lines", DEFAULT_MAX_BLOCK_LINES))
    for name, number in (("min-lines", min_lines), ("max-lines", max_lines)):
        if not isinstance(number, int) or isinstance(number, bool) or number <= 0:
            raise ConfigError(f"`tool.codeassay.duplication.{name}` must be an integer > 0.")
    if min_lines > max_lines:
        raise ConfigError("`tool.codeassay.duplication.min-lines` must not exceed `max-lines`.")

    return DuplicationConfig(enabled=enabled, threshold=threshold, min_lines=min_lines, max_lines=max_lines)


def _parse_ignore_config(value: Any) -> IgnoreConfig:
    if value is None:
        return IgnoreConfig()
    if not isinstance(value, dict):
        raise ConfigError("`tool.codeassay.ignore` must be a table.")
    return IgnoreConfig(paths=_validate_str_list(value.get("paths", []), field_name="tool.codeassay.ignore.paths"))


def _split_rule_tokens(value: str) -> tuple[str, ...]:
    return tuple(token.strip() for token in value.replace(";", ",").split(",") if token.strip())


def _split_rule_list(values: Iterable[str]) -> tuple[str, ...]:
    parts: list[str] = []
    for raw in values:
        parts.extend(_split_rule_tokens(raw))
    return tuple(parts)


def _validate_rule_tokens(tokens: Iterable[str], *, field_name: str) -> None:
    for token in tokens:
        stripped = token.strip()
        if not stripped:
            continue
        if _normalize_group(stripped) in DEFAULT_RULE_GROUPS:
            continue
        if _RULE_ID_RE.match(_normalize_rule_id(stripped)):
            continue
        groups = ", ".join(sorted(DEFAULT_RULE_GROUPS))
        raise ConfigError(
            f"`{field_name}` contains unknown rule group or invalid rule id: {token!r}. "
            f"Valid groups: {groups}. Valid ids look like S03/Q05."
        )


def _expand(token: str, available: set[RuleId] | None) -> set[RuleId]:
    group = _normalize_group(token)
    if group == "all":
        return set(available) if available is not None else set(DEFAULT_RULE_GROUPS["all"])
    if group in DEFAULT_RULE_GROUPS:
        return set(DEFAULT_RULE_GROUPS[group])
    return {_normalize_rule_id(token)}


def compute_enabled_rule_ids(
    config: CodeAssayConfig,
    *,
    available_rule_ids: Iterable[RuleId] | None = None,
) -> set[RuleId]:
    """
    Resolve the final enabled rule set from `rules.enable` + `rules.disable`.

    - `enable = "all"` enables every built-in rule.
    - `enable = ["security", "Q05"]` enables categories and/or explicit ids.
    - `disable = ["Q04"]` removes ids (or whole categories) afterwards.
    """

    available = set(available_rule_ids) if available_rule_ids is not None else None
    enable_spec = config.rules.enable
    tokens = (enable_spec,) if isinstance(enable_spec, str) else enable_spec

    enabled: set[RuleId] = set()
    for token in tokens:
        enabled |= _expand(token.strip(), available)
    for token in config.rules.disable:
        enabled -= _expand(token.strip(), available)

    if available is not None:
        enabled &= available
    return enabled


def path_is_ignored(path: Path, *, project_root: Path, ignore_patterns: Iterable[str]) -> bool:
    """
    Return True if `path` matches any ignore pattern.

    Patterns are evaluated against the POSIX-style path relative to `project_root`:
    - "generated/" matches that directory prefix,
    - globs without slashes ("*.pb.js") match basenames,
    - globs with slashes ("src/**/legacy/*.js") match the full relative path.
    """

    try:
        relative = path.resolve().relative_to(project_root.resolve())
    except (ValueError, OSError, RuntimeError):
        return False

    rel_posix = relative.as_posix()
    basename = relative.name

    for raw_pattern in ignore_patterns:
        pattern = raw_pattern.strip().replace("\\", "/")
        if not pattern:
            continue
        if pattern.startswith("./"):
            pattern = pattern[2:]

        if pattern.endswith("/"):
            if rel_posix.startswith(pattern):
                return True
            continue

        if "/" in pattern:
            if fnmatch.fnmatch(rel_posix, pattern):
                return True
        elif fnmatch.fnmatch(basename, pattern) or fnmatch.fnmatch(rel_posix, pattern):
            return True

    return False
