from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, replace
from functools import lru_cache
from types import MappingProxyType

from codeassay.engine.types import SEVERITIES, Severity
from codeassay.rules.accessibility import builtin_accessibility_rules
from codeassay.rules.base import Rule
from codeassay.rules.lines import builtin_line_rules
from codeassay.rules.performance import builtin_performance_rules
from codeassay.rules.quality import builtin_quality_rules
from codeassay.rules.security import builtin_security_rules

_RULE_ID_RE = re.compile(r"^[A-Z][0-9]{2,}$")

PARSE_FAILURE_RULE_ID = "Q01"


def validate_rules(rules: Iterable[Rule]) -> tuple[Rule, ...]:
    """Check ids and rule shape; return the rules sorted by id."""

    by_id: dict[str, Rule] = {}
    for rule in rules:
        rule_id = rule.rule_id
        if rule_id != rule_id.strip() or rule_id != rule_id.upper():
            raise RuntimeError(f"Rule id must be canonical uppercase without whitespace: {rule_id!r}")
        if not _RULE_ID_RE.match(rule_id):
            raise RuntimeError(f"Rule id must match {_RULE_ID_RE.pattern}: {rule_id!r}")
        if rule_id in by_id:
            raise RuntimeError(f"Duplicate rule id: {rule_id}")
        if rule.severity not in SEVERITIES:
            raise RuntimeError(f"Rule {rule_id} has unknown severity {rule.severity!r}")
        if rule.predicate is not None and not rule.kinds:
            raise RuntimeError(f"Rule {rule_id} has a node predicate but no node kinds")
        if rule.predicate is not None and rule.line_predicate is not None:
            raise RuntimeError(f"Rule {rule_id} cannot be both a node rule and a line rule")
        by_id[rule_id] = rule
    return tuple(by_id[key] for key in sorted(by_id))


@lru_cache(maxsize=1)
def builtin_rules() -> tuple[Rule, ...]:
    rules: list[Rule] = []
    rules.extend(builtin_security_rules())
    rules.extend(builtin_performance_rules())
    rules.extend(builtin_quality_rules())
    rules.extend(builtin_accessibility_rules())
    rules.extend(builtin_line_rules())
    return validate_rules(rules)


def rule_ids() -> set[str]:
    return {rule.rule_id for rule in builtin_rules()}


@lru_cache(maxsize=1)
def rules_by_id() -> Mapping[str, Rule]:
    return MappingProxyType({rule.rule_id: rule for rule in builtin_rules()})


def rule_by_id(rule_id: str) -> Rule | None:
    return rules_by_id().get(rule_id)


@dataclass(frozen=True, slots=True)
class RuleSet:
    """An immutable, indexed selection of rules used for one run."""

    rules: tuple[Rule, ...]
    by_kind: Mapping[str, tuple[Rule, ...]]
    line_rules: tuple[Rule, ...]
    parse_failure: Rule

    @classmethod
    def from_rules(cls, rules: Iterable[Rule]) -> RuleSet:
        ordered = validate_rules(rules)
        by_kind: dict[str, list[Rule]] = {}
        line_rules: list[Rule] = []
        for rule in ordered:
            if rule.line_predicate is not None:
                line_rules.append(rule)
            for kind in sorted(rule.kinds):
                by_kind.setdefault(kind, []).append(rule)
        # The parse-failure rule is always reported, even when deselected.
        parse_failure = next(
            (rule for rule in ordered if rule.rule_id == PARSE_FAILURE_RULE_ID),
            rules_by_id()[PARSE_FAILURE_RULE_ID],
        )
        return cls(
            rules=ordered,
            by_kind=MappingProxyType({kind: tuple(items) for kind, items in by_kind.items()}),
            line_rules=tuple(line_rules),
            parse_failure=parse_failure,
        )

    def for_kind(self, kind: str) -> tuple[Rule, ...]:
        return self.by_kind.get(kind, ())


@lru_cache(maxsize=1)
def default_rule_set() -> RuleSet:
    return RuleSet.from_rules(builtin_rules())


def build_rule_set(
    enabled_ids: Iterable[str] | None = None,
    severity_overrides: Mapping[str, Severity] | None = None,
) -> RuleSet:
    if enabled_ids is None and not severity_overrides:
        return default_rule_set()
    enabled = set(enabled_ids) if enabled_ids is not None else rule_ids()
    overrides = dict(severity_overrides or {})
    selected = [
        replace(rule, severity=overrides[rule.rule_id]) if rule.rule_id in overrides else rule
        for rule in builtin_rules()
        if rule.rule_id in enabled
    ]
    return RuleSet.from_rules(selected)
