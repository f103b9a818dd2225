from __future__ import annotations

import logging
import re

from codeassay.engine.python_frontend import parse_python
from codeassay.engine.syntax import BRANCH_KINDS, CLASS, FUNCTION, IMPORT, ParseError, SyntaxNode
from codeassay.engine.tree_sitter import TreeSitterError
from codeassay.engine.ts_frontend import parse_tree_sitter
from codeassay.engine.types import FileAnalysis, Issue, Metrics, SourceUnit, check_unit
from codeassay.languages.ecosystems import EcosystemProfile, profile_for
from codeassay.languages.registry import language_spec
from codeassay.rules.base import LineContext, NodeContext, Rule
from codeassay.rules.registry import RuleSet, default_rule_set
from codeassay.rules.utils import iter_code_lines

logger = logging.getLogger(__name__)

_MAX_SNIPPET = 200
_ALL_COMMENT_MARKERS = ("//", "/*", "#", "<!--")

# Rough line-level stand-ins used when there is no syntax tree.
_BRANCH_WORD_RE = re.compile(r"\b(if|elif|for|while|case|catch|except|when|guard)\b|&&|\|\||\?\?")
_FUNCTION_WORD_RE = re.compile(r"\b(def|function|func|fun)\b|=>")
_CLASS_WORD_RE = re.compile(r"\b(class|struct|@interface)\b")
_IMPORT_LINE_RE = re.compile(r"^\s*(import|from\s+\S+\s+import|#import|#include|@import|using)\b")


def analyze(unit: SourceUnit, *, rules: RuleSet | None = None) -> FileAnalysis:
    """
    Analyze one source unit.

    Never raises for malformed source: parse failures become a single `Q01`
    issue plus a line-based scan, and the result is flagged `degraded`.
    """

    check_unit(unit)

    rule_set = rules or default_rule_set()
    lines = tuple(unit.text.splitlines())
    profile = profile_for(unit.ecosystem)

    try:
        root = _parse(unit)
    except ParseError as exc:
        logger.debug("Parse failure in %s: %s", unit.path, exc.message)
        issue = rule_set.parse_failure.issue(
            unit,
            line=exc.line or 1,
            column=None,
            code=_snippet(lines, exc.line or 1),
            values={"message": exc.message},
        )
        issues = [issue, *_scan_lines(unit, lines, profile, rule_set, fallback=True)]
        return FileAnalysis(unit=unit, issues=tuple(issues), metrics=_line_metrics(unit, lines), degraded=True)
    except TreeSitterError as exc:
        logger.debug("No grammar for %s (%s): %s", unit.path, unit.language, exc)
        root = None

    if root is None:
        issues = _scan_lines(unit, lines, profile, rule_set, fallback=True)
        return FileAnalysis(unit=unit, issues=tuple(issues), metrics=_line_metrics(unit, lines), degraded=True)

    walker = _TreeWalker(unit, lines, profile, rule_set)
    walker.run(root)
    issues = [*walker.issues, *_scan_lines(unit, lines, profile, rule_set, fallback=False)]
    metrics = Metrics(
        lines_of_code=unit.line_count,
        function_count=walker.function_count,
        class_count=walker.class_count,
        import_count=walker.import_count,
        cyclomatic_complexity=1 + walker.branch_count,
        comment_ratio=comment_ratio(lines, language_spec(unit.language).comment_prefixes),
    )
    return FileAnalysis(unit=unit, issues=tuple(issues), metrics=metrics)


def _parse(unit: SourceUnit) -> SyntaxNode | None:
    if unit.language == "python":
        return parse_python(unit.text)
    grammar = language_spec(unit.language).grammar
    if grammar is None:
        return None
    return parse_tree_sitter(grammar, unit.text)


def comment_ratio(lines: tuple[str, ...], prefixes: tuple[str, ...] = _ALL_COMMENT_MARKERS) -> float:
    """Percentage of all lines that are comments, block-comment interiors included."""

    if not lines:
        return 0.0
    non_blank = sum(1 for line in lines if line.strip())
    code = sum(1 for _ in iter_code_lines(lines, prefixes))
    return round((non_blank - code) / len(lines) * 100, 2)


def _snippet(lines: tuple[str, ...], line: int) -> str:
    if 1 <= line <= len(lines):
        return lines[line - 1].strip()[:_MAX_SNIPPET]
    return ""


class _TreeWalker:
    def __init__(self, unit: SourceUnit, lines: tuple[str, ...], profile: EcosystemProfile, rules: RuleSet) -> None:
        self._unit = unit
        self._lines = lines
        self._rules = rules
        self._ecosystem = unit.ecosystem
        self._ctx = NodeContext(unit, lines, profile)
        self.issues: list[Issue] = []
        self.function_count = 0
        self.class_count = 0
        self.import_count = 0
        self.branch_count = 0

    def run(self, root: SyntaxNode) -> None:
        # Explicit stack: generated or minified code nests deeper than the recursion limit.
        stack: list[tuple[SyntaxNode, bool]] = [(root, False)]
        while stack:
            node, leaving = stack.pop()
            if leaving:
                self._ctx.leave(node)
                continue
            self._visit(node)
            self._ctx.enter(node)
            stack.append((node, True))
            stack.extend((child, False) for child in reversed(node.children))

    def _visit(self, node: SyntaxNode) -> None:
        kind = node.kind
        if kind == FUNCTION:
            self.function_count += 1
        elif kind == CLASS:
            self.class_count += 1
        elif kind == IMPORT:
            self.import_count += 1
        elif kind in BRANCH_KINDS:
            self.branch_count += 1

        for rule in self._rules.for_kind(kind):
            if not rule.applies_to(self._ecosystem):
                continue
            self._evaluate(rule, node)

    def _evaluate(self, rule: Rule, node: SyntaxNode) -> None:
        assert rule.predicate is not None
        try:
            match = rule.predicate(node, self._ctx)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Rule %s failed on %s:%d (%s); skipping it for this node.",
                rule.rule_id,
                self._unit.path,
                node.start_line,
                exc,
            )
            return
        if match is None:
            return
        self.issues.append(
            rule.issue(
                self._unit,
                line=node.start_line,
                column=node.start_col,
                code=_snippet(self._lines, node.start_line),
                values=match,
            )
        )


def _scan_lines(
    unit: SourceUnit,
    lines: tuple[str, ...],
    profile: EcosystemProfile,
    rule_set: RuleSet,
    *,
    fallback: bool,
) -> list[Issue]:
    rules = [
        rule
        for rule in rule_set.line_rules
        if rule.applies_to(unit.ecosystem) and (fallback or not rule.fallback_only)
    ]
    if not rules:
        return []
    issues: list[Issue] = []
    prefixes = language_spec(unit.language).comment_prefixes
    for line_number, line in iter_code_lines(lines, prefixes):
        ctx = LineContext(unit=unit, profile=profile, line_number=line_number, lines=lines)
        for rule in rules:
            assert rule.line_predicate is not None
            try:
                match = rule.line_predicate(line, ctx)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Rule %s failed on %s:%d (%s); skipping it.", rule.rule_id, unit.path, line_number, exc)
                continue
            if match is None:
                continue
            issues.append(
                rule.issue(
                    unit,
                    line=line_number,
                    column=match.column,
                    code=line.strip()[:_MAX_SNIPPET],
                    values=match.values,
                )
            )
    return issues


def _line_metrics(unit: SourceUnit, lines: tuple[str, ...]) -> Metrics:
    prefixes = language_spec(unit.language).comment_prefixes
    branches = functions = classes = imports = 0
    for _, line in iter_code_lines(lines, prefixes):
        branches += len(_BRANCH_WORD_RE.findall(line))
        functions += len(_FUNCTION_WORD_RE.findall(line))
        classes += len(_CLASS_WORD_RE.findall(line))
        if _IMPORT_LINE_RE.match(line):
            imports += 1
    return Metrics(
        lines_of_code=unit.line_count,
        function_count=functions,
        class_count=classes,
        import_count=imports,
        cyclomatic_complexity=1 + branches,
        comment_ratio=comment_ratio(lines, prefixes),
    )
