from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from codeassay.engine.syntax import CALL, CLASS, FUNCTION, LOOP, SyntaxNode, last_segment
from codeassay.engine.types import Category, Issue, Severity, SourceUnit
from codeassay.languages.ecosystems import EcosystemProfile

Match = Mapping[str, Any]
NodePredicate = Callable[[SyntaxNode, "NodeContext"], "Match | None"]
LinePredicate = Callable[[str, "LineContext"], "LineMatch | None"]

_PLACEHOLDER_RE = re.compile(r"\{([a-z_]+)\}")


@dataclass(frozen=True, slots=True)
class LineMatch:
    column: int
    values: Match = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Rule:
    rule_id: str
    title: str
    category: Category
    severity: Severity
    description: str  # template; `{name}` placeholders are filled from the match
    suggestion: str | None = None
    kinds: frozenset[str] = frozenset()
    predicate: NodePredicate | None = None
    line_predicate: LinePredicate | None = None
    ecosystems: frozenset[str] | None = None
    references: tuple[str, ...] = ()
    fallback_only: bool = False

    def applies_to(self, ecosystem: str) -> bool:
        return self.ecosystems is None or ecosystem in self.ecosystems

    def render(self, values: Match) -> str:
        def fill(match: re.Match[str]) -> str:
            key = match.group(1)
            return str(values[key]) if key in values else match.group(0)

        return _PLACEHOLDER_RE.sub(fill, self.description)

    def issue(self, unit: SourceUnit, *, line: int, column: int | None, code: str, values: Match) -> Issue:
        return Issue(
            rule_id=self.rule_id,
            category=self.category,
            severity=self.severity,
            path=unit.path,
            line=line,
            column=column,
            code=code,
            title=self.title,
            description=self.render(values),
            suggestion=self.suggestion,
            references=self.references,
        )


class NodeContext:
    """Traversal state handed to node predicates."""

    __slots__ = ("unit", "lines", "profile", "ancestors", "loop_depth", "_scope_calls")

    def __init__(self, unit: SourceUnit, lines: tuple[str, ...], profile: EcosystemProfile) -> None:
        self.unit = unit
        self.lines = lines
        self.profile = profile
        self.ancestors: list[SyntaxNode] = []
        # Number of enclosing loops, not counting the current node.
        self.loop_depth = 0
        self._scope_calls: dict[int, frozenset[str]] = {}

    @property
    def parent(self) -> SyntaxNode | None:
        return self.ancestors[-1] if self.ancestors else None

    def enter(self, node: SyntaxNode) -> None:
        self.ancestors.append(node)
        if node.kind == LOOP:
            self.loop_depth += 1

    def leave(self, node: SyntaxNode) -> None:
        self.ancestors.pop()
        if node.kind == LOOP:
            self.loop_depth -= 1

    def inside(self, *kinds: str) -> bool:
        return any(ancestor.kind in kinds for ancestor in self.ancestors)

    def enclosing_scope(self) -> SyntaxNode | None:
        """Nearest enclosing class, else function, else the module root."""

        function: SyntaxNode | None = None
        for ancestor in reversed(self.ancestors):
            if ancestor.kind == CLASS:
                return ancestor
            if function is None and ancestor.kind == FUNCTION:
                function = ancestor
        if function is not None:
            return function
        return self.ancestors[0] if self.ancestors else None

    def calls_in(self, scope: SyntaxNode) -> frozenset[str]:
        """Last dotted segment of every call name under `scope`, cached per scope."""

        key = id(scope)
        cached = self._scope_calls.get(key)
        if cached is None:
            cached = frozenset(last_segment(node.name) for node in scope.walk() if node.kind == CALL and node.name)
            self._scope_calls[key] = cached
        return cached


@dataclass(frozen=True, slots=True)
class LineContext:
    unit: SourceUnit
    profile: EcosystemProfile
    line_number: int
    lines: tuple[str, ...] = ()
