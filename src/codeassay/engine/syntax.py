"""
Language-neutral syntax tree shared by all parser frontends.

Frontends (stdlib `ast` for Python, tree-sitter for everything else) map their
native node types onto a small set of canonical kinds so rules can be written
once. Positions are 1-based.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any

FUNCTION = "function"
CLASS = "class"
CALL = "call"
ASSIGNMENT = "assignment"
LOOP = "loop"
IF = "if"
CASE = "case"
CATCH = "catch"
TRY = "try"
CONDITIONAL = "conditional"
LOGICAL = "logical"
NUMBER = "number"
STRING = "string"
TAG = "tag"
DECLARATION = "declaration"
UNIVERSAL_SELECTOR = "universal_selector"
DEBUGGER = "debugger"
IMPORT = "import"
EXPORT = "export"
WITH = "with"
NODE = "node"

BRANCH_KINDS = frozenset({IF, CASE, LOOP, CATCH, CONDITIONAL, LOGICAL})


class ParseError(Exception):
    """The source could not be parsed into a complete tree."""

    def __init__(self, message: str, line: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.line = line


@dataclass(slots=True)
class SyntaxNode:
    kind: str
    raw_kind: str
    start_line: int
    start_col: int
    end_line: int
    end_col: int
    children: list[SyntaxNode] = field(default_factory=list)
    name: str | None = None
    attrs: dict[str, Any] = field(default_factory=dict)

    def walk(self) -> Iterator[SyntaxNode]:
        """Pre-order traversal without recursion."""

        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def walk_scope(self) -> Iterator[SyntaxNode]:
        """Like `walk`, but does not descend into nested functions or classes."""

        stack = list(reversed(self.children))
        while stack:
            node = stack.pop()
            yield node
            if node.kind in (FUNCTION, CLASS):
                continue
            stack.extend(reversed(node.children))


def last_segment(name: str | None) -> str:
    if not name:
        return ""
    return name.rsplit(".", 1)[-1]
