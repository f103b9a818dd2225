from __future__ import annotations

from codeassay.engine.syntax import (
    ASSIGNMENT,
    BRANCH_KINDS,
    CALL,
    CATCH,
    CLASS,
    DEBUGGER,
    DECLARATION,
    EXPORT,
    FUNCTION,
    IMPORT,
    NUMBER,
    TRY,
    SyntaxNode,
)
from codeassay.languages.ecosystems import is_debug_call
from codeassay.rules.base import Match, NodeContext, Rule
from codeassay.rules.utils import is_constant_name

MAGIC_NUMBER_LIMIT = 100
MAX_COMPLEXITY = 10
MAX_PARAMETERS = 4
MAX_METHODS = 15

_UNARY_KINDS = frozenset({"UnaryOp", "unary_expression", "prefix_expression"})
_VENDOR_PREFIXES = ("-webkit-", "-moz-", "-ms-", "-o-")
# Java try-with-resources manages resources rather than errors.
_SCOPE_ONLY_TRY_KINDS = frozenset({"try_with_resources_statement"})


def function_complexity(node: SyntaxNode) -> int:
    """1 + branching constructs in the function body, excluding nested functions."""

    return 1 + sum(1 for child in node.walk_scope() if child.kind in BRANCH_KINDS)


def _debug_statement(node: SyntaxNode, ctx: NodeContext) -> Match | None:
    if node.kind == DEBUGGER:
        return {"name": "debugger"}
    name = node.name or ""
    if name and is_debug_call(name, ctx.profile):
        return {"name": name}
    return None


def _magic_number(node: SyntaxNode, ctx: NodeContext) -> Match | None:
    value = node.attrs.get("value")
    if value is None or abs(value) <= MAGIC_NUMBER_LIMIT:
        return None
    if ctx.inside(IMPORT, EXPORT):
        return None
    owner = ctx.parent
    if owner is not None and owner.raw_kind in _UNARY_KINDS and len(ctx.ancestors) > 1:
        owner = ctx.ancestors[-2]
    if owner is not None and owner.kind == ASSIGNMENT and is_constant_name(owner.name):
        return None
    text = int(value) if float(value).is_integer() else value
    return {"value": text}


def _complex_function(node: SyntaxNode, ctx: NodeContext) -> Match | None:
    complexity = function_complexity(node)
    if complexity > MAX_COMPLEXITY:
        return {"name": node.name or "<anonymous>", "complexity": complexity}
    return None


def _too_many_parameters(node: SyntaxNode, ctx: NodeContext) -> Match | None:
    count = int(node.attrs.get("params", 0))
    if count > MAX_PARAMETERS:
        return {"name": node.name or "<anonymous>", "count": count}
    return None


def _large_class(node: SyntaxNode, ctx: NodeContext) -> Match | None:
    count = int(node.attrs.get("methods", 0))
    if count > MAX_METHODS:
        return {"name": node.name or "<anonymous>", "count": count}
    return None


def _broad_except(node: SyntaxNode, ctx: NodeContext) -> Match | None:
    if not node.attrs.get("broad"):
        return None
    return {"what": "bare `except:`" if node.attrs.get("bare") else f"`except {node.name}`"}


def _try_without_catch(node: SyntaxNode, ctx: NodeContext) -> Match | None:
    if node.raw_kind in _SCOPE_ONLY_TRY_KINDS:
        return None
    if ctx.unit.language == "swift":
        # Swift `try` marks a throwing call, and a bare `do { }` is only a scope.
        return None
    if any(child.kind == CATCH for child in node.children):
        return None
    return {}


def _vendor_prefix(node: SyntaxNode, ctx: NodeContext) -> Match | None:
    prop = node.name or ""
    if prop.startswith(_VENDOR_PREFIXES):
        return {"name": prop}
    return None


def builtin_quality_rules() -> list[Rule]:
    return [
        Rule(
            rule_id="Q01",
            title="Parse failure",
            category="quality",
            severity="medium",
            description="Failed to parse file: {message}",
            suggestion="Fix the syntax error; only line-based checks ran on this file.",
        ),
        Rule(
            rule_id="Q02",
            title="Debug statement",
            category="quality",
            severity="low",
            description="Debug output `{name}` left in code.",
            suggestion="Remove it or route the message through the project's logger.",
            kinds=frozenset({CALL, DEBUGGER}),
            predicate=_debug_statement,
        ),
        Rule(
            rule_id="Q03",
            title="Magic number",
            category="quality",
            severity="low",
            description="Numeric literal {value} has no name.",
            suggestion="Extract it into a named constant.",
            kinds=frozenset({NUMBER}),
            predicate=_magic_number,
            ecosystems=frozenset({"python", "web", "android", "ios", "flutter"}),
        ),
        Rule(
            rule_id="Q05",
            title="Complex function",
            category="quality",
            severity="medium",
            description="Function `{name}` has cyclomatic complexity {complexity}.",
            suggestion="Split it into smaller functions or replace branching with lookup tables.",
            kinds=frozenset({FUNCTION}),
            predicate=_complex_function,
        ),
        Rule(
            rule_id="Q06",
            title="Too many parameters",
            category="quality",
            severity="low",
            description="Function `{name}` takes {count} parameters.",
            suggestion="Group related parameters into an object or dataclass.",
            kinds=frozenset({FUNCTION}),
            predicate=_too_many_parameters,
        ),
        Rule(
            rule_id="Q07",
            title="Large class",
            category="quality",
            severity="medium",
            description="Class `{name}` defines {count} methods.",
            suggestion="Split responsibilities into smaller collaborating classes.",
            kinds=frozenset({CLASS}),
            predicate=_large_class,
        ),
        Rule(
            rule_id="Q08",
            title="Broad exception handler",
            category="quality",
            severity="medium",
            description="{what} hides unrelated failures.",
            suggestion="Catch the specific exceptions the block can raise.",
            kinds=frozenset({CATCH}),
            predicate=_broad_except,
            ecosystems=frozenset({"python"}),
        ),
        Rule(
            rule_id="Q09",
            title="Vendor-prefixed property",
            category="quality",
            severity="low",
            description="Vendor-prefixed property `{name}`.",
            suggestion="Use the standard property and let a build step add prefixes.",
            kinds=frozenset({DECLARATION}),
            predicate=_vendor_prefix,
            ecosystems=frozenset({"style"}),
        ),
        Rule(
            rule_id="Q10",
            title="Missing error handling",
            category="quality",
            severity="medium",
            description="`try` block without a catch clause.",
            suggestion="Handle the errors the block can raise, or drop the try if only cleanup is needed.",
            kinds=frozenset({TRY}),
            predicate=_try_without_catch,
        ),
    ]
