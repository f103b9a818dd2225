from __future__ import annotations

from codeassay.engine.syntax import CALL, LOOP, UNIVERSAL_SELECTOR, SyntaxNode, last_segment
from codeassay.rules.base import Match, NodeContext, Rule

MAX_LOOP_DEPTH = 2
_LINEAR_SEARCH_METHODS = frozenset({"indexOf", "lastIndexOf", "includes"})


def _deep_loop(node: SyntaxNode, ctx: NodeContext) -> Match | None:
    depth = ctx.loop_depth + 1
    if depth > MAX_LOOP_DEPTH:
        return {"depth": depth}
    return None


def _unmanaged_resource(node: SyntaxNode, ctx: NodeContext) -> Match | None:
    acquire = last_segment(node.name)
    releases = ctx.profile.resource_pairs.get(acquire)
    if not releases:
        return None
    parent = ctx.parent
    if ctx.profile.name == "python" and acquire == "open" and parent is not None and parent.raw_kind == "withitem":
        return None
    scope = ctx.enclosing_scope()
    if scope is not None and not ctx.calls_in(scope).isdisjoint(releases):
        return None
    return {"name": node.name, "release": releases[0]}


def _for_in_loop(node: SyntaxNode, ctx: NodeContext) -> Match | None:
    return {} if node.name == "for_in" else None


def _linear_search_in_loop(node: SyntaxNode, ctx: NodeContext) -> Match | None:
    method = last_segment(node.name)
    if ctx.loop_depth < 1 or method not in _LINEAR_SEARCH_METHODS:
        return None
    if node.name == method:
        # A bare `includes(...)` call is not an array/string method.
        return None
    return {"name": method}


def _universal_selector(node: SyntaxNode, ctx: NodeContext) -> Match | None:
    return {}


def builtin_performance_rules() -> list[Rule]:
    return [
        Rule(
            rule_id="P01",
            title="Deeply nested loops",
            category="performance",
            severity="medium",
            description="Loop nested {depth} levels deep.",
            suggestion="Flatten the iteration with lookups (dict/set/map) or extract the inner loops.",
            kinds=frozenset({LOOP}),
            predicate=_deep_loop,
        ),
        Rule(
            rule_id="P02",
            title="Resource without teardown",
            category="performance",
            severity="medium",
            description="`{name}` has no matching `{release}` in the same scope.",
            suggestion="Release the resource when the owning scope ends (context manager, cleanup callback, lifecycle hook).",
            kinds=frozenset({CALL}),
            predicate=_unmanaged_resource,
        ),
        Rule(
            rule_id="P03",
            title="for...in loop",
            category="performance",
            severity="medium",
            description="`for...in` walks the prototype chain and is slow on arrays.",
            suggestion="Use for...of, Object.keys() or array iteration methods.",
            kinds=frozenset({LOOP}),
            predicate=_for_in_loop,
            ecosystems=frozenset({"web"}),
        ),
        Rule(
            rule_id="P04",
            title="Linear search inside loop",
            category="performance",
            severity="low",
            description="`{name}()` inside a loop makes the iteration quadratic.",
            suggestion="Build a Set or Map once outside the loop and use constant-time lookups.",
            kinds=frozenset({CALL}),
            predicate=_linear_search_in_loop,
            ecosystems=frozenset({"web"}),
        ),
        Rule(
            rule_id="P05",
            title="Universal selector",
            category="performance",
            severity="medium",
            description="The universal selector `*` matches every element and slows style recalculation.",
            suggestion="Target specific elements or classes.",
            kinds=frozenset({UNIVERSAL_SELECTOR}),
            predicate=_universal_selector,
            ecosystems=frozenset({"style"}),
        ),
    ]
