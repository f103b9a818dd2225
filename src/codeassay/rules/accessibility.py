from __future__ import annotations

from codeassay.engine.syntax import TAG, SyntaxNode
from codeassay.rules.base import Match, NodeContext, Rule

_ALT_ATTRIBUTES = frozenset({"alt", "aria-label", "aria-labelledby"})


def _image_without_alt(node: SyntaxNode, ctx: NodeContext) -> Match | None:
    if node.name != "img":
        return None
    attributes = node.attrs.get("attributes", frozenset())
    if "{...}" in attributes or not _ALT_ATTRIBUTES.isdisjoint(attributes):
        return None
    return {}


def builtin_accessibility_rules() -> list[Rule]:
    return [
        Rule(
            rule_id="A01",
            title="Image without alt text",
            category="accessibility",
            severity="medium",
            description="`<img>` has no alt text for screen readers.",
            suggestion='Add a descriptive alt attribute, or alt="" for decorative images.',
            kinds=frozenset({TAG}),
            predicate=_image_without_alt,
            ecosystems=frozenset({"web", "markup"}),
        ),
    ]
