from __future__ import annotations

import re
from typing import Any

from codeassay.engine import syntax as k
from codeassay.engine import tree_sitter as ts
from codeassay.engine.syntax import ParseError, SyntaxNode

# Raw tree-sitter node types across the bundled grammars -> canonical kinds.
_KINDS: dict[str, str] = {
    # functions
    "function_declaration": k.FUNCTION,
    "function_expression": k.FUNCTION,
    "function": k.FUNCTION,
    "arrow_function": k.FUNCTION,
    "generator_function": k.FUNCTION,
    "generator_function_declaration": k.FUNCTION,
    "method_definition": k.FUNCTION,
    "method_declaration": k.FUNCTION,
    "constructor_declaration": k.FUNCTION,
    "secondary_constructor": k.FUNCTION,
    "init_declaration": k.FUNCTION,
    "lambda_expression": k.FUNCTION,
    "lambda_literal": k.FUNCTION,
    "anonymous_function": k.FUNCTION,
    # classes
    "class_declaration": k.CLASS,
    "abstract_class_declaration": k.CLASS,
    "class": k.CLASS,
    "object_declaration": k.CLASS,
    # calls
    "call_expression": k.CALL,
    "new_expression": k.CALL,
    "method_invocation": k.CALL,
    "object_creation_expression": k.CALL,
    # assignments
    "variable_declarator": k.ASSIGNMENT,
    "assignment_expression": k.ASSIGNMENT,
    "augmented_assignment_expression": k.ASSIGNMENT,
    "public_field_definition": k.ASSIGNMENT,
    "property_declaration": k.ASSIGNMENT,
    "assignment": k.ASSIGNMENT,
    # loops
    "for_statement": k.LOOP,
    "for_in_statement": k.LOOP,
    "enhanced_for_statement": k.LOOP,
    "while_statement": k.LOOP,
    "do_statement": k.LOOP,
    "do_while_statement": k.LOOP,
    "repeat_while_statement": k.LOOP,
    # branches
    "if_statement": k.IF,
    "if_expression": k.IF,
    "guard_statement": k.IF,
    "switch_case": k.CASE,
    "switch_label": k.CASE,
    "switch_rule": k.CASE,
    "switch_entry": k.CASE,
    "when_entry": k.CASE,
    "catch_clause": k.CATCH,
    "catch_block": k.CATCH,
    "try_statement": k.TRY,
    "try_with_resources_statement": k.TRY,
    "try_expression": k.TRY,
    "ternary_expression": k.CONDITIONAL,
    "binary_expression": k.LOGICAL,
    "conjunction_expression": k.LOGICAL,
    "disjunction_expression": k.LOGICAL,
    "elvis_expression": k.LOGICAL,
    "nil_coalescing_expression": k.LOGICAL,
    # literals
    "number": k.NUMBER,
    "integer_literal": k.NUMBER,
    "long_literal": k.NUMBER,
    "real_literal": k.NUMBER,
    "float_literal": k.NUMBER,
    "decimal_integer_literal": k.NUMBER,
    "hex_integer_literal": k.NUMBER,
    "decimal_floating_point_literal": k.NUMBER,
    "string": k.STRING,
    "template_string": k.STRING,
    "string_literal": k.STRING,
    "line_string_literal": k.STRING,
    "multi_line_string_literal": k.STRING,
    # markup / style
    "jsx_opening_element": k.TAG,
    "jsx_self_closing_element": k.TAG,
    "start_tag": k.TAG,
    "self_closing_tag": k.TAG,
    "declaration": k.DECLARATION,
    "universal_selector": k.UNIVERSAL_SELECTOR,
    # misc
    "debugger_statement": k.DEBUGGER,
    "import_statement": k.IMPORT,
    "import_declaration": k.IMPORT,
    "import_header": k.IMPORT,
    "export_statement": k.EXPORT,
}

_GRAMMAR_OVERRIDES: dict[tuple[str, str], str] = {
    # Swift `do { } catch { }` is a try block, not a do-while loop.
    ("swift", "do_statement"): k.TRY,
}

_LOGICAL_OPERATORS = frozenset({"&&", "||", "??"})
_STRING_TYPES = frozenset(raw for raw, kind in _KINDS.items() if kind == k.STRING)
_NUMBER_TYPES = frozenset(raw for raw, kind in _KINDS.items() if kind == k.NUMBER)
_IDENTIFIER_TYPES = frozenset(
    {"identifier", "simple_identifier", "property_identifier", "type_identifier", "field_identifier"}
)
_PARAMETER_LIST_TYPES = frozenset(
    {"formal_parameters", "function_value_parameters", "parameters", "parameter_list", "lambda_parameters"}
)
_ARGUMENT_LIST_TYPES = frozenset({"arguments", "argument_list", "value_arguments", "call_suffix"})
_METHOD_TYPES = frozenset(
    {
        "method_definition",
        "method_declaration",
        "function_declaration",
        "constructor_declaration",
        "secondary_constructor",
        "init_declaration",
    }
)
_NAMED_PARENTS = {
    "variable_declarator": "name",
    "pair": "key",
    "assignment_expression": "left",
    "public_field_definition": "name",
}

_PARENS_RE = re.compile(r"\([^()]*\)|\[[^\[\]]*\]|<[^<>]*>")
_WS_RE = re.compile(r"\s+")


def parse_tree_sitter(grammar: str, text: str) -> SyntaxNode:
    """
    Parse `text` with a tree-sitter grammar and convert it to a `SyntaxNode` tree.

    Raises `ParseError` when the tree contains error or missing nodes and
    `TreeSitterError` when the grammar is unavailable.
    """

    source = text.encode("utf-8")
    tree = ts.parse(grammar, source)
    root = tree.root_node
    if getattr(root, "has_error", False):
        message, line = describe_error(root, source)
        raise ParseError(message, line)
    return _Converter(grammar, source).convert(root)


def describe_error(root: Any, source: bytes) -> tuple[str, int]:
    stack = [root]
    while stack:
        node = stack.pop()
        if getattr(node, "is_missing", False):
            line = node.start_point[0] + 1
            return f"syntax error at line {line}: missing `{node.type}`", line
        if node.type == "ERROR":
            line = node.start_point[0] + 1
            snippet = source[node.start_byte : node.end_byte].decode("utf-8", "replace")
            snippet = snippet.strip().splitlines()[0][:40] if snippet.strip() else ""
            detail = f": unexpected `{snippet}`" if snippet else ""
            return f"syntax error at line {line}{detail}", line
        stack.extend(reversed([child for child in node.children if getattr(child, "has_error", True)]))
    line = root.start_point[0] + 1
    return f"syntax error at line {line}", line


def _field(node: Any, name: str) -> Any:
    getter = getattr(node, "child_by_field_name", None)
    if getter is None:
        return None
    return getter(name)


def _named_children(node: Any) -> list[Any]:
    return [child for child in node.children if getattr(child, "is_named", True) and child.type != "comment"]


def _first_child_of(node: Any, types: frozenset[str] | set[str]) -> Any:
    for child in node.children:
        if child.type in types:
            return child
    return None


def _number_value(text: str) -> float | None:
    cleaned = text.replace("_", "").strip().rstrip("nlLuU")
    try:
        if cleaned.lower().startswith(("0x", "0o", "0b")):
            return float(int(cleaned, 0))
        return float(cleaned.rstrip("fFdD"))
    except ValueError:
        return None


class _Converter:
    def __init__(self, grammar: str, source: bytes) -> None:
        self._grammar = grammar
        self._source = source

    def convert(self, root: Any) -> SyntaxNode:
        top = self._make(root, None)
        stack: list[tuple[Any, SyntaxNode]] = [(root, top)]
        while stack:
            raw, target = stack.pop()
            for child in raw.children:
                if not getattr(child, "is_named", True):
                    continue
                converted = self._make(child, raw)
                target.children.append(converted)
                stack.append((child, converted))
        return top

    def _text(self, node: Any) -> str:
        return self._source[node.start_byte : node.end_byte].decode("utf-8", "replace")

    def _make(self, node: Any, parent: Any) -> SyntaxNode:
        raw_kind = node.type
        kind = _GRAMMAR_OVERRIDES.get((self._grammar, raw_kind)) or _KINDS.get(raw_kind, k.NODE)
        name: str | None = None
        attrs: dict[str, Any] = {}

        if kind == k.FUNCTION:
            name = self._function_name(node, parent)
            attrs["params"] = self._param_count(node)
        elif kind == k.CLASS:
            name = self._identifier(node)
            attrs["methods"] = self._method_count(node)
        elif kind == k.CALL:
            name, attrs = self._call(node)
        elif kind == k.ASSIGNMENT:
            name, attrs = self._assignment(node)
        elif kind == k.LOOP:
            name = self._loop_flavor(node)
        elif kind == k.LOGICAL:
            operator = self._operator(node)
            if raw_kind == "binary_expression" and operator not in _LOGICAL_OPERATORS:
                kind = k.NODE
            attrs["operator"] = operator
        elif kind == k.NUMBER:
            attrs["value"] = _number_value(self._text(node))
        elif kind == k.STRING:
            attrs["value"] = self._text(node)
        elif kind == k.TAG:
            name, attrs = self._tag(node)
        elif kind == k.DECLARATION:
            prop = _first_child_of(node, {"property_name"})
            name = self._text(prop).strip() if prop is not None else None

        start_row, start_col = node.start_point[0], node.start_point[1]
        end_row, end_col = node.end_point[0], node.end_point[1]
        return SyntaxNode(
            kind=kind,
            raw_kind=raw_kind,
            start_line=start_row + 1,
            start_col=start_col + 1,
            end_line=end_row + 1,
            end_col=end_col + 1,
            name=name,
            attrs=attrs,
        )

    def _identifier(self, node: Any) -> str | None:
        target = _field(node, "name") or _first_child_of(node, _IDENTIFIER_TYPES)
        if target is None:
            return None
        return self._text(target).strip() or None

    def _function_name(self, node: Any, parent: Any) -> str:
        name = self._identifier(node)
        if name:
            return name
        if parent is not None and parent.type in _NAMED_PARENTS:
            owner = _field(parent, _NAMED_PARENTS[parent.type])
            if owner is not None:
                return _WS_RE.sub("", self._text(owner))
        return "<anonymous>"

    def _param_count(self, node: Any) -> int:
        if _field(node, "parameter") is not None:
            return 1
        params = _field(node, "parameters") or _first_child_of(node, _PARAMETER_LIST_TYPES)
        if params is not None:
            if params.type in _IDENTIFIER_TYPES:
                return 1
            return len(_named_children(params))
        return sum(1 for child in node.children if child.type == "parameter")

    def _method_count(self, node: Any) -> int:
        body = _field(node, "body") or _first_child_of(node, {"class_body", "enum_class_body"})
        if body is None:
            return 0
        return sum(1 for child in body.children if child.type in _METHOD_TYPES)

    def _call(self, node: Any) -> tuple[str | None, dict[str, Any]]:
        if node.type == "method_invocation":
            receiver = _field(node, "object")
            method = _field(node, "name")
            text = self._text(method) if method is not None else ""
            if receiver is not None:
                text = f"{self._text(receiver)}.{text}"
        else:
            target = _field(node, "function") or _field(node, "constructor") or _field(node, "type")
            if target is None:
                named = _named_children(node)
                target = named[0] if named else None
            text = self._text(target) if target is not None else ""

        args_node = _field(node, "arguments") or _first_child_of(node, _ARGUMENT_LIST_TYPES)
        args = _named_children(args_node) if args_node is not None else []
        if args and args[0].type == "value_arguments":
            args = _named_children(args[0])
        if args and args[0].type == "value_argument":
            inner = _named_children(args[0])
            first_type = inner[-1].type if inner else None
        else:
            first_type = args[0].type if args else None
        first_arg = "string" if first_type in _STRING_TYPES else ("number" if first_type in _NUMBER_TYPES else None)
        return self._clean_callee(text), {
            "args": len(args),
            "first_arg": first_arg,
            "construct": node.type in {"new_expression", "object_creation_expression"},
        }

    @staticmethod
    def _clean_callee(text: str) -> str | None:
        cleaned = _WS_RE.sub("", text).replace("?.", ".").replace("!!.", ".")
        previous = None
        while previous != cleaned:
            previous = cleaned
            cleaned = _PARENS_RE.sub("", cleaned)
        return cleaned.strip(".") or None

    def _assignment(self, node: Any) -> tuple[str | None, dict[str, Any]]:
        target = (
            _field(node, "name")
            or _field(node, "left")
            or _first_child_of(node, {"variable_declaration", "pattern", "directly_assignable_expression"})
        )
        value = _field(node, "value") or _field(node, "right")
        named = _named_children(node)
        if target is None and named:
            target = named[0]
        if value is None and len(named) > 1:
            value = named[-1]

        name = None
        if target is not None:
            name = _WS_RE.sub("", self._text(target).split(":", 1)[0]) or None

        value_kind = "other"
        literal: Any = None
        if value is not None and value.type in _STRING_TYPES:
            raw = self._text(value).strip()
            interpolated = "${" in raw
            if self._grammar == "kotlin":
                interpolated = interpolated or "$" in raw
            elif self._grammar == "swift":
                interpolated = interpolated or "\\(" in raw
            if interpolated:
                value_kind = "template"
            else:
                value_kind, literal = "string", raw.strip("\"'`")
        elif value is not None and value.type in _NUMBER_TYPES:
            value_kind, literal = "number", _number_value(self._text(value))
        return name, {
            "value_kind": value_kind,
            "value": literal,
            "augmented": node.type == "augmented_assignment_expression",
        }

    def _loop_flavor(self, node: Any) -> str:
        if node.type == "for_in_statement":
            operator = _field(node, "operator")
            token = operator.type if operator is not None else None
            if token is None:
                token = next((c.type for c in node.children if c.type in {"in", "of"}), "in")
            return "for_of" if token == "of" else "for_in"
        if node.type == "enhanced_for_statement":
            return "for_each"
        if node.type in {"do_statement", "do_while_statement", "repeat_while_statement"}:
            return "do"
        if node.type == "while_statement":
            return "while"
        return "for"

    def _operator(self, node: Any) -> str | None:
        operator = _field(node, "operator")
        if operator is not None:
            return operator.type
        for child in node.children:
            if not getattr(child, "is_named", True):
                return child.type
        return None

    def _tag(self, node: Any) -> tuple[str | None, dict[str, Any]]:
        attributes: set[str] = set()
        if node.type.startswith("jsx_"):
            name_node = _field(node, "name")
            name = self._text(name_node).strip() if name_node is not None else None
            for child in node.children:
                if child.type == "jsx_attribute":
                    parts = _named_children(child)
                    if parts:
                        attributes.add(self._text(parts[0]).strip().lower())
                elif child.type == "jsx_expression":
                    # spread props may carry any attribute
                    attributes.add("{...}")
        else:
            name_node = _first_child_of(node, {"tag_name"})
            name = self._text(name_node).strip().lower() if name_node is not None else None
            for child in node.children:
                if child.type == "attribute":
                    attr_name = _first_child_of(child, {"attribute_name"})
                    if attr_name is not None:
                        attributes.add(self._text(attr_name).strip().lower())
        return name, {"attributes": frozenset(attributes)}
