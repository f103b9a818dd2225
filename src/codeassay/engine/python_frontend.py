from __future__ import annotations

import ast
from typing import Any

from codeassay.engine import syntax as k
from codeassay.engine.syntax import ParseError, SyntaxNode

_BROAD_EXCEPTIONS = frozenset({"Exception", "BaseException"})


def parse_python(text: str) -> SyntaxNode:
    try:
        tree = ast.parse(text)
    except SyntaxError as exc:
        raise ParseError(exc.msg or "invalid syntax", exc.lineno) from exc
    except (ValueError, RecursionError, MemoryError) as exc:
        raise ParseError(str(exc) or type(exc).__name__) from exc
    return convert(tree)


def convert(tree: ast.AST) -> SyntaxNode:
    root = _make(tree, None)
    stack: list[tuple[ast.AST, SyntaxNode]] = [(tree, root)]
    while stack:
        source, target = stack.pop()
        for child in ast.iter_child_nodes(source):
            converted = _make(child, target)
            target.children.append(converted)
            stack.append((child, converted))
    return root


def dotted_name(node: ast.AST) -> str | None:
    """`a.b.c` for Name/Attribute chains; the attribute tail when the base is an expression."""

    parts: list[str] = []
    current = node
    while isinstance(current, ast.Attribute):
        parts.append(current.attr)
        current = current.value
    if isinstance(current, ast.Name):
        parts.append(current.id)
    elif not parts:
        return None
    return ".".join(reversed(parts))


def _make(node: ast.AST, parent: SyntaxNode | None) -> SyntaxNode:
    kind, name, attrs = _classify(node)
    # comprehension, match_case, arguments... carry no positions; inherit the parent's.
    start_line = getattr(node, "lineno", None)
    if start_line is None:
        if parent is None:
            start_line, start_col, end_line, end_col = 1, 1, 1, 1
        else:
            start_line, start_col = parent.start_line, parent.start_col
            end_line, end_col = parent.end_line, parent.end_col
    else:
        start_col = int(getattr(node, "col_offset", 0)) + 1
        end_line = getattr(node, "end_lineno", None) or start_line
        end_col = int(getattr(node, "end_col_offset", None) or 0) + 1
    return SyntaxNode(
        kind=kind,
        raw_kind=type(node).__name__,
        start_line=int(start_line),
        start_col=int(start_col),
        end_line=int(end_line),
        end_col=int(end_col),
        name=name,
        attrs=attrs,
    )


def _param_count(args: ast.arguments) -> int:
    positional = [*args.posonlyargs, *args.args]
    count = len(positional) + len(args.kwonlyargs)
    if args.vararg is not None:
        count += 1
    if args.kwarg is not None:
        count += 1
    if positional and positional[0].arg in {"self", "cls"}:
        count -= 1
    return count


def _literal(node: ast.AST | None) -> tuple[str, Any]:
    if isinstance(node, ast.Constant):
        value = node.value
        if isinstance(value, str):
            return "string", value
        if isinstance(value, bool) or value is None:
            return "other", value
        if isinstance(value, (int, float)):
            return "number", value
    if isinstance(node, ast.JoinedStr):
        return "template", None
    return "other", None


def _classify(node: ast.AST) -> tuple[str, str | None, dict[str, Any]]:
    if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
        return k.FUNCTION, node.name, {"params": _param_count(node.args)}
    if isinstance(node, ast.Lambda):
        return k.FUNCTION, "<lambda>", {"params": _param_count(node.args)}
    if isinstance(node, ast.ClassDef):
        methods = sum(1 for item in node.body if isinstance(item, (ast.FunctionDef, ast.AsyncFunctionDef)))
        return k.CLASS, node.name, {"methods": methods}
    if isinstance(node, ast.Call):
        keywords: dict[str, Any] = {}
        for keyword in node.keywords:
            if keyword.arg is None:
                continue
            keywords[keyword.arg] = keyword.value.value if isinstance(keyword.value, ast.Constant) else None
        first_arg = _literal(node.args[0])[0] if node.args else None
        return k.CALL, dotted_name(node.func), {
            "args": len(node.args),
            "keywords": keywords,
            "first_arg": first_arg,
        }
    if isinstance(node, ast.Assign):
        target = node.targets[0] if node.targets else None
        value_kind, value = _literal(node.value)
        name = dotted_name(target) if target is not None else None
        return k.ASSIGNMENT, name, {"value_kind": value_kind, "value": value}
    if isinstance(node, (ast.AnnAssign, ast.AugAssign)):
        value_kind, value = _literal(node.value)
        attrs = {"value_kind": value_kind, "value": value, "augmented": isinstance(node, ast.AugAssign)}
        return k.ASSIGNMENT, dotted_name(node.target), attrs
    if isinstance(node, ast.NamedExpr):
        value_kind, value = _literal(node.value)
        return k.ASSIGNMENT, dotted_name(node.target), {"value_kind": value_kind, "value": value}
    if isinstance(node, (ast.For, ast.AsyncFor, ast.comprehension)):
        return k.LOOP, "for", {}
    if isinstance(node, ast.While):
        return k.LOOP, "while", {}
    if isinstance(node, ast.If):
        return k.IF, None, {}
    if isinstance(node, ast.IfExp):
        return k.CONDITIONAL, None, {}
    if isinstance(node, ast.BoolOp):
        return k.LOGICAL, None, {"operator": "and" if isinstance(node.op, ast.And) else "or"}
    if isinstance(node, ast.match_case):
        return k.CASE, None, {}
    if isinstance(node, ast.ExceptHandler):
        caught = dotted_name(node.type) if node.type is not None else None
        broad = node.type is None or caught in _BROAD_EXCEPTIONS
        return k.CATCH, caught, {"broad": broad, "bare": node.type is None}
    if isinstance(node, (ast.Try, ast.TryStar)):
        return k.TRY, None, {"handlers": len(node.handlers)}
    if isinstance(node, (ast.With, ast.AsyncWith)):
        return k.WITH, None, {}
    if isinstance(node, (ast.Import, ast.ImportFrom)):
        return k.IMPORT, None, {}
    if isinstance(node, ast.Constant):
        value_kind, value = _literal(node)
        if value_kind == "number":
            return k.NUMBER, None, {"value": value}
        if value_kind == "string":
            return k.STRING, None, {"value": value}
    return k.NODE, None, {}
