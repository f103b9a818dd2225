from __future__ import annotations

from codeassay.engine.syntax import ASSIGNMENT, CALL, TAG, SyntaxNode, last_segment
from codeassay.rules.base import Match, NodeContext, Rule
from codeassay.rules.utils import is_test_path, looks_like_credential_name

_DYNAMIC_EXEC_CALLS = frozenset(
    {
        "eval",
        "exec",
        "execScript",
        "Function",
        "window.eval",
        "globalThis.eval",
        "os.system",
        "os.popen",
        "Runtime.getRuntime.exec",
    }
)
_STRING_TIMER_CALLS = frozenset({"setTimeout", "setInterval", "window.setTimeout", "window.setInterval"})

_MARKUP_PROPERTIES = frozenset({"innerHTML", "outerHTML"})
_MARKUP_CALLS = frozenset({"document.write", "document.writeln", "mark_safe", "Markup", "markupsafe.Markup"})
_MARKUP_METHODS = frozenset({"insertAdjacentHTML", "bypassSecurityTrustHtml"})

_SHELL_CALLS = frozenset({"call", "run", "Popen", "check_call", "check_output", "getoutput", "getstatusoutput"})
_NODE_SHELL_CALLS = frozenset({"child_process.exec", "child_process.execSync", "execSync"})

_DESERIALIZE_CALLS = frozenset(
    {"pickle.load", "pickle.loads", "cPickle.load", "cPickle.loads", "marshal.load", "marshal.loads", "yaml.unsafe_load"}
)


def _dynamic_exec(node: SyntaxNode, ctx: NodeContext) -> Match | None:
    name = node.name or ""
    if name in _DYNAMIC_EXEC_CALLS:
        return {"name": name}
    if name in _STRING_TIMER_CALLS and node.attrs.get("first_arg") == "string":
        return {"name": name}
    return None


def _markup_sink(node: SyntaxNode, ctx: NodeContext) -> Match | None:
    if node.kind == ASSIGNMENT:
        prop = last_segment(node.name)
        return {"name": prop} if prop in _MARKUP_PROPERTIES else None
    if node.kind == TAG:
        if "dangerouslysetinnerhtml" in node.attrs.get("attributes", ()):
            return {"name": "dangerouslySetInnerHTML"}
        return None
    name = node.name or ""
    if name in _MARKUP_CALLS or last_segment(name) in _MARKUP_METHODS:
        return {"name": name}
    return None


def _hardcoded_credential(node: SyntaxNode, ctx: NodeContext) -> Match | None:
    if is_test_path(ctx.unit.path):
        return None
    if node.attrs.get("value_kind") != "string" or not node.attrs.get("value"):
        return None
    name = last_segment(node.name)
    if not looks_like_credential_name(name):
        return None
    return {"name": name}


def _shell_injection(node: SyntaxNode, ctx: NodeContext) -> Match | None:
    name = node.name or ""
    if name in _NODE_SHELL_CALLS:
        return {"name": name}
    if last_segment(name) not in _SHELL_CALLS:
        return None
    if not (name.startswith("subprocess.") or name in _SHELL_CALLS):
        return None
    if node.attrs.get("keywords", {}).get("shell") is True:
        return {"name": name}
    return None


def _unsafe_deserialization(node: SyntaxNode, ctx: NodeContext) -> Match | None:
    name = node.name or ""
    if name in _DESERIALIZE_CALLS:
        return {"name": name}
    if name == "yaml.load" and "Loader" not in node.attrs.get("keywords", {}) and node.attrs.get("args", 0) < 2:
        return {"name": name}
    return None


def builtin_security_rules() -> list[Rule]:
    return [
        Rule(
            rule_id="S01",
            title="Dynamic code execution",
            category="security",
            severity="critical",
            description="`{name}()` executes dynamically built code.",
            suggestion="Avoid evaluating strings as code; dispatch to known functions or parse data explicitly.",
            kinds=frozenset({CALL}),
            predicate=_dynamic_exec,
            references=("CWE-95", "A03:2021-Injection"),
        ),
        Rule(
            rule_id="S02",
            title="Unsafe markup injection",
            category="security",
            severity="high",
            description="`{name}` writes unescaped markup and can enable cross-site scripting.",
            suggestion="Use text-only APIs (textContent, template auto-escaping) or sanitize input first.",
            kinds=frozenset({ASSIGNMENT, CALL, TAG}),
            predicate=_markup_sink,
            references=("CWE-79", "A03:2021-Injection"),
        ),
        Rule(
            rule_id="S03",
            title="Hardcoded credential",
            category="security",
            severity="critical",
            description="`{name}` is assigned a hardcoded credential-like string literal.",
            suggestion="Load credentials from environment variables or a secret manager.",
            kinds=frozenset({ASSIGNMENT}),
            predicate=_hardcoded_credential,
            references=("CWE-259", "A07:2021-Identification and Authentication Failures"),
        ),
        Rule(
            rule_id="S04",
            title="Shell command injection",
            category="security",
            severity="high",
            description="`{name}` runs its command through a shell.",
            suggestion="Pass an argument list without a shell, or quote untrusted input with shlex.quote.",
            kinds=frozenset({CALL}),
            predicate=_shell_injection,
            ecosystems=frozenset({"python", "web"}),
            references=("CWE-78", "A03:2021-Injection"),
        ),
        Rule(
            rule_id="S05",
            title="Unsafe deserialization",
            category="security",
            severity="high",
            description="`{name}` can execute arbitrary code when fed untrusted data.",
            suggestion="Use a data-only format (JSON) or yaml.safe_load.",
            kinds=frozenset({CALL}),
            predicate=_unsafe_deserialization,
            ecosystems=frozenset({"python"}),
            references=("CWE-502", "A08:2021-Software and Data Integrity Failures"),
        ),
    ]
