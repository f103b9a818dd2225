"""
Rules that look at raw source lines instead of syntax nodes.

They run after the tree traversal, and they are the only rules that still run
when a file cannot be parsed. The `fallback_only` ones duplicate tree rules and
are used only for files without a usable tree.
"""

from __future__ import annotations

import re
from functools import lru_cache

from codeassay.rules.base import LineContext, LineMatch, Rule
from codeassay.rules.utils import is_test_path, looks_like_credential_name

MAX_LINE_LENGTH = 120

_HTTP_URL_RE = re.compile(r"http://[^\s'\"`)<>]*")
_LOCAL_HOSTS = ("localhost", "127.0.0.1", "0.0.0.0", "[::1]")
# XML namespaces and schema identifiers are names, not fetched URLs.
_NAMESPACE_HOSTS = ("www.w3.org", "schemas.", "xmlns.", "json-schema.org", "ns.adobe.com", "purl.org")

_WEAK_CRYPTO_RE = re.compile(r"\b(?i:md5|sha-?1|rc4)\b|\b(?:DES|3DES|DESede)\b")
_BANNED_CALL_RE = re.compile(
    r"(?<![\w.$])(eval|exec|execScript)\s*\(|\bos\.(system|popen)\s*\(|\bnew\s+Function\s*\("
)
_CREDENTIAL_ASSIGN_RE = re.compile(
    r"(?P<name>[A-Za-z_$][\w$.]*)\s*(?::\s*[\w<>\[\]?]+\s*)?[:=]\s*(?P<quote>['\"`])(?P<value>[^'\"`]+)(?P=quote)"
)
_SENSITIVE_VALUE_RE = re.compile(r"(?i)password|passwd|token|secret")
# Lines searched on each side of a touchable for its label.
LABEL_WINDOW = 3


def _insecure_http(line: str, ctx: LineContext) -> LineMatch | None:
    for match in _HTTP_URL_RE.finditer(line):
        host = match.group(0)[len("http://") :]
        if host.startswith(_LOCAL_HOSTS) or host.startswith(_NAMESPACE_HOSTS) or not host:
            continue
        return LineMatch(column=match.start() + 1, values={"url": match.group(0)})
    return None


def _weak_crypto(line: str, ctx: LineContext) -> LineMatch | None:
    match = _WEAK_CRYPTO_RE.search(line)
    if match is None:
        return None
    return LineMatch(column=match.start() + 1, values={"name": match.group(0)})


def _banned_call(line: str, ctx: LineContext) -> LineMatch | None:
    match = _BANNED_CALL_RE.search(line)
    if match is None:
        return None
    return LineMatch(column=match.start() + 1, values={"name": match.group(0).rstrip("( ")})


def _credential_assignment(line: str, ctx: LineContext) -> LineMatch | None:
    if is_test_path(ctx.unit.path):
        return None
    for match in _CREDENTIAL_ASSIGN_RE.finditer(line):
        name = match.group("name").rsplit(".", 1)[-1]
        if looks_like_credential_name(name):
            return LineMatch(column=match.start() + 1, values={"name": name})
    return None


def _insecure_storage(line: str, ctx: LineContext) -> LineMatch | None:
    stores = ctx.profile.insecure_stores
    if not stores or is_test_path(ctx.unit.path) or not _SENSITIVE_VALUE_RE.search(line):
        return None
    for store in stores:
        column = line.find(store)
        if column >= 0:
            return LineMatch(column=column + 1, values={"store": store, "secure": ctx.profile.secure_store})
    return None


@lru_cache(maxsize=16)
def _touchable_pattern(names: tuple[str, ...]) -> re.Pattern[str]:
    alternatives = "|".join(re.escape(name) for name in names)
    return re.compile(rf"<(?P<tag>{alternatives})\b|\b(?P<call>{alternatives})\s*\(")


def _unlabeled_touchable(line: str, ctx: LineContext) -> LineMatch | None:
    profile = ctx.profile
    if not profile.touchables:
        return None
    match = _touchable_pattern(profile.touchables).search(line)
    if match is None:
        return None
    start = max(0, ctx.line_number - 1 - LABEL_WINDOW)
    nearby = ctx.lines[start : ctx.line_number + LABEL_WINDOW] or (line,)
    if any(label in text for text in nearby for label in profile.accessibility_labels):
        return None
    name = match.group("tag") or match.group("call")
    return LineMatch(column=match.start() + 1, values={"name": name, "label": profile.accessibility_labels[0]})


def _long_line(line: str, ctx: LineContext) -> LineMatch | None:
    length = len(line.rstrip("\r\n"))
    if length > MAX_LINE_LENGTH:
        return LineMatch(column=MAX_LINE_LENGTH + 1, values={"length": length})
    return None


def builtin_line_rules() -> list[Rule]:
    return [
        Rule(
            rule_id="S10",
            title="Insecure HTTP URL",
            category="security",
            severity="medium",
            description="Plain-text URL `{url}`.",
            suggestion="Use https:// for every non-local endpoint.",
            line_predicate=_insecure_http,
            references=("CWE-319", "A02:2021-Cryptographic Failures"),
        ),
        Rule(
            rule_id="S11",
            title="Weak cryptography",
            category="security",
            severity="high",
            description="Weak cryptographic primitive `{name}`.",
            suggestion="Use SHA-256 or stronger for hashing and AES-GCM for encryption.",
            line_predicate=_weak_crypto,
            references=("CWE-327", "A02:2021-Cryptographic Failures"),
        ),
        Rule(
            rule_id="S12",
            title="Dynamic code execution",
            category="security",
            severity="critical",
            description="`{name}()` executes dynamically built code.",
            suggestion="Avoid evaluating strings as code; dispatch to known functions or parse data explicitly.",
            line_predicate=_banned_call,
            references=("CWE-95", "A03:2021-Injection"),
            fallback_only=True,
        ),
        Rule(
            rule_id="S13",
            title="Hardcoded credential",
            category="security",
            severity="critical",
            description="`{name}` is assigned a hardcoded credential-like string literal.",
            suggestion="Load credentials from environment variables or a secret manager.",
            line_predicate=_credential_assignment,
            references=("CWE-259", "A07:2021-Identification and Authentication Failures"),
            fallback_only=True,
        ),
        Rule(
            rule_id="S06",
            title="Insecure data storage",
            category="security",
            severity="high",
            description="Credential-like data written to `{store}` without encryption; use {secure}.",
            suggestion="Keep passwords and tokens in the platform's encrypted credential store.",
            line_predicate=_insecure_storage,
            ecosystems=frozenset({"web", "flutter", "ios", "android"}),
            references=("CWE-922", "M9:2024-Insecure Data Storage"),
        ),
        Rule(
            rule_id="A02",
            title="Missing accessibility label",
            category="accessibility",
            severity="medium",
            description="`{name}` has no `{label}`, so screen readers cannot announce it.",
            suggestion="Give every tappable element a short accessibility label.",
            line_predicate=_unlabeled_touchable,
            ecosystems=frozenset({"web", "flutter", "ios", "android"}),
        ),
        Rule(
            rule_id="Q04",
            title="Long line",
            category="quality",
            severity="low",
            description="Line is {length} characters long.",
            suggestion=f"Keep lines within {MAX_LINE_LENGTH} characters.",
            line_predicate=_long_line,
        ),
    ]
