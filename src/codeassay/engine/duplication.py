"""
Near-duplicate code detection across source units.

Each unit is cut into blocks of consecutive "meaningful" lines. Every pair of
blocks is scored by greedy line matching on two normal forms: the canonical
line (whitespace, quotes, digits and case folded) and its structural shape
(identifiers and literals replaced by placeholders).
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from functools import partial

from codeassay.config import DuplicationConfig
from codeassay.engine.types import (
    CodeBlock,
    Duplication,
    DuplicationKind,
    DuplicationSeverity,
    DuplicationSummary,
    SourceUnit,
    check_unit,
)
from codeassay.languages.ecosystems import EcosystemProfile, profile_for
from codeassay.languages.registry import language_spec
from codeassay.rules.utils import iter_code_lines

logger = logging.getLogger(__name__)

EXACT_SIMILARITY = 95.0
SHAPE_MATCH_WEIGHT = 0.9
SHAPE_MATCH_CAP = 94.0
_PAIRS_PER_SHARD = 256

_IMPACT: dict[DuplicationSeverity, str] = {
    "high": "High maintenance burden - changes need to be made in multiple places",
    "medium": "Moderate maintenance overhead and potential for inconsistencies",
    "low": "Minor code duplication that could be optimized",
}
_EFFORT_MULTIPLIER: dict[DuplicationKind, float] = {"exact": 0.5, "similar": 0.8, "cross-language": 1.0}

_CONTROL_FLOW_RE = re.compile(
    r"\b(if|else|elif|for|while|switch|case|return|break|continue|try|catch|except|finally"
    r"|throw|raise|yield|await|do|when|guard|with)\b"
)
_DECLARATION_RE = re.compile(
    r"\b(def|class|function|func|fun|const|let|var|val|struct|enum|interface|public|private|protected|static|void)\b"
)
_ASSIGN_OR_CALL_RE = re.compile(r"[\w\])]\s*(?:\*\*|//|[-+*/%|&^])?=(?!=)|\w\s*\(")
_IMPORT_PREFIXES = ("import ", "package ", "#import", "#include", "@import", "using ", "library ", "part ")
_FROM_IMPORT_RE = re.compile(r"^from\s+\S+\s+import\b")
_CLOSING_ONLY_RE = re.compile(r"^[\]\)\};,]+$")

_WS_RE = re.compile(r"\s+")
_DIGITS_RE = re.compile(r"\d+")
_SHAPE_TOKEN_RE = re.compile(r"\"[^\"]*\"|[a-z_$][\w$]*")
_SHAPE_KEYWORDS = frozenset(
    """
    and as async await break case catch class const continue def do elif else except false finally for from
    fun func function guard if import in is let new nil none not null of or private protected public raise
    return self static struct switch this throw true try undefined val var void when while with yield
    """.split()
)


def normalize_line(line: str) -> str:
    text = _WS_RE.sub(" ", line.strip())
    text = text.replace("'", '"').replace("`", '"')
    text = _DIGITS_RE.sub("N", text)
    return text.lower()


def structural_shape(canonical: str) -> str:
    def replace(match: re.Match[str]) -> str:
        token = match.group(0)
        if token.startswith('"'):
            return "STR"
        if token == "n":
            return "N"
        if token in _SHAPE_KEYWORDS:
            return token
        return "VAR"

    return _SHAPE_TOKEN_RE.sub(replace, canonical)


def is_meaningful_line(stripped: str, profile: EcosystemProfile) -> bool:
    if not stripped:
        return False
    if stripped.startswith(_IMPORT_PREFIXES) or _FROM_IMPORT_RE.match(stripped):
        return False
    if any(marker in stripped for marker in profile.substantive_markers):
        return True
    if _CONTROL_FLOW_RE.search(stripped) or _DECLARATION_RE.search(stripped):
        return True
    return bool(_ASSIGN_OR_CALL_RE.search(stripped))


def extract_blocks(unit: SourceUnit, *, min_lines: int = 5, max_lines: int = 100) -> list[CodeBlock]:
    lines = unit.text.splitlines()
    profile = profile_for(unit.ecosystem)
    code = dict(iter_code_lines(lines, language_spec(unit.language).comment_prefixes))

    blocks: list[CodeBlock] = []
    run: list[tuple[int, str]] = []

    def flush() -> None:
        if min_lines <= len(run) <= max_lines:
            blocks.append(_make_block(unit, run))
        run.clear()

    for number in range(1, len(lines) + 1):
        line = code.get(number)
        if line is None:
            flush()
            continue
        stripped = line.strip()
        if _CLOSING_ONLY_RE.match(stripped):
            # closing brackets neither extend nor break a run
            continue
        if is_meaningful_line(stripped, profile):
            run.append((number, stripped))
        else:
            flush()
    flush()
    return blocks


def _make_block(unit: SourceUnit, run: list[tuple[int, str]]) -> CodeBlock:
    texts = tuple(text for _, text in run)
    canonical = tuple(normalize_line(text) for text in texts)
    return CodeBlock(
        path=unit.path,
        language=unit.language,
        ecosystem=unit.ecosystem,
        line_start=run[0][0],
        line_end=run[-1][0],
        lines=texts,
        canonical=canonical,
        shapes=tuple(structural_shape(text) for text in canonical),
    )


def _index(values: tuple[str, ...]) -> dict[str, list[int]]:
    index: dict[str, list[int]] = {}
    for position, value in enumerate(values):
        index.setdefault(value, []).append(position)
    return index


def _directional_score(a: CodeBlock, b: CodeBlock) -> tuple[float, int]:
    """Weighted matched-line score of `a` against `b`, and how many matches were shape-only."""

    by_canonical = _index(b.canonical)
    by_shape = _index(b.shapes)
    used: set[int] = set()

    def take(index: dict[str, list[int]], key: str) -> bool:
        for position in index.get(key, ()):
            if position not in used:
                used.add(position)
                return True
        return False

    score = 0.0
    shape_only = 0
    for canonical, shape in zip(a.canonical, a.shapes, strict=True):
        if take(by_canonical, canonical):
            score += 1.0
        elif take(by_shape, shape):
            score += SHAPE_MATCH_WEIGHT
            shape_only += 1
    return score, shape_only


def similarity(a: CodeBlock, b: CodeBlock) -> float:
    """
    Symmetric similarity percentage between two blocks (0-100).

    Only canonical line matches can reach the exact band: a pair that needed
    any shape-only match is capped at `SHAPE_MATCH_CAP`.
    """

    longest = max(a.size, b.size)
    if longest == 0:
        return 0.0
    forward, forward_shapes = _directional_score(a, b)
    backward, backward_shapes = _directional_score(b, a)
    score = round(min(forward, backward) / longest * 100, 2)
    if forward_shapes or backward_shapes:
        score = min(score, SHAPE_MATCH_CAP)
    return score


def classify(a: CodeBlock, b: CodeBlock, score: float) -> DuplicationKind:
    if a.ecosystem != b.ecosystem:
        return "cross-language"
    return "exact" if score >= EXACT_SIMILARITY else "similar"


def severity_for(score: float, size: int) -> DuplicationSeverity:
    if score >= EXACT_SIMILARITY and size > 20:
        return "high"
    if score >= 80 and size > 10:
        return "medium"
    return "low"


def estimate_effort(kind: DuplicationKind, size: int) -> float:
    return math.ceil(size / 50) * _EFFORT_MULTIPLIER[kind]


def candidate_pairs(blocks: Sequence[CodeBlock], threshold: float) -> list[tuple[int, int]]:
    """
    All block pairs that could reach `threshold`, in (i, j) order.

    A pair whose size ratio is below threshold/100 can never reach it, since
    the matched score is bounded by the smaller block.
    """

    order = sorted(range(len(blocks)), key=lambda index: (blocks[index].size, index))
    pairs: list[tuple[int, int]] = []
    for position, small in enumerate(order):
        small_size = blocks[small].size
        for large in order[position + 1 :]:
            if small_size * 100 < threshold * blocks[large].size:
                break
            pairs.append((min(small, large), max(small, large)))
    pairs.sort()
    return pairs


def _compare_shard(
    blocks: Sequence[CodeBlock], threshold: float, shard: Sequence[tuple[int, int]]
) -> list[Duplication]:
    found: list[Duplication] = []
    for i, j in shard:
        duplication = compare(blocks[i], blocks[j], threshold=threshold)
        if duplication is not None:
            found.append(duplication)
    return found


def compare(a: CodeBlock, b: CodeBlock, *, threshold: float = 80) -> Duplication | None:
    score = similarity(a, b)
    if score < threshold:
        return None
    kind = classify(a, b, score)
    size = max(a.size, b.size)
    severity = severity_for(score, size)
    if kind == "cross-language":
        title = f"Cross-language duplication between {a.ecosystem} and {b.ecosystem}"
        suggestion = (
            "Consider creating a shared business logic layer or utility functions "
            f"between {a.ecosystem} and {b.ecosystem}."
        )
    else:
        title = f"{'Exact' if kind == 'exact' else 'Similar'} code duplication in {a.ecosystem}"
        suggestion = profile_for(a.ecosystem).duplication_suggestion
    return Duplication(
        kind=kind,
        similarity=score,
        severity=severity,
        blocks=(a, b),
        title=title,
        description=(
            f"{score:.1f}% similar: {a.path}:{a.line_start}-{a.line_end} "
            f"and {b.path}:{b.line_start}-{b.line_end}."
        ),
        suggestion=suggestion,
        impact=_IMPACT[severity],
        estimated_effort=estimate_effort(kind, size),
    )


def detect(
    units: Sequence[SourceUnit],
    *,
    config: DuplicationConfig | None = None,
    workers: int | None = None,
) -> list[Duplication]:
    """
    Find duplicated blocks across `units`.

    Extraction runs per unit and comparison starts only after every unit is
    extracted. Output order depends only on input order, not on `workers`.
    """

    unit_list = list(units)
    for index, unit in enumerate(unit_list):
        check_unit(unit, label=f"unit #{index}")
    config = config or DuplicationConfig()
    if not config.enabled:
        return []

    effective_workers = max(1, workers or 1)
    extract = partial(extract_blocks, min_lines=config.min_lines, max_lines=config.max_lines)

    if effective_workers <= 1 or len(unit_list) <= 1:
        per_unit = [extract(unit) for unit in unit_list]
    else:
        with ThreadPoolExecutor(max_workers=min(effective_workers, len(unit_list))) as executor:
            per_unit = list(executor.map(extract, unit_list))

    blocks = [block for unit_blocks in per_unit for block in unit_blocks]
    pairs = candidate_pairs(blocks, config.threshold)
    logger.debug("Duplication: %d block(s), %d candidate pair(s).", len(blocks), len(pairs))

    shards = [pairs[start : start + _PAIRS_PER_SHARD] for start in range(0, len(pairs), _PAIRS_PER_SHARD)]
    compare_shard = partial(_compare_shard, blocks, config.threshold)
    if effective_workers <= 1 or len(shards) <= 1:
        results = [compare_shard(shard) for shard in shards]
    else:
        with ThreadPoolExecutor(max_workers=min(effective_workers, len(shards))) as executor:
            results = list(executor.map(compare_shard, shards))

    return [duplication for shard_result in results for duplication in shard_result]


def summarize_duplications(duplications: Sequence[Duplication]) -> DuplicationSummary:
    return DuplicationSummary(
        total=len(duplications),
        exact=sum(1 for d in duplications if d.kind == "exact"),
        similar=sum(1 for d in duplications if d.kind == "similar"),
        cross_language=sum(1 for d in duplications if d.kind == "cross-language"),
        high=sum(1 for d in duplications if d.severity == "high"),
        medium=sum(1 for d in duplications if d.severity == "medium"),
        low=sum(1 for d in duplications if d.severity == "low"),
        estimated_effort=round(sum(d.estimated_effort for d in duplications), 2),
    )
