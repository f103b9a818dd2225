from __future__ import annotations

import re
from collections.abc import Iterable, Sequence

_BLOCK_COMMENTS = (("/*", "*/"), ("<!--", "-->"))

_IDENTIFIER_CAMEL_BOUNDARY_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_IDENTIFIER_ACRONYM_BOUNDARY_RE = re.compile(r"(?<=[A-Z])(?=[A-Z][a-z])")
_CONSTANT_NAME_RE = re.compile(r"^[A-Z][A-Z0-9_]*$")
_TEST_PATH_RE = re.compile(r"(^|/)(tests?|__tests__|spec)/|(^|/)test_[^/]*$|[._-](test|spec)\.[^/]+$")


def iter_code_lines(lines: Sequence[str], prefixes: Sequence[str]) -> Iterable[tuple[int, str]]:
    """
    Yield non-empty code lines with basic block-comment support.

    Only comments that start a line (after whitespace) are recognized; a line
    that mixes code and a trailing comment counts as code.
    """

    prefix_tuple = tuple(prefixes)
    blocks = [(start, end) for start, end in _BLOCK_COMMENTS if start in prefix_tuple]
    block_end: str | None = None
    for idx, line in enumerate(lines, start=1):
        stripped = line.strip()
        if not stripped:
            continue

        if block_end is not None:
            if block_end in stripped:
                block_end = None
            continue

        opened = next(((start, end) for start, end in blocks if stripped.startswith(start)), None)
        if opened is not None:
            start, end = opened
            if end not in stripped[len(start) :]:
                block_end = end
            continue
        if stripped.startswith(prefix_tuple):
            continue

        yield idx, line


def split_identifier_words(name: str) -> list[str]:
    if not name:
        return []

    spaced = name.replace("_", " ").replace("-", " ")
    spaced = _IDENTIFIER_ACRONYM_BOUNDARY_RE.sub(" ", spaced)
    spaced = _IDENTIFIER_CAMEL_BOUNDARY_RE.sub(" ", spaced)
    return [part.lower() for part in spaced.split() if part]


def looks_like_credential_name(name: str) -> bool:
    words = split_identifier_words(name)
    if not words:
        return False
    if "password" in words or "passwd" in words or "secret" in words or "token" in words:
        return True
    if "apikey" in words:
        return True
    for idx, word in enumerate(words[:-1]):
        if word == "api" and words[idx + 1] == "key":
            return True
    return False


def is_constant_name(name: str | None) -> bool:
    if not name:
        return False
    return bool(_CONSTANT_NAME_RE.match(name.rsplit(".", 1)[-1]))


def is_test_path(path: str) -> bool:
    return bool(_TEST_PATH_RE.search(path.replace("\\", "/")))
