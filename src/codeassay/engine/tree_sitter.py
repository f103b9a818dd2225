from __future__ import annotations

import threading
from collections.abc import Callable
from functools import lru_cache
from typing import Any, Protocol, cast


class _ParserLike(Protocol):
    def parse(self, source: bytes) -> Any: ...


_parser_cls: Callable[[object], _ParserLike] | None
_get_language_func: Callable[[str], object] | None

try:  # pragma: no cover
    from tree_sitter import Parser as _TreeSitterParser
    from tree_sitter_language_pack import get_language as _tree_sitter_get_language
except (ImportError, OSError):  # pragma: no cover
    _parser_cls = None
    _get_language_func = None
else:  # pragma: no cover (depends on installed grammars)
    _parser_cls = cast(Callable[[object], _ParserLike], _TreeSitterParser)
    _get_language_func = cast(Callable[[str], object], _tree_sitter_get_language)

_TREE_SITTER_AVAILABLE = _parser_cls is not None and _get_language_func is not None

# Module attributes so tests can swap in fakes.
Parser: Callable[[object], _ParserLike] | None = _parser_cls
get_language: Callable[[str], object] | None = _get_language_func

_MISSING_DEPS = (
    "tree-sitter dependencies are not installed. Install `tree-sitter` and "
    "`tree-sitter-language-pack` to enable non-Python parsing."
)


class TreeSitterError(RuntimeError):
    """Raised when tree-sitter cannot load a grammar or parse source."""


@lru_cache(maxsize=32)
def _get_language(language: str) -> object:
    if not _TREE_SITTER_AVAILABLE or get_language is None:
        raise TreeSitterError(_MISSING_DEPS)
    try:
        return get_language(language)
    except Exception as exc:  # noqa: BLE001
        # The grammar pack raises its own error hierarchy (download, lookup, ABI).
        raise TreeSitterError(f"tree-sitter language not available: {language!r}: {exc}") from exc


_PARSER_LOCAL = threading.local()


def _get_parser(language: str) -> _ParserLike:
    """
    Return a per-thread Parser instance for the requested grammar.

    tree-sitter Parser objects are not thread-safe, so every worker thread
    builds its own.
    """

    if not _TREE_SITTER_AVAILABLE or Parser is None:
        raise TreeSitterError(_MISSING_DEPS)

    parsers: dict[str, _ParserLike] | None = getattr(_PARSER_LOCAL, "parsers", None)
    if parsers is None:
        parsers = {}
        _PARSER_LOCAL.parsers = parsers

    parser = parsers.get(language)
    if parser is not None:
        return parser

    lang = _get_language(language)
    try:
        parser = Parser(lang)
    except Exception as exc:  # noqa: BLE001
        raise TreeSitterError(f"cannot build tree-sitter parser for {language!r}: {exc}") from exc
    parsers[language] = parser
    return parser


def parse(language: str, source: bytes) -> Any:
    """
    Parse source bytes with the grammar named `language`.

    Raises `TreeSitterError` when the grammar is unavailable or the parser
    gives up; syntax errors are reported inside the returned tree.
    """

    parser = _get_parser(language)
    try:
        tree = parser.parse(source)
    except (ValueError, TypeError, RuntimeError) as exc:
        raise TreeSitterError(f"tree-sitter failed to parse {language!r} source: {exc}") from exc
    if tree is None:
        raise TreeSitterError(f"tree-sitter returned no tree for {language!r} source")
    return tree


def is_available() -> bool:
    return _TREE_SITTER_AVAILABLE
