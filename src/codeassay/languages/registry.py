from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePath


@dataclass(frozen=True, slots=True)
class LanguageSpec:
    name: str
    extensions: tuple[str, ...]
    ecosystem: str
    comment_prefixes: tuple[str, ...]
    grammar: str | None = None


_C_COMMENTS = ("//", "/*")

LANGUAGES: tuple[LanguageSpec, ...] = (
    LanguageSpec("python", (".py", ".pyi"), "python", ("#",)),
    LanguageSpec("javascript", (".js", ".jsx", ".mjs", ".cjs"), "web", _C_COMMENTS, "javascript"),
    LanguageSpec("typescript", (".ts", ".mts", ".cts"), "web", _C_COMMENTS, "typescript"),
    LanguageSpec("tsx", (".tsx",), "web", _C_COMMENTS, "tsx"),
    LanguageSpec("java", (".java",), "android", _C_COMMENTS, "java"),
    LanguageSpec("kotlin", (".kt", ".kts"), "android", _C_COMMENTS, "kotlin"),
    LanguageSpec("swift", (".swift",), "ios", _C_COMMENTS, "swift"),
    LanguageSpec("objc", (".m", ".mm", ".h"), "ios", _C_COMMENTS),
    LanguageSpec("dart", (".dart",), "flutter", _C_COMMENTS),
    LanguageSpec("html", (".html", ".htm"), "markup", ("<!--",), "html"),
    LanguageSpec("css", (".css",), "style", ("/*",), "css"),
)

UNKNOWN = LanguageSpec("unknown", (), "generic", _C_COMMENTS + ("#",))

_EXT_TO_LANG = {ext: spec.name for spec in LANGUAGES for ext in spec.extensions}
_BY_NAME = {spec.name: spec for spec in LANGUAGES}


def detect_language(path: PurePath | str) -> str | None:
    """
    Best-effort language detection based on file extension.

    Returns the canonical language name from `LANGUAGES` or None if unsupported.
    """

    suffix = PurePath(path).suffix.lower()
    return _EXT_TO_LANG.get(suffix)


def language_spec(name: str) -> LanguageSpec:
    return _BY_NAME.get(name, UNKNOWN)


def ecosystem_for(language: str) -> str:
    return language_spec(language).ecosystem


def language_names() -> tuple[str, ...]:
    return tuple(spec.name for spec in LANGUAGES)


def allowed_extensions(enabled_languages: tuple[str, ...]) -> set[str]:
    enabled = {lang.strip().lower() for lang in enabled_languages}
    exts: set[str] = set()
    for spec in LANGUAGES:
        if spec.name in enabled:
            exts.update(spec.extensions)
    return exts
