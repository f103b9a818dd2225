from __future__ import annotations

import logging
import os
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from functools import partial
from pathlib import Path

from codeassay.config import CodeAssayConfig, load_config, path_is_ignored
from codeassay.engine.types import InvalidInputError, SourceUnit
from codeassay.languages.registry import allowed_extensions, detect_language

logger = logging.getLogger(__name__)

DEFAULT_SKIP_DIRS = {
    ".git",
    ".hg",
    ".svn",
    ".idea",
    ".vscode",
    ".venv",
    "venv",
    "node_modules",
    "bower_components",
    "vendor",
    "Pods",
    ".dart_tool",
    ".gradle",
    "dist",
    "build",
    "coverage",
    "__pycache__",
}
_MINIFIED_MARKERS = (".min.js", ".min.css", ".bundle.js")

CODEASSAY_WORKERS_ENV = "CODEASSAY_WORKERS"
DEFAULT_MAX_WORKERS = 32


@dataclass(frozen=True, slots=True)
class ScanTarget:
    project_root: Path
    scan_path: Path
    config: CodeAssayConfig


def resolve_worker_count(
    raw_value: str | None,
    *,
    default: int | None = None,
    max_workers: int = DEFAULT_MAX_WORKERS,
) -> int:
    """
    Resolve a safe worker count from an env var-style string.

    - None/""/"auto" fall back to the default
    - Values <= 0 or non-integers fall back to the default
    - Values above `max_workers` are clamped
    """

    cpu = os.cpu_count() or 1
    fallback = min(max(1, default if default is not None else cpu * 2), max_workers)
    if raw_value is None:
        return fallback

    normalized = raw_value.strip().lower()
    if not normalized or normalized in {"auto", "default"}:
        return fallback
    try:
        workers = int(normalized)
    except ValueError:
        return fallback
    if workers <= 0:
        return fallback
    return min(workers, max_workers)


def worker_count_from_env(*, default: int | None = None) -> int:
    return resolve_worker_count(os.environ.get(CODEASSAY_WORKERS_ENV), default=default)


def prepare_target(scan_path: Path) -> ScanTarget:
    """Resolve the project root (nearest pyproject.toml) and load its configuration."""

    scan_path = scan_path.resolve()
    project_root = _detect_project_root(scan_path)
    return ScanTarget(project_root=project_root, scan_path=scan_path, config=load_config(project_root))


def _is_minified(path: Path) -> bool:
    return path.name.lower().endswith(_MINIFIED_MARKERS)


def discover_files(target: ScanTarget) -> list[Path]:
    scan_path = target.scan_path
    root = target.project_root
    ignore_patterns = target.config.ignore.paths
    allowed_exts = allowed_extensions(target.config.languages)

    def accept(path: Path) -> bool:
        if path.suffix.lower() not in allowed_exts or detect_language(path) is None:
            return False
        if _is_minified(path):
            return False
        return not path_is_ignored(path, project_root=root, ignore_patterns=ignore_patterns)

    if scan_path.is_file():
        return [scan_path] if accept(scan_path) else []

    files: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(scan_path, topdown=True):
        dirnames[:] = [d for d in dirnames if d not in DEFAULT_SKIP_DIRS]
        base = Path(dirpath)
        files.extend(path for path in (base / name for name in filenames) if accept(path))

    logger.debug("Discovered %d file(s) under %s", len(files), scan_path)
    return sorted(set(files))


def relative_path(path: Path, root: Path) -> str:
    """POSIX path relative to `root` when possible, else the path as given."""

    try:
        return path.resolve().relative_to(root.resolve()).as_posix()
    except (OSError, ValueError):
        return path.as_posix()


def load_unit(path: Path, *, project_root: Path) -> SourceUnit | None:
    try:
        data = path.read_bytes()
    except OSError as exc:
        logger.warning("Cannot read %s: %s", path, exc)
        return None
    try:
        return SourceUnit.from_bytes(relative_path(path, project_root), data)
    except InvalidInputError as exc:
        logger.warning("Skipping %s", exc)
        return None


def load_units(
    paths: list[Path],
    *,
    project_root: Path,
    workers: int = 1,
    on_path_done: Callable[[Path], None] | None = None,
) -> list[SourceUnit]:
    """
    Read files into `SourceUnit`s, optionally in parallel.

    Output follows the input `paths` order, with unreadable or undecodable
    files dropped.
    """

    load = partial(load_unit, project_root=project_root)
    units: list[SourceUnit] = []
    if workers <= 1 or len(paths) <= 1:
        loaded = map(load, paths)
        for path, unit in zip(paths, loaded, strict=True):
            if on_path_done is not None:
                on_path_done(path)
            if unit is not None:
                units.append(unit)
        return units

    with ThreadPoolExecutor(max_workers=min(workers, len(paths))) as executor:
        for path, unit in zip(paths, executor.map(load, paths), strict=True):
            if on_path_done is not None:
                on_path_done(path)
            if unit is not None:
                units.append(unit)
    return units


def _detect_project_root(start: Path) -> Path:
    # Closest directory holding a pyproject.toml, so monorepo packages keep their own config.
    base = start if start.is_dir() else start.parent
    for candidate in (base, *base.parents):
        if (candidate / "pyproject.toml").exists():
            return candidate
    return base
