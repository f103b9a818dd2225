from __future__ import annotations

import os
from dataclasses import replace
from pathlib import Path

from helpers import write_source

from codeassay.config import IgnoreConfig
from codeassay.scanner import (
    discover_files,
    load_units,
    prepare_target,
    relative_path,
    resolve_worker_count,
    worker_count_from_env,
)


def test_resolve_worker_count_default_uses_cpu_times_two(monkeypatch) -> None:
    monkeypatch.setattr(os, "cpu_count", lambda: 4)
    assert resolve_worker_count(None) == 8


def test_resolve_worker_count_default_is_clamped_to_max(monkeypatch) -> None:
    monkeypatch.setattr(os, "cpu_count", lambda: 64)
    assert resolve_worker_count(None) == 32


def test_resolve_worker_count_respects_default_param(monkeypatch) -> None:
    monkeypatch.setattr(os, "cpu_count", lambda: 64)
    assert resolve_worker_count(None, default=3) == 3


def test_resolve_worker_count_parses_env_values(monkeypatch) -> None:
    monkeypatch.setattr(os, "cpu_count", lambda: 2)
    assert resolve_worker_count("auto") == 4
    assert resolve_worker_count(" 6 ") == 6
    assert resolve_worker_count("0") == 4
    assert resolve_worker_count("many") == 4
    assert resolve_worker_count("500") == 32


def test_worker_count_from_env(monkeypatch) -> None:
    monkeypatch.setenv("CODEASSAY_WORKERS", "3")
    assert worker_count_from_env() == 3


def test_discover_files_skips_vendor_dirs_minified_and_unknown_files(project_target) -> None:
    root: Path = project_target.project_root
    write_source(root, "src/app.py", "x = 1\n")
    write_source(root, "web/index.js", "let x = 1;\n")
    write_source(root, "web/app.min.js", "let x=1;\n")
    write_source(root, "node_modules/pkg/index.js", "let x = 1;\n")
    write_source(root, "build/out.py", "x = 1\n")
    write_source(root, "README.md", "# readme\n")

    files = discover_files(project_target)

    assert [relative_path(path, root) for path in files] == ["src/app.py", "web/index.js"]


def test_discover_files_honors_languages_and_ignore(project_target) -> None:
    root: Path = project_target.project_root
    write_source(root, "src/app.py", "x = 1\n")
    write_source(root, "generated/api.py", "x = 1\n")
    write_source(root, "web/index.js", "let x = 1;\n")
    config = replace(project_target.config, languages=("python",), ignore=IgnoreConfig(paths=("generated/",)))

    files = discover_files(replace(project_target, config=config))

    assert [relative_path(path, root) for path in files] == ["src/app.py"]


def test_discover_single_file(project_target) -> None:
    root: Path = project_target.project_root
    path = write_source(root, "src/app.py", "x = 1\n")
    target = replace(project_target, scan_path=path)
    assert discover_files(target) == [path]


def test_prepare_target_uses_nearest_pyproject(tmp_path: Path) -> None:
    (tmp_path / "pyproject.toml").write_text("[tool.codeassay]\nthreshold = 10\n", encoding="utf-8")
    package = tmp_path / "packages" / "core"
    package.mkdir(parents=True)
    (package / "pyproject.toml").write_text("[tool.codeassay]\nthreshold = 90\n", encoding="utf-8")
    (package / "src").mkdir()

    target = prepare_target(package / "src")

    assert target.project_root == package.resolve()
    assert target.config.threshold == 90


def test_load_units_keeps_order_and_drops_undecodable_files(project_target) -> None:
    root: Path = project_target.project_root
    paths = [write_source(root, f"src/m{i}.py", f"x = {i}\n") for i in range(4)]
    binary = root / "src" / "blob.py"
    binary.write_bytes(b"\xff\xfe\x00\x01")
    done: list[Path] = []

    units = load_units([*paths, binary], project_root=root, workers=3, on_path_done=done.append)

    assert [unit.path for unit in units] == ["src/m0.py", "src/m1.py", "src/m2.py", "src/m3.py"]
    assert units[0].language == "python"
    assert len(done) == 5
