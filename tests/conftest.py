from __future__ import annotations

import logging
from pathlib import Path

import pytest

from codeassay.config import CodeAssayConfig
from codeassay.scanner import ScanTarget


@pytest.fixture()
def project_target(tmp_path: Path) -> ScanTarget:
    (tmp_path / "pyproject.toml").write_text("[project]\nname = 'sample'\n", encoding="utf-8")
    return ScanTarget(project_root=tmp_path, scan_path=tmp_path, config=CodeAssayConfig())


@pytest.fixture(autouse=True)
def _isolate_worker_env(monkeypatch) -> None:
    monkeypatch.delenv("CODEASSAY_WORKERS", raising=False)


@pytest.fixture(autouse=True)
def _restore_root_logging():
    # CLI runs reconfigure the root logger against CliRunner's temporary streams.
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
