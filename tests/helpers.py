from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from codeassay.engine.analyzer import analyze
from codeassay.engine.types import FileAnalysis, SourceUnit


def write_source(root: Path, relpath: str, content: str) -> Path:
    path = root / relpath
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def analyze_text(path: str, text: str) -> FileAnalysis:
    return analyze(SourceUnit.from_text(path, text))


def rule_ids_of(analysis: FileAnalysis) -> list[str]:
    return [issue.rule_id for issue in analysis.issues]


@dataclass
class FakeTsNode:
    """Just enough of a tree-sitter node for the converter."""

    type: str
    start_byte: int = 0
    end_byte: int = 0
    start_point: tuple[int, int] = (0, 0)
    end_point: tuple[int, int] = (0, 0)
    children: list[FakeTsNode] = field(default_factory=list)
    fields: dict[str, FakeTsNode] = field(default_factory=dict)
    is_named: bool = True
    is_missing: bool = False
    has_error: bool = False

    def child_by_field_name(self, name: str) -> Any:
        return self.fields.get(name)


def ts_leaf(source: str, text: str, type_: str, *, is_named: bool = True) -> FakeTsNode:
    start = source.index(text)
    return FakeTsNode(
        type=type_,
        start_byte=start,
        end_byte=start + len(text),
        start_point=(0, start),
        end_point=(0, start + len(text)),
        is_named=is_named,
    )
