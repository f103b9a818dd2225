from __future__ import annotations

from collections import defaultdict

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from codeassay import __version__
from codeassay.engine.scoring import format_scores_terminal
from codeassay.engine.types import Assessment, Duplication, Issue

_SEVERITY_ICON = {"critical": "✖", "high": "✖", "medium": "⚠", "low": "ℹ"}
_SEVERITY_STYLE = {"critical": "bold red", "high": "red", "medium": "yellow", "low": "dim"}
_SEVERITY_RANK = {"critical": 0, "high": 1, "medium": 2, "low": 3}


def render_terminal(assessment: Assessment, *, console: Console, show_details: bool = True) -> None:
    header = Text()
    header.append("CodeAssay ", style="bold")
    header.append(f"v{__version__}", style="dim")
    header.append(" · code quality assessment", style="dim")

    console.print(
        Panel(
            header,
            subtitle=f"Analyzed {len(assessment.files)} files",
            border_style="cyan",
        )
    )

    if not show_details:
        _print_summary(assessment, console=console)
        return

    by_file: dict[str, list[Issue]] = defaultdict(list)
    for issue in assessment.issues:
        by_file[issue.path].append(issue)

    for path in sorted(by_file):
        console.print(Text(path, style="bold"))
        for issue in sorted(by_file[path], key=_sort_key):
            _print_issue(console, issue)
        console.print()

    if assessment.duplications:
        console.print(Text("Duplicated code", style="bold"))
        for dup in assessment.duplications:
            _print_duplication(console, dup)
        console.print()

    if assessment.recommendations:
        table = Table(title="Recommendations")
        table.add_column("Priority", style="bold")
        table.add_column("Category")
        table.add_column("Title")
        table.add_column("Effort (h)", justify="right")
        table.add_column("Files", justify="right")
        for rec in assessment.recommendations:
            table.add_row(
                rec.priority,
                rec.category,
                rec.title,
                f"{rec.estimated_effort_hours:g}",
                str(len(rec.files)),
            )
        console.print(table)

    _print_summary(assessment, console=console)


def _print_issue(console: Console, issue: Issue) -> None:
    icon = _SEVERITY_ICON.get(issue.severity, "•")
    style = _SEVERITY_STYLE.get(issue.severity, "")

    loc = f"{issue.line}"
    if issue.column is not None:
        loc += f":{issue.column}"

    line = Text()
    line.append(f"  {icon} ", style=style)
    line.append(issue.rule_id, style="bold")
    line.append(f"  ({loc})", style="dim")
    line.append(f"  {issue.title}")
    console.print(line)

    if issue.code:
        console.print(f"     {issue.line:>4} │ {issue.code}", style="dim", markup=False)
    if issue.suggestion:
        console.print(f"     → {issue.suggestion}", style="dim", markup=False)


def _print_duplication(console: Console, dup: Duplication) -> None:
    style = _SEVERITY_STYLE.get(dup.severity, "")
    line = Text()
    line.append(f"  {dup.duplication_id or 'DUP'} ", style="bold")
    line.append(f"[{dup.kind}, {dup.severity}] ", style=style)
    line.append(dup.title)
    console.print(line)
    for block in dup.blocks:
        console.print(f"     {block.path}:{block.line_start}-{block.line_end}", style="dim", markup=False)
    console.print(f"     → {dup.suggestion}", style="dim", markup=False)


def _print_summary(assessment: Assessment, *, console: Console) -> None:
    summary = assessment.summary
    dup_summary = assessment.duplication_summary
    console.print(Text("─" * 60, style="dim"))
    console.print(Text(f"Score: {summary.overall}/100", style="bold"))
    console.print(Text(f"Categories: {format_scores_terminal(summary)}", style="dim"))
    counts = ", ".join(f"{severity}={count}" for severity, count in summary.severity_counts.items())
    console.print(Text(f"Issues: {len(assessment.issues)} ({counts})", style="dim"))
    if dup_summary.total:
        console.print(
            Text(
                f"Duplications: {dup_summary.total} "
                f"(exact={dup_summary.exact} similar={dup_summary.similar} "
                f"cross-language={dup_summary.cross_language}), "
                f"effort ≈ {dup_summary.estimated_effort:g}h",
                style="dim",
            )
        )
    if assessment.degraded_files:
        console.print(Text(f"Degraded: {', '.join(assessment.degraded_files)}", style="yellow"))
    if assessment.not_analyzed:
        console.print(Text(f"Not analyzed (time limit): {', '.join(assessment.not_analyzed)}", style="yellow"))
    console.print(Text("─" * 60, style="dim"))


def _sort_key(issue: Issue) -> tuple[int, int, str]:
    return _SEVERITY_RANK.get(issue.severity, 4), issue.line, issue.rule_id
