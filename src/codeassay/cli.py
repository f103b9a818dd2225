from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Annotated

import click
import typer
from rich.console import Console

from codeassay import __version__
from codeassay.audit import AuditCallbacks, AuditResult, audit_files
from codeassay.config import ConfigError
from codeassay.logging_utils import configure_logging
from codeassay.reporters.json_reporter import render_json
from codeassay.reporters.terminal import render_terminal
from codeassay.scanner import discover_files, prepare_target

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    help="CodeAssay: multi-language static code quality assessment.",
)
console = Console()
err_console = Console(stderr=True)
logger = logging.getLogger(__name__)

_FORMATS = ("terminal", "json")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit()


@app.callback()
def _main(
    ctx: typer.Context,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Verbose logs (printed to stderr)."),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option("--quiet", "-q", help="Reduce non-essential output."),
    ] = False,
    progress: Annotated[
        bool,
        typer.Option("--progress/--no-progress", help="Show a progress bar for long scans.", show_default=True),
    ] = True,
) -> None:
    """CodeAssay CLI."""

    if verbose and quiet:
        raise typer.BadParameter("Choose at most one: --verbose or --quiet.")
    configure_logging(verbose=verbose, quiet=quiet)
    ctx.obj = {"verbose": verbose, "quiet": quiet, "progress": progress}


def _cli_settings() -> dict[str, bool]:
    ctx = click.get_current_context(silent=True)
    if ctx is None or not isinstance(ctx.obj, dict):
        return {"verbose": False, "quiet": False, "progress": True}
    return {
        "verbose": bool(ctx.obj.get("verbose", False)),
        "quiet": bool(ctx.obj.get("quiet", False)),
        "progress": bool(ctx.obj.get("progress", True)),
    }


def _normalize_format(output_format: str) -> str:
    normalized = output_format.strip().lower()
    if normalized not in _FORMATS:
        raise typer.BadParameter(f"Unsupported format. Use: {', '.join(_FORMATS)}.")
    return normalized


def _audit_with_optional_progress(
    path: Path,
    *,
    show_progress: bool,
    workers: int | None,
    timeout: float | None,
    duplication: bool | None,
) -> AuditResult:
    from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn, TimeElapsedColumn

    target = prepare_target(path)
    files = discover_files(target)
    logger.debug("discovered %d candidate file(s)", len(files))

    if not show_progress:
        return audit_files(target, files=files, workers=workers, timeout=timeout, duplication=duplication)

    progress = Progress(
        TextColumn("{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TimeElapsedColumn(),
        console=Console(stderr=True),
        transient=True,
    )
    load_task = progress.add_task("Load", total=len(files))
    analyze_task = progress.add_task("Analyze", total=1)

    def _on_loaded(_path: Path) -> None:
        progress.advance(load_task, 1)

    def _on_ready(total: int) -> None:
        progress.update(analyze_task, total=total, completed=0)

    def _on_analyzed(_path: str) -> None:
        progress.advance(analyze_task, 1)

    callbacks = AuditCallbacks(
        on_file_loaded=_on_loaded,
        on_units_ready=_on_ready,
        on_file_analyzed=_on_analyzed,
    )
    with progress:
        return audit_files(
            target,
            files=files,
            workers=workers,
            timeout=timeout,
            duplication=duplication,
            callbacks=callbacks,
        )


@app.command()
def scan(
    path: Annotated[
        Path,
        typer.Argument(
            exists=True,
            file_okay=True,
            dir_okay=True,
            resolve_path=True,
            help="File or directory to assess (default: current directory).",
        ),
    ] = Path("."),
    output_format: Annotated[
        str,
        typer.Option("--format", help="Output format: terminal, json.", show_default=True),
    ] = "terminal",
    threshold: Annotated[
        int | None,
        typer.Option("--threshold", min=0, max=100, help="Minimum acceptable overall score (0-100)."),
    ] = None,
    fail_under: Annotated[
        int | None,
        typer.Option("--fail-under", min=0, max=100, help="Exit 1 when the overall score is below N."),
    ] = None,
    workers: Annotated[
        int | None,
        typer.Option("--workers", min=1, help="Worker threads (default: config, then CODEASSAY_WORKERS)."),
    ] = None,
    timeout: Annotated[
        float | None,
        typer.Option("--timeout", min=0.001, help="Overall time limit in seconds; late files are not analyzed."),
    ] = None,
    no_duplication: Annotated[
        bool,
        typer.Option("--no-duplication", help="Skip duplicated-code detection."),
    ] = False,
) -> None:
    """Assess a file or directory and report issues, duplication and scores."""

    settings = _cli_settings()
    normalized = _normalize_format(output_format)
    try:
        result = _audit_with_optional_progress(
            path,
            show_progress=settings["progress"] and not settings["quiet"] and normalized == "terminal",
            workers=workers,
            timeout=timeout,
            duplication=False if no_duplication else None,
        )
    except ConfigError as exc:
        err_console.print(f"Invalid configuration: {exc}", markup=False)
        raise typer.Exit(code=2) from exc

    config = result.target.config
    effective_threshold = (
        fail_under if fail_under is not None else (threshold if threshold is not None else config.threshold)
    )
    should_fail = fail_under is not None or config.fail_under_threshold

    if normalized == "json":
        typer.echo(render_json(result.assessment))
    else:
        render_terminal(result.assessment, console=console, show_details=not settings["quiet"])

    if should_fail and result.assessment.summary.overall < effective_threshold:
        raise typer.Exit(code=1)


@app.command()
def rules(
    path: Annotated[
        Path,
        typer.Argument(
            exists=True,
            file_okay=False,
            dir_okay=True,
            resolve_path=True,
            help="Project directory used to load config (default: current directory).",
        ),
    ] = Path("."),
    output_format: Annotated[
        str,
        typer.Option("--format", help="Output format: terminal, json.", show_default=True),
    ] = "terminal",
) -> None:
    """List the built-in rules and whether the current config enables them."""

    from rich.table import Table

    from codeassay.config import compute_enabled_rule_ids
    from codeassay.rules.registry import builtin_rules, rule_ids

    normalized = _normalize_format(output_format)
    try:
        target = prepare_target(path)
    except ConfigError as exc:
        err_console.print(f"Invalid configuration: {exc}", markup=False)
        raise typer.Exit(code=2) from exc
    enabled_ids = compute_enabled_rule_ids(target.config, available_rule_ids=rule_ids())
    overrides = target.config.rules.severity_overrides

    rows = [
        {
            "rule_id": rule.rule_id,
            "enabled": rule.rule_id in enabled_ids,
            "title": rule.title,
            "category": rule.category,
            "severity": overrides.get(rule.rule_id, rule.severity),
            "ecosystems": sorted(rule.ecosystems) if rule.ecosystems is not None else ["*"],
            "references": list(rule.references),
        }
        for rule in sorted(builtin_rules(), key=lambda r: r.rule_id)
    ]

    if normalized == "json":
        typer.echo(json.dumps(rows, indent=2, sort_keys=True))
        return

    table = Table(title="CodeAssay Rules")
    table.add_column("ID", style="bold")
    table.add_column("Enabled", justify="center")
    table.add_column("Severity")
    table.add_column("Category")
    table.add_column("Ecosystems")
    table.add_column("Title")
    for row in rows:
        table.add_row(
            str(row["rule_id"]),
            "yes" if row["enabled"] else "no",
            str(row["severity"]),
            str(row["category"]),
            ", ".join(row["ecosystems"]),
            str(row["title"]),
        )
    console.print(table)
