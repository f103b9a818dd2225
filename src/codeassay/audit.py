from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, replace
from pathlib import Path

from codeassay.config import CodeAssayConfig, compute_enabled_rule_ids
from codeassay.engine.batch import Clock, analyze_batch
from codeassay.engine.duplication import detect
from codeassay.engine.scoring import aggregate
from codeassay.engine.types import Assessment, Issue, SourceUnit
from codeassay.rules.registry import RuleSet, build_rule_set, rule_ids
from codeassay.scanner import ScanTarget, discover_files, load_units, prepare_target, worker_count_from_env

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AuditResult:
    target: ScanTarget
    files: tuple[Path, ...]
    assessment: Assessment


@dataclass(frozen=True, slots=True)
class AuditCallbacks:
    on_file_loaded: Callable[[Path], None] | None = None
    on_units_ready: Callable[[int], None] | None = None
    on_file_analyzed: Callable[[str], None] | None = None


def rule_set_for(config: CodeAssayConfig) -> RuleSet:
    available = rule_ids()
    for rule_id in sorted(set(config.rules.severity_overrides) - available):
        logger.warning("unknown rule id in severity overrides: %s", rule_id)
    enabled = compute_enabled_rule_ids(config, available_rule_ids=available)
    overrides = {k: v for k, v in config.rules.severity_overrides.items() if k in available}
    if enabled == available and not overrides:
        return build_rule_set()
    return build_rule_set(enabled, overrides)


def assess_units(
    units: Sequence[SourceUnit],
    *,
    config: CodeAssayConfig | None = None,
    workers: int | None = None,
    timeout: float | None = None,
    clock: Clock = time.monotonic,
    extra_issues: Iterable[Issue] = (),
    on_file_analyzed: Callable[[str], None] | None = None,
) -> Assessment:
    """
    Run the full pipeline over in-memory units.

    Per-file analysis, then duplication detection over every analyzed unit,
    then aggregation into one `Assessment`.
    """

    config = config or CodeAssayConfig()
    workers = workers if workers is not None else (config.workers or 1)
    timeout = timeout if timeout is not None else config.timeout

    analyses = analyze_batch(
        units,
        rules=rule_set_for(config),
        workers=workers,
        timeout=timeout,
        clock=clock,
        on_file_done=on_file_analyzed,
    )
    for analysis in analyses:
        if analysis.degraded:
            logger.debug("Degraded analysis for %s", analysis.path)

    analyzed_units = [analysis.unit for analysis in analyses if not analysis.skipped]
    duplications = detect(analyzed_units, config=config.duplication, workers=workers)
    return aggregate(analyses, duplications, extra_issues=extra_issues)


def assess_sources(
    sources: Iterable[tuple[str, str]],
    *,
    config: CodeAssayConfig | None = None,
    workers: int | None = None,
    timeout: float | None = None,
) -> Assessment:
    """Convenience wrapper taking `(path, text)` pairs."""

    units = [SourceUnit.from_text(path, text) for path, text in sources]
    return assess_units(units, config=config, workers=workers, timeout=timeout)


def audit_path(
    scan_path: Path,
    *,
    workers: int | None = None,
    timeout: float | None = None,
    duplication: bool | None = None,
    callbacks: AuditCallbacks | None = None,
) -> AuditResult:
    target = prepare_target(scan_path)
    files = discover_files(target)
    return audit_files(
        target,
        files=files,
        workers=workers,
        timeout=timeout,
        duplication=duplication,
        callbacks=callbacks,
    )


def audit_files(
    target: ScanTarget,
    *,
    files: list[Path],
    workers: int | None = None,
    timeout: float | None = None,
    duplication: bool | None = None,
    callbacks: AuditCallbacks | None = None,
) -> AuditResult:
    config = target.config
    if duplication is not None:
        config = replace(config, duplication=replace(config.duplication, enabled=duplication))
    effective_workers = workers or config.workers or worker_count_from_env()

    units = load_units(
        files,
        project_root=target.project_root,
        workers=effective_workers,
        on_path_done=callbacks.on_file_loaded if callbacks else None,
    )
    if callbacks is not None and callbacks.on_units_ready is not None:
        callbacks.on_units_ready(len(units))
    logger.debug("Analyzing %d file(s) with %d worker(s)", len(units), effective_workers)

    assessment = assess_units(
        units,
        config=config,
        workers=effective_workers,
        timeout=timeout,
        on_file_analyzed=callbacks.on_file_analyzed if callbacks else None,
    )
    return AuditResult(target=target, files=tuple(files), assessment=assessment)
