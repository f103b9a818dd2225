from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from functools import partial

from codeassay.engine.analyzer import analyze
from codeassay.engine.types import FileAnalysis, InvalidInputError, SourceUnit, check_unit
from codeassay.rules.registry import RuleSet

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


def analyze_batch(
    units: Sequence[SourceUnit],
    *,
    rules: RuleSet | None = None,
    workers: int | None = None,
    timeout: float | None = None,
    clock: Clock = time.monotonic,
    on_file_done: Callable[[str], None] | None = None,
) -> list[FileAnalysis]:
    """
    Analyze many units, returning one `FileAnalysis` per unit in input order.

    With a `timeout`, each task checks the deadline before it starts; units
    not started in time come back with `skipped=True`. Analyses already running
    are never interrupted.
    """

    unit_list = list(units)
    for index, unit in enumerate(unit_list):
        check_unit(unit, label=f"unit #{index}")
    if timeout is not None and timeout <= 0:
        raise InvalidInputError(f"timeout must be positive, got {timeout!r}")

    deadline = clock() + timeout if timeout is not None else None
    run_one = partial(_analyze_before_deadline, rules=rules, deadline=deadline, clock=clock)

    results: list[FileAnalysis] = []
    effective_workers = workers or 1
    if effective_workers <= 1 or len(unit_list) <= 1:
        for unit in unit_list:
            results.append(run_one(unit))
            if on_file_done is not None:
                on_file_done(unit.path)
    else:
        max_workers = min(max(1, effective_workers), len(unit_list))
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            for unit, analysis in zip(unit_list, executor.map(run_one, unit_list), strict=True):
                results.append(analysis)
                if on_file_done is not None:
                    on_file_done(unit.path)

    skipped = sum(1 for analysis in results if analysis.skipped)
    if skipped:
        logger.warning("Deadline reached: %d of %d file(s) were not analyzed.", skipped, len(results))
    return results


def _analyze_before_deadline(
    unit: SourceUnit,
    *,
    rules: RuleSet | None,
    deadline: float | None,
    clock: Clock,
) -> FileAnalysis:
    if deadline is not None and clock() >= deadline:
        return FileAnalysis(unit=unit, skipped=True)
    return analyze(unit, rules=rules)
