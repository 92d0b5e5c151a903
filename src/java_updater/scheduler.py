"""Run every installation target on a bounded thread pool."""
from __future__ import annotations

import concurrent.futures
import itertools
import logging
import os
import time
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from .installation import (
    Installation,
    InstallationOutcome,
    InstallationStatus,
    InstallationTarget,
    RunContext,
)

__all__ = ["RunSummary", "Scheduler", "max_workers", "num_workers"]

LOGGER = logging.getLogger(__name__)


def max_workers() -> int:
    """Upper bound for the pool: twice the CPU count (downloads mostly wait)."""
    return max(1, os.cpu_count() or 1) * 2


def num_workers(override: int | None = None) -> int:
    """Return the pool size, honouring *override* within ``[1, max_workers()]``."""
    limit = max_workers()
    return min(max(override or limit, 1), limit)


@dataclass(frozen=True, slots=True)
class RunSummary:
    """Aggregated result of a run."""

    outcomes: tuple[InstallationOutcome, ...]
    elapsed: float
    finished_at: datetime

    def counts(self) -> dict[str, int]:
        tally = Counter(outcome.status for outcome in self.outcomes)
        return {status.value: tally.get(status, 0) for status in InstallationStatus}

    @property
    def failed(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status is InstallationStatus.FAILED)


class Scheduler:
    """Fan installation targets out to worker threads and wait for all of them."""

    def __init__(self, context: RunContext, *, workers: int | None = None) -> None:
        self.context = context
        self.workers = num_workers(workers)

    def run(self, targets: Sequence[InstallationTarget]) -> RunSummary:
        start = time.perf_counter()
        total = len(targets)
        # next() on itertools.count is atomic under the GIL.
        progress = itertools.count(1)

        def unit(target: InstallationTarget) -> InstallationOutcome:
            try:
                outcome = Installation(target, self.context).run()
            except Exception as exc:
                outcome = _unexpected_failure(self.context, target, exc)
            self.context.reporter.progress(next(progress), total)
            return outcome

        LOGGER.info("Processing %d installation(s) with %d worker(s)", total, self.workers)
        with concurrent.futures.ThreadPoolExecutor(
            max_workers=self.workers,
            thread_name_prefix="java-updater",
        ) as pool:
            outcomes = tuple(pool.map(unit, targets))

        summary = RunSummary(
            outcomes=outcomes,
            elapsed=time.perf_counter() - start,
            finished_at=datetime.now().astimezone(),
        )
        self.context.reporter.summary(summary.elapsed, summary.finished_at)
        return summary


def _unexpected_failure(
    context: RunContext,
    target: InstallationTarget,
    exc: Exception,
) -> InstallationOutcome:
    LOGGER.error("Unexpected error processing %s", target.directory, exc_info=exc)
    context.reporter.failed(target.directory, exc)
    return InstallationOutcome(target, InstallationStatus.FAILED, error=str(exc))
