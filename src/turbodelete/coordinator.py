"""Run the deleter over several targets, one after another."""

import logging
import time
from dataclasses import dataclass, field
from typing import Iterable

from .engine import Outcome, TreeDeleter
from .logging import log_with_context
from .progress import ProgressCounter


def normalize_target(raw: str) -> str:
    """Strip one pair of surrounding double quotes left by some shells."""
    if len(raw) >= 2 and raw.startswith('"') and raw.endswith('"'):
        return raw[1:-1]
    return raw


@dataclass
class DeletionReport:
    """Aggregated result of a multi-target run."""

    outcomes: list[Outcome] = field(default_factory=list)
    success_count: int = 0
    error_count: int = 0
    duration_seconds: float = 0.0

    @property
    def exit_code(self) -> int:
        return 0 if self.error_count == 0 else 1


class TargetCoordinator:
    """Delete targets sequentially; each one gets its own pool and progress counter."""

    def __init__(self, deleter: TreeDeleter, logger: logging.Logger | None = None):
        self.deleter = deleter
        self.logger = logger or deleter.logger

    async def run(self, targets: Iterable[str]) -> DeletionReport:
        report = DeletionReport()
        start_time = time.time()

        for raw in targets:
            target = normalize_target(raw)
            log_with_context(self.logger, "info", "Deleting target", {"path": target})

            try:
                outcome = await self.deleter.delete(target, progress=ProgressCounter())
            except ValueError as e:
                log_with_context(self.logger, "error", "Target refused", {"path": target, "error": str(e)})
                report.error_count += 1
                continue

            report.outcomes.append(outcome)
            if outcome.succeeded:
                report.success_count += 1
            else:
                report.error_count += 1

        report.duration_seconds = round(time.time() - start_time, 3)

        if report.success_count > 0 and report.error_count == 0:
            message = "Deletion completed successfully"
        else:
            message = "Deletion completed with errors"
        log_with_context(
            self.logger,
            "info" if report.exit_code == 0 else "warning",
            message,
            {
                "targets_deleted": report.success_count,
                "errors": report.error_count,
                "duration_seconds": report.duration_seconds,
            },
        )
        return report
