from __future__ import annotations

import statistics
from dataclasses import dataclass, field

from .import_step import CommitState

"""Import statistics and the final import report.

ImportStats is accumulated monotonically by the batch committer. ImportReport
is the frozen end-of-run view handed back to callers and rendered as the
SUMMARY line.
"""

__all__ = [
    "RowError",
    "ImportStats",
    "ImportReport",
    "BatchStatsAccumulator",
]


@dataclass(frozen=True)
class RowError:
    row: int  # sheet line number
    message: str


@dataclass
class ImportStats:
    """Running commit counters.

    ``skipped`` and ``updated`` are part of the shared import-stats shape; the
    sales import never skips or updates (duplicate lines are allowed), so both stay 0.
    """
    total: int = 0
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    updated: int = 0
    errors: list[RowError] = field(default_factory=list)

    def record_success(self, count: int = 1) -> None:
        self.successful += count

    def record_failure(self, row: int, message: str) -> None:
        self.failed += 1
        self.errors.append(RowError(row=row, message=message))

    @property
    def processed(self) -> int:
        return self.successful + self.failed


class BatchStatsAccumulator:
    """Collects per-batch timings and summarizes them for the report."""

    def __init__(self) -> None:
        self.batch_times: list[float] = []

    def add_batch_time(self, elapsed_seconds: float) -> None:
        self.batch_times.append(elapsed_seconds)

    def get_stats(self) -> tuple[int, float, float]:
        """Calculate batch statistics.

        Returns:
            tuple: (total_batches, avg_batch_seconds, p95_batch_seconds)
        """
        if not self.batch_times:
            return (0, 0.0, 0.0)

        total_batches = len(self.batch_times)
        avg_batch_seconds = statistics.mean(self.batch_times)

        if total_batches == 1:
            p95_batch_seconds = self.batch_times[0]
        else:
            p95_batch_seconds = statistics.quantiles(
                self.batch_times, n=20, method='inclusive'
            )[18]  # 95th percentile (19th out of 20 quantiles, 0-indexed)

        return (total_batches, avg_batch_seconds, p95_batch_seconds)


@dataclass(frozen=True)
class ImportReport:
    """Aggregated outcome of one import run.

    ``total`` is the number of parsed rows, ``valid``/``invalid`` the preview
    split, and ``successful + failed == submitted == valid`` unless the run was
    aborted part way (then ``submitted`` counts only the batches attempted).
    """
    file_name: str
    total: int
    valid: int
    invalid: int
    submitted: int
    successful: int
    failed: int
    skipped: int
    updated: int
    errors: tuple[RowError, ...]
    state: CommitState
    elapsed_seconds: float
    total_batches: int = 0
    avg_batch_seconds: float = 0.0
    p95_batch_seconds: float = 0.0

    @classmethod
    def from_stats(
        cls,
        file_name: str,
        stats: ImportStats,
        *,
        valid: int,
        state: CommitState,
        elapsed_seconds: float,
        batch_stats: BatchStatsAccumulator | None = None,
    ) -> ImportReport:
        total_batches, avg_batch, p95_batch = (
            batch_stats.get_stats() if batch_stats is not None else (0, 0.0, 0.0)
        )
        return cls(
            file_name=file_name,
            total=stats.total,
            valid=valid,
            invalid=stats.total - valid,
            submitted=stats.processed,
            successful=stats.successful,
            failed=stats.failed,
            skipped=stats.skipped,
            updated=stats.updated,
            errors=tuple(sorted(stats.errors, key=lambda e: e.row)),
            state=state,
            elapsed_seconds=elapsed_seconds,
            total_batches=total_batches,
            avg_batch_seconds=avg_batch,
            p95_batch_seconds=p95_batch,
        )

    @property
    def all_committed(self) -> bool:
        return self.state is CommitState.COMPLETE and self.failed == 0 and self.invalid == 0
