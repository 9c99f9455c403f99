from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass, field

from sales_import.db.batch_insert import LedgerStore
from sales_import.models.import_stats import ImportStats, RowError
from sales_import.models.import_step import CommitState
from sales_import.models.sales_row import LedgerRecord, ResolvedRow

from .normalizer import to_ledger_record

"""Batch commit of validated rows into the ledger store.

Rows go in fixed-size batches, in sheet order, one batch at a time. A batch
the store rejects is retried as a whole ``batch_retries`` times (a transient
failure such as a dropped connection should not be reported as bad rows);
after that every row of the batch is inserted on its own, so one bad row only
costs that row. Individual failures are terminal: they are recorded, never
retried again.

Commits are not transactional across batches. Aborting (``should_abort``)
stops before the next batch and leaves committed batches in the store.
"""

__all__ = [
    "BatchCommitter",
    "BatchMetrics",
    "BatchResult",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchMetrics:
    """Timing of one batch (bulk attempts plus any per-row fallback)."""
    batch_index: int
    batch_size: int
    elapsed_seconds: float
    start_time: float
    end_time: float


@dataclass(frozen=True)
class BatchResult:
    batch_index: int
    size: int
    successful: int
    failed: int
    attempts: int  # bulk attempts made
    fell_back: bool  # per-row fallback used
    errors: tuple[RowError, ...] = field(default_factory=tuple)


class BatchCommitter:
    """Commits eligible rows in order; state IDLE -> COMMITTING -> (COMPLETE | ABORTED).

    ``sleep`` and ``delay_seconds`` form the pacing policy between batches;
    tests pass a no-op ``sleep``.
    """

    def __init__(
        self,
        store: LedgerStore,
        *,
        batch_size: int = 10,
        delay_seconds: float = 0.1,
        batch_retries: int = 1,
        sleep: Callable[[float], None] = time.sleep,
        should_abort: Callable[[], bool] | None = None,
        metrics_callback: Callable[[BatchMetrics], None] | None = None,
        on_batch: Callable[[BatchResult], None] | None = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        if batch_retries < 0:
            raise ValueError(f"batch_retries must be >= 0, got {batch_retries}")
        self.store = store
        self.batch_size = batch_size
        self.delay_seconds = delay_seconds
        self.batch_retries = batch_retries
        self._sleep = sleep
        self._should_abort = should_abort
        self._metrics_callback = metrics_callback
        self._on_batch = on_batch
        self.state = CommitState.IDLE

    def iter_batches(self, records: Sequence[LedgerRecord]) -> Iterator[list[LedgerRecord]]:
        for start in range(0, len(records), self.batch_size):
            yield list(records[start:start + self.batch_size])

    def commit_batch(self, batch: Sequence[LedgerRecord], batch_index: int = 0) -> BatchResult:
        """Insert one batch, falling back to per-row inserts if the store keeps rejecting it."""
        attempts = 0
        last_error: Exception | None = None
        for attempt in range(1 + self.batch_retries):
            attempts += 1
            try:
                self.store.insert_batch(batch)
            except Exception as e:  # BatchInsertError, or a raw driver error or timeout from the store
                last_error = e
                logger.warning(
                    "batch=%d rows=%d attempt=%d failed: %s",
                    batch_index,
                    len(batch),
                    attempt + 1,
                    e,
                )
                continue
            return BatchResult(
                batch_index=batch_index,
                size=len(batch),
                successful=len(batch),
                failed=0,
                attempts=attempts,
                fell_back=False,
            )

        logger.info("batch=%d falling back to per-row insert (%s)", batch_index, last_error)
        successful = 0
        errors: list[RowError] = []
        for record in batch:
            try:
                self.store.insert_one(record)
            except Exception as e:
                logger.error("row=%d ref=%s insert failed: %s", record.row_number, record.reference_number, e)
                errors.append(RowError(row=record.row_number, message=str(e) or type(e).__name__))
            else:
                successful += 1
        return BatchResult(
            batch_index=batch_index,
            size=len(batch),
            successful=successful,
            failed=len(errors),
            attempts=attempts,
            fell_back=True,
            errors=tuple(errors),
        )

    def commit(self, rows: Sequence[ResolvedRow], stats: ImportStats | None = None) -> ImportStats:
        """Commit ``rows`` (all must be eligible) and return the accumulated stats.

        An unexpected error mid-run leaves the committer ABORTED; ``stats``
        then still counts the batches committed before it.

        Raises:
            ValueError: a row still has validation errors; nothing is written then
            RuntimeError: the committer was already used
        """
        if self.state is not CommitState.IDLE:
            raise RuntimeError(f"committer already used (state={self.state.value})")
        records = [to_ledger_record(r) for r in rows]
        stats = stats if stats is not None else ImportStats(total=len(records))

        self.state = CommitState.COMMITTING
        try:
            self._commit_batches(list(self.iter_batches(records)), stats)
        except Exception:
            self.state = CommitState.ABORTED
            logger.error("commit aborted; %d rows already committed stay in the ledger", stats.successful)
            raise
        return stats

    def _commit_batches(self, batches: list[list[LedgerRecord]], stats: ImportStats) -> None:
        for index, batch in enumerate(batches):
            if self._should_abort is not None and self._should_abort():
                logger.warning(
                    "import aborted before batch %d/%d; %d rows already committed stay in the ledger",
                    index + 1,
                    len(batches),
                    stats.successful,
                )
                self.state = CommitState.ABORTED
                return

            start_time = time.time()
            result = self.commit_batch(batch, batch_index=index)
            end_time = time.time()
            if self._metrics_callback is not None:
                self._metrics_callback(
                    BatchMetrics(
                        batch_index=index,
                        batch_size=len(batch),
                        elapsed_seconds=end_time - start_time,
                        start_time=start_time,
                        end_time=end_time,
                    )
                )

            stats.record_success(result.successful)
            for err in result.errors:
                stats.record_failure(err.row, err.message)
            if self._on_batch is not None:
                self._on_batch(result)

            if index < len(batches) - 1 and self.delay_seconds > 0:
                self._sleep(self.delay_seconds)

        self.state = CommitState.COMPLETE
        logger.info("commit complete successful=%d failed=%d", stats.successful, stats.failed)
