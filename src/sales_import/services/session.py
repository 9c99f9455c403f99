from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from sales_import.db.batch_insert import LedgerStore
from sales_import.db.catalog import CatalogSource
from sales_import.errors import (
    InvalidTransitionError,
    NoValidRowsError,
    ParseError,
    ReconciliationError,
    SchemaError,
)
from sales_import.excel.reader import build_raw_rows, read_sheet
from sales_import.excel.schema import validate_schema
from sales_import.logging.error_log import ErrorLogBuffer
from sales_import.models.catalog import CanonicalDealer
from sales_import.models.config_models import ImportConfig
from sales_import.models.error_record import FILE_LEVEL_ROW, ErrorRecord
from sales_import.models.import_stats import BatchStatsAccumulator, ImportReport, ImportStats
from sales_import.models.import_step import CommitState, ImportStep
from sales_import.models.sales_row import RawRow, ResolvedRow

from .committer import BatchCommitter, BatchMetrics, BatchResult
from .normalizer import eligible_rows, normalize_rows
from .progress import ProgressTracker
from .reconciliation import ReconciliationQueue, apply_resolutions
from .resolver import CatalogIndex, resolve_rows

"""Import session: the upload -> commit workflow as an explicit state machine.

    UPLOAD --load--> MAPPING --resolve--> DEALER_MAPPING --apply_dealer_mappings--> PREVIEW
                                     \\------------(all dealers matched)---------> PREVIEW
    PREVIEW --commit--> IMPORTING --> COMPLETE
    any step --reset--> UPLOAD

All state lives in the session object and is dropped on reset; only rows the
ledger store accepted outlive the run. ``run_import`` drives a session
headless, with dealer choices supplied up front.
"""

__all__ = [
    "ImportSession",
    "PreviewSummary",
    "run_import",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreviewSummary:
    """Valid vs. invalid counts shown to the operator before commit."""
    total: int
    valid: int
    invalid: int
    invalid_rows: tuple[tuple[int, tuple[str, ...]], ...]  # (sheet line, reasons)


class ImportSession:
    def __init__(
        self,
        config: ImportConfig | None = None,
        *,
        error_log: ErrorLogBuffer | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.config = config or ImportConfig()
        self.error_log = error_log if error_log is not None else ErrorLogBuffer(self.config.error_log_dir)
        self._sleep = sleep
        self._reset_state()

    def _reset_state(self) -> None:
        self.step = ImportStep.UPLOAD
        self.file_name: str = "<upload>"
        self.raw_rows: list[RawRow] = []
        self.rows: list[ResolvedRow] = []
        self.queue = ReconciliationQueue()
        self.catalog: CatalogIndex | None = None
        self.report: ImportReport | None = None
        self._started: datetime | None = None

    def _require(self, *steps: ImportStep) -> None:
        if self.step not in steps:
            expected = " or ".join(s.value for s in steps)
            raise InvalidTransitionError(f"operation requires step {expected}, session is at {self.step.value}")

    def _catalog_index(self) -> CatalogIndex:
        if self.catalog is None:
            raise InvalidTransitionError("no catalog loaded; call resolve() first")
        return self.catalog

    def reset(self) -> None:
        """Discard everything and go back to UPLOAD. Already committed rows are not undone."""
        self._reset_state()

    # -- UPLOAD -> MAPPING -------------------------------------------------

    def load(self, source: Path | str | bytes, file_name: str | None = None) -> list[RawRow]:
        """Parse the file and check the header.

        Raises:
            ParseError / SchemaError: the session stays at UPLOAD
        """
        self._require(ImportStep.UPLOAD)
        self._started = datetime.now(UTC)
        if file_name is None and not isinstance(source, bytes):
            file_name = Path(source).name
        self.file_name = file_name or "<upload>"

        try:
            sheet = read_sheet(source, file_name=file_name)
            validate_schema(sheet.rows[0])
        except ParseError as e:
            self._log_file_error("PARSE_ERROR", str(e))
            raise
        except SchemaError as e:
            self._log_file_error("SCHEMA_ERROR", str(e))
            raise

        self.raw_rows = build_raw_rows(sheet)
        logger.info("file=%s parsed rows=%d", self.file_name, len(self.raw_rows))
        self.step = ImportStep.MAPPING
        return self.raw_rows

    # -- MAPPING -> DEALER_MAPPING | PREVIEW --------------------------------

    def resolve(self, catalog: CatalogSource) -> ImportStep:
        """Fetch the catalog once and resolve every row."""
        self._require(ImportStep.MAPPING)
        dealers = catalog.list_dealers()
        products = catalog.list_products()
        self.catalog = CatalogIndex.build(dealers, products)
        self.rows, self.queue = resolve_rows(self.raw_rows, self.catalog)
        if len(self.queue) > 0:
            logger.info(
                "%d dealer name(s) need manual mapping: %s",
                len(self.queue),
                ", ".join(g.raw_dealer_name for g in self.queue.groups),
            )
            self.step = ImportStep.DEALER_MAPPING
        else:
            self._enter_preview()
        return self.step

    # -- DEALER_MAPPING -----------------------------------------------------

    def find_dealer(self, ref: str) -> CanonicalDealer | None:
        """Look up a catalog dealer by id, falling back to code (case-insensitive)."""
        if self.catalog is None:
            return None
        dealer = self.catalog.dealers_by_id.get(ref)
        if dealer is not None:
            return dealer
        return self.catalog.dealers.by_code.get(ref.strip().lower())

    def choose_dealer(self, raw_dealer_name: str, dealer_id: str) -> None:
        self._require(ImportStep.DEALER_MAPPING)
        catalog = self._catalog_index()
        if dealer_id not in catalog.dealers_by_id:
            raise ReconciliationError(f"Unknown dealer id '{dealer_id}'")
        self.queue = self.queue.choose(raw_dealer_name, dealer_id)

    def apply_dealer_mappings(self) -> None:
        """Apply every choice and move to PREVIEW.

        Raises:
            ReconciliationError: some unmatched dealer name has no choice yet
        """
        self._require(ImportStep.DEALER_MAPPING)
        catalog = self._catalog_index()
        if not self.queue.is_complete:
            pending = ", ".join(g.raw_dealer_name for g in self.queue.pending)
            raise ReconciliationError(f"Choose a dealer for: {pending}")
        self.rows = apply_resolutions(self.rows, self.queue, catalog.dealers_by_id)
        self._enter_preview()

    # -- PREVIEW --------------------------------------------------------------

    def _enter_preview(self) -> None:
        self.rows = normalize_rows(self.rows)
        for row in self.rows:
            if row.validation_errors:
                self.error_log.append(
                    ErrorRecord.create(
                        file=self.file_name,
                        row=row.row_number,
                        error_type="VALIDATION_ERROR",
                        message="; ".join(row.validation_errors),
                    )
                )
        summary = self.preview()
        logger.info("preview valid=%d invalid=%d", summary.valid, summary.invalid)
        self.step = ImportStep.PREVIEW

    def preview(self) -> PreviewSummary:
        valid = eligible_rows(self.rows)
        invalid = tuple(
            (r.row_number, tuple(r.validation_errors)) for r in self.rows if r.validation_errors
        )
        return PreviewSummary(
            total=len(self.rows),
            valid=len(valid),
            invalid=len(invalid),
            invalid_rows=invalid,
        )

    # -- PREVIEW -> IMPORTING -> COMPLETE ---------------------------------------

    def commit(
        self,
        store: LedgerStore,
        *,
        should_abort: Callable[[], bool] | None = None,
    ) -> ImportReport:
        """Commit every eligible row in batches and build the report.

        Store failures, timeouts included, are batch or row failures in the
        report. Any other error once writing has started ends the session at
        COMPLETE with a partial, ABORTED ``self.report`` before it propagates.

        Raises:
            NoValidRowsError: nothing passed validation; the session stays at PREVIEW
        """
        self._require(ImportStep.PREVIEW)
        valid = eligible_rows(self.rows)
        if not valid:
            raise NoValidRowsError()

        self.step = ImportStep.IMPORTING
        stats = ImportStats(total=len(self.rows))
        batch_stats = BatchStatsAccumulator()

        with ProgressTracker(len(valid)) as progress:
            def on_batch(result: BatchResult) -> None:
                progress.advance(result.size, success=stats.successful, failed=stats.failed)

            def on_metrics(metrics: BatchMetrics) -> None:
                batch_stats.add_batch_time(metrics.elapsed_seconds)

            committer = BatchCommitter(
                store,
                batch_size=self.config.batch_size,
                delay_seconds=self.config.batch_delay_seconds,
                batch_retries=self.config.batch_retries,
                sleep=self._sleep,
                should_abort=should_abort,
                metrics_callback=on_metrics,
                on_batch=on_batch,
            )
            try:
                committer.commit(valid, stats)
            except Exception:
                if committer.state is CommitState.IDLE:
                    # nothing written yet
                    self.step = ImportStep.PREVIEW
                else:
                    # batches committed so far stay in the ledger; no second commit from this session
                    self._finish(stats, len(valid), committer.state, batch_stats)
                raise

        return self._finish(stats, len(valid), committer.state, batch_stats)

    def _finish(
        self,
        stats: ImportStats,
        valid: int,
        state: CommitState,
        batch_stats: BatchStatsAccumulator,
    ) -> ImportReport:
        for err in stats.errors:
            self.error_log.append(
                ErrorRecord.create(file=self.file_name, row=err.row, error_type="INSERT_FAILED", message=err.message)
            )
        self.flush_errors()

        started = self._started or datetime.now(UTC)
        elapsed = (datetime.now(UTC) - started).total_seconds()
        self.report = ImportReport.from_stats(
            self.file_name,
            stats,
            valid=valid,
            state=state,
            elapsed_seconds=elapsed,
            batch_stats=batch_stats,
        )
        self.step = ImportStep.COMPLETE
        return self.report

    # -- error log ----------------------------------------------------------------

    def _log_file_error(self, error_type: str, message: str) -> None:
        self.error_log.append(
            ErrorRecord.create(file=self.file_name, row=FILE_LEVEL_ROW, error_type=error_type, message=message)
        )
        self.flush_errors()

    def flush_errors(self) -> Path | None:
        try:
            path = self.error_log.flush()
        except OSError as e:
            # the import result matters more than the log file
            logger.warning("failed to write error log: %s", e)
            return None
        if path is not None:
            logger.info("error log: %s", path)
        return path


def run_import(
    source: Path | str | bytes,
    catalog: CatalogSource,
    store: LedgerStore,
    *,
    config: ImportConfig | None = None,
    resolutions: Mapping[str, str] | None = None,
    file_name: str | None = None,
    should_abort: Callable[[], bool] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ImportReport:
    """Run the whole pipeline without an operator.

    ``resolutions`` maps raw dealer names (case-insensitive) to dealer ids or
    codes for names the catalog does not match.

    Raises:
        ParseError, SchemaError: structural problems with the file
        ReconciliationError: an unmatched dealer name has no entry in ``resolutions``
        NoValidRowsError: no row passed validation
    """
    session = ImportSession(config, sleep=sleep)
    session.load(source, file_name=file_name)
    if session.resolve(catalog) is ImportStep.DEALER_MAPPING:
        lookup = {k.strip().lower(): v for k, v in (resolutions or {}).items()}
        for group in session.queue.groups:
            ref = lookup.get(group.key)
            if ref is None:
                continue
            dealer = session.find_dealer(ref)
            if dealer is None:
                raise ReconciliationError(f"Unknown dealer '{ref}' for '{group.raw_dealer_name}'")
            session.choose_dealer(group.raw_dealer_name, dealer.id)
        session.apply_dealer_mappings()
    return session.commit(store, should_abort=should_abort)
