from __future__ import annotations

from sales_import.models.import_stats import ImportReport

"""SUMMARY line rendering.

Format:
SUMMARY rows={total} valid={valid} invalid={invalid} success={successful}
failed={failed} skipped={skipped} batches={batches} elapsed_sec={elapsed} state={state}
"""

__all__ = [
    "render_summary_line",
]


def _format_number(value: float) -> str:
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        # Format very small numbers to avoid scientific notation
        return f"{value:.6f}".rstrip('0').rstrip('.')
    return f"{value:.3f}".rstrip('0').rstrip('.')


def render_summary_line(report: ImportReport) -> str:
    """Render the SUMMARY line for an import report.

    Examples:
        >>> from sales_import.models.import_stats import ImportStats
        >>> from sales_import.models.import_step import CommitState
        >>> stats = ImportStats(total=12, successful=9, failed=1)
        >>> report = ImportReport.from_stats(
        ...     "sales.xlsx", stats, valid=10, state=CommitState.COMPLETE, elapsed_seconds=2.0
        ... )
        >>> render_summary_line(report)
        'SUMMARY rows=12 valid=10 invalid=2 success=9 failed=1 skipped=0 batches=0 elapsed_sec=2 state=complete'
    """
    return (
        f"SUMMARY rows={report.total} "
        f"valid={report.valid} "
        f"invalid={report.invalid} "
        f"success={report.successful} "
        f"failed={report.failed} "
        f"skipped={report.skipped} "
        f"batches={report.total_batches} "
        f"elapsed_sec={_format_number(report.elapsed_seconds)} "
        f"state={report.state.value}"
    )
