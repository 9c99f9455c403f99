"""Domain models for the dealer sales import."""

from .catalog import CanonicalDealer, CanonicalProduct
from .config_models import DatabaseConfig, ImportConfig
from .error_record import ErrorRecord
from .import_stats import BatchStatsAccumulator, ImportReport, ImportStats, RowError
from .import_step import CommitState, ImportStep
from .sales_row import LEDGER_COLUMNS, LedgerRecord, RawRow, ResolvedRow
from .unmatched_dealer import UnmatchedDealerGroup

__all__ = [
    # Configuration models
    "DatabaseConfig",
    "ImportConfig",
    # Catalog
    "CanonicalDealer",
    "CanonicalProduct",
    # Rows
    "RawRow",
    "ResolvedRow",
    "LedgerRecord",
    "LEDGER_COLUMNS",
    "UnmatchedDealerGroup",
    # Results
    "RowError",
    "ImportStats",
    "ImportReport",
    "BatchStatsAccumulator",
    "ErrorRecord",
    # Lifecycle
    "ImportStep",
    "CommitState",
]
