from __future__ import annotations

from dataclasses import dataclass, field

"""Config dataclasses for the dealer sales import.

These are the typed results of ``sales_import.config.loader.load_config``.
``ImportConfig()`` with no arguments gives the built-in defaults, so the
pipeline can run as a library without a YAML file.
"""

__all__ = [
    "DatabaseConfig",
    "ImportConfig",
]


@dataclass(frozen=True)
class DatabaseConfig:
    """Database connection fallback.

    Environment variables (DATABASE_URL / PGDSN / PG*) take precedence over these values.
    """
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class ImportConfig:
    """Root configuration object for one import run."""
    batch_size: int = 10  # rows per bulk insert
    batch_delay_seconds: float = 0.1  # pause between batches
    batch_retries: int = 1  # whole-batch retries before per-row fallback
    ledger_table: str = "dealer_sales"
    dealer_table: str = "dealers"
    product_table: str = "products"
    error_log_dir: str = "./logs"
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
