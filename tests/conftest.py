# Shared pytest fixtures
from __future__ import annotations

from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

import pandas as pd
import pytest

from sales_import.db.batch_insert import BatchInsertError, InsertResult
from sales_import.logging.init import reset_logging
from sales_import.models.catalog import CanonicalDealer, CanonicalProduct
from sales_import.models.config_models import ImportConfig
from sales_import.models.sales_row import LedgerRecord, RawRow


@pytest.fixture(autouse=True)
def _clean_logging():
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def temp_workdir(tmp_path: Path, monkeypatch) -> Path:
    (tmp_path / "config").mkdir()
    (tmp_path / "data").mkdir()
    (tmp_path / "logs").mkdir()
    monkeypatch.chdir(tmp_path)
    # 実 DB / .env に触れない
    for var in ("DATABASE_URL", "PGDSN", "PGHOST", "PGPORT", "PGUSER", "PGPASSWORD", "PGDATABASE"):
        monkeypatch.delenv(var, raising=False)
    return tmp_path


@pytest.fixture()
def sample_config_yaml() -> str:
    return """batch_size: 10
batch_delay_seconds: 0
batch_retries: 1
ledger_table: dealer_sales
error_log_dir: ./logs
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: crm
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "import.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def import_config(tmp_path: Path) -> ImportConfig:
    return ImportConfig(batch_size=10, batch_delay_seconds=0, error_log_dir=str(tmp_path / "logs"))


DEALERS = [
    CanonicalDealer(id="d-1", code="GVT-01", name="Green Valley Traders"),
    CanonicalDealer(id="d-2", code="SAS-02", name="Sunrise Agro Store"),
    CanonicalDealer(id="d-3", code="KFM-03", name="Kisan Farm Mart"),
]

PRODUCTS = [
    CanonicalProduct(id="p-1", code="WS-001", name="Wheat Seed"),
    CanonicalProduct(id="p-2", code="FERT-001", name="Fertilizer NPK"),
    CanonicalProduct(id="p-3", code=None, name="Drip Kit"),
]


class FakeCatalog:
    def __init__(
        self,
        dealers: Sequence[CanonicalDealer] = DEALERS,
        products: Sequence[CanonicalProduct] = PRODUCTS,
    ) -> None:
        self.dealers = list(dealers)
        self.products = list(products)
        self.calls: list[str] = []

    def list_dealers(self) -> list[CanonicalDealer]:
        self.calls.append("dealers")
        return list(self.dealers)

    def list_products(self) -> list[CanonicalProduct]:
        self.calls.append("products")
        return list(self.products)


class FakeLedgerStore:
    """In-memory ledger; ``reject`` decides which records the 'database' refuses.

    A bulk insert containing a rejected record fails as a whole, like a
    constraint violation inside one INSERT statement.
    """

    def __init__(
        self,
        reject: Callable[[LedgerRecord], bool] | None = None,
        batch_failures: int = 0,
    ) -> None:
        self.reject = reject or (lambda record: False)
        self.batch_failures = batch_failures  # transient failures before bulk inserts succeed
        self.committed: list[LedgerRecord] = []
        self.batch_calls: list[int] = []
        self.single_calls: list[int] = []

    def insert_batch(self, records: Sequence[LedgerRecord]) -> InsertResult:
        self.batch_calls.append(len(records))
        if self.batch_failures > 0:
            self.batch_failures -= 1
            raise BatchInsertError("connection reset by peer")
        bad = [r for r in records if self.reject(r)]
        if bad:
            raise BatchInsertError(f"violates check constraint (row {bad[0].row_number})")
        self.committed.extend(records)
        return InsertResult(inserted_rows=len(records))

    def insert_one(self, record: LedgerRecord) -> InsertResult:
        self.single_calls.append(record.row_number)
        if self.reject(record):
            raise BatchInsertError(f"violates check constraint (row {record.row_number})")
        self.committed.append(record)
        return InsertResult(inserted_rows=1)


@pytest.fixture()
def catalog() -> FakeCatalog:
    return FakeCatalog()


@pytest.fixture()
def ledger_store() -> FakeLedgerStore:
    return FakeLedgerStore()


def make_raw_row(row_number: int = 2, **overrides: Any) -> RawRow:
    values: dict[str, Any] = {
        "dealer_name": "Green Valley Traders",
        "transaction_type": "invoice",
        "transaction_date": "2025-11-01",
        "reference_number": "INV-001",
        "product_name": "Wheat Seed",
        "quantity": 10,
        "unit_price": 500,
    }
    values.update(overrides)
    return RawRow(row_number=row_number, **values)


def sale_row(**overrides: Any) -> dict[str, Any]:
    row: dict[str, Any] = {
        "dealer_name": "Green Valley Traders",
        "dealer_code": None,
        "transaction_type": "invoice",
        "transaction_date": "2025-11-01",
        "reference_number": "INV-001",
        "product_name": "Wheat Seed",
        "product_code": None,
        "quantity": 10,
        "unit_price": 500,
    }
    row.update(overrides)
    return row


def write_sales_xlsx(path: Path, rows: list[dict[str, Any]], sheet_name: str = "Dealer Sales") -> Path:
    df = pd.DataFrame(rows)
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        df.to_excel(writer, sheet_name=sheet_name, index=False)
    return path


def write_sales_csv(path: Path, rows: list[dict[str, Any]]) -> Path:
    pd.DataFrame(rows).to_csv(path, index=False)
    return path
