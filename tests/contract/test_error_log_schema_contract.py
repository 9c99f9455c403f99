from __future__ import annotations

import json
import re
from contextlib import contextmanager
from pathlib import Path

import pytest

from sales_import.cli.__main__ import main as cli_main
from tests.conftest import FakeCatalog, FakeLedgerStore, sale_row, write_sales_csv

"""Error log JSON Lines contract: fixed key set, one file per run."""

REQUIRED_KEYS = {"timestamp", "file", "row", "error_type", "message"}
ERROR_TYPES = {"PARSE_ERROR", "SCHEMA_ERROR", "VALIDATION_ERROR", "INSERT_FAILED"}


@pytest.fixture()
def rejecting_backends(monkeypatch):
    store = FakeLedgerStore(reject=lambda r: r.reference_number == "INV-3")

    @contextmanager
    def fake_open_backends(cfg):
        yield FakeCatalog(), store

    monkeypatch.setattr("sales_import.cli.__main__._open_backends", fake_open_backends)
    return store


def _read_log(workdir: Path) -> list[dict]:
    files = list((workdir / "logs").glob("errors-*.log"))
    assert len(files) == 1
    assert re.fullmatch(r"errors-\d{8}-\d{6}\.log", files[0].name)
    return [json.loads(line) for line in files[0].read_text(encoding="utf-8").splitlines()]


def test_error_log_records_have_fixed_schema(temp_workdir: Path, write_config, rejecting_backends):
    write_sales_csv(
        temp_workdir / "data" / "sales.csv",
        [
            sale_row(reference_number="INV-1"),
            sale_row(reference_number="INV-2", transaction_date="not-a-date"),
            sale_row(reference_number="INV-3"),
        ],
    )

    assert cli_main(["import", "data/sales.csv"]) == 2

    records = _read_log(temp_workdir)
    assert len(records) == 2
    for obj in records:
        assert set(obj) == REQUIRED_KEYS
        assert obj["error_type"] in ERROR_TYPES
        assert obj["file"] == "sales.csv"
        assert obj["timestamp"].endswith("Z")
        assert isinstance(obj["row"], int)
    assert [(o["row"], o["error_type"]) for o in records] == [(3, "VALIDATION_ERROR"), (4, "INSERT_FAILED")]


def test_file_level_error_uses_row_minus_one(temp_workdir: Path, write_config, rejecting_backends):
    (temp_workdir / "data" / "sales.xlsx").write_bytes(b"not really a workbook")

    assert cli_main(["import", "data/sales.xlsx"]) == 1

    (record,) = _read_log(temp_workdir)
    assert record["row"] == -1
    assert record["error_type"] == "PARSE_ERROR"
    assert record["message"].startswith("Failed to parse file")
