from __future__ import annotations

from decimal import Decimal

import pytest

from sales_import.db.batch_insert import BatchInsertError, InsertResult, PostgresLedgerStore, batch_insert
from sales_import.models.sales_row import LEDGER_COLUMNS, LedgerRecord


class DummyCursor:
    def __init__(self) -> None:
        self.queries: list[str] = []
        self.rows: list[list] = []

    def __enter__(self) -> DummyCursor:
        return self

    def __exit__(self, *exc) -> None:
        return None


class DummyConnection:
    def __init__(self) -> None:
        self.cursor_obj = DummyCursor()
        self.commits = 0
        self.rollbacks = 0
        self.fail_commit = False

    def cursor(self) -> DummyCursor:
        return self.cursor_obj

    def commit(self) -> None:
        if self.fail_commit:
            raise RuntimeError("server closed the connection unexpectedly")
        self.commits += 1

    def rollback(self) -> None:
        self.rollbacks += 1


# We monkeypatch execute_values symbol inside module to avoid needing
# a live database for logic test

@pytest.fixture(autouse=True)
def patch_execute_values(monkeypatch):
    import sales_import.db.batch_insert as bi

    def fake_execute_values(cursor, sql, rows, page_size=1000, template=None):
        if any(r[0] == "boom" for r in rows):
            raise RuntimeError('new row violates check constraint "dealer_sales_amount_check"')
        cursor.queries.append(sql)
        cursor.rows.extend(rows)

    monkeypatch.setattr(bi, "execute_values", fake_execute_values)
    return fake_execute_values


def _record(row_number: int = 2, dealer_id: str = "d-1") -> LedgerRecord:
    return LedgerRecord(
        row_number=row_number,
        dealer_id=dealer_id,
        product_id="p-1",
        transaction_type="invoice",
        transaction_date="2025-11-01",
        reference_number="INV-001",
        product_name="Wheat Seed",
        product_code="WS-001",
        quantity=Decimal("10"),
        unit_price=Decimal("500"),
        amount=Decimal("5000"),
        discount_amount=Decimal("0"),
        tax_amount=Decimal("0"),
        payment_status="pending",
        payment_date=None,
        due_date=None,
        notes=None,
    )


def test_batch_insert_basic():
    cur = DummyCursor()
    res = batch_insert(cur, table="dealer_sales", columns=["dealer_id", "quantity"], rows=[["d-1", 1], ["d-2", 2]])
    assert isinstance(res, InsertResult)
    assert res.inserted_rows == 2
    assert cur.queries == ['INSERT INTO dealer_sales ("dealer_id","quantity") VALUES %s']


def test_batch_insert_empty_rows():
    cur = DummyCursor()
    res = batch_insert(cur, table="dealer_sales", columns=["dealer_id"], rows=[])
    assert res.inserted_rows == 0
    assert cur.queries == []


def test_batch_insert_wraps_driver_error():
    with pytest.raises(BatchInsertError, match="check constraint"):
        batch_insert(DummyCursor(), table="t", columns=["c"], rows=[["boom"]])


def test_store_inserts_in_ledger_column_order():
    conn = DummyConnection()
    store = PostgresLedgerStore(conn, table="dealer_sales")

    result = store.insert_batch([_record(2), _record(3)])

    assert result.inserted_rows == 2
    assert conn.commits == 1
    assert conn.cursor_obj.rows[0] == _record(2).values()
    assert len(conn.cursor_obj.rows[0]) == len(LEDGER_COLUMNS)
    assert '"amount"' in conn.cursor_obj.queries[0]
    assert '"row_number"' not in conn.cursor_obj.queries[0]


def test_store_rolls_back_rejected_insert():
    conn = DummyConnection()
    store = PostgresLedgerStore(conn)

    with pytest.raises(BatchInsertError):
        store.insert_one(_record(dealer_id="boom"))

    assert conn.rollbacks == 1
    assert conn.commits == 0


def test_store_wraps_commit_failure():
    conn = DummyConnection()
    conn.fail_commit = True
    store = PostgresLedgerStore(conn)

    with pytest.raises(BatchInsertError, match="closed the connection"):
        store.insert_batch([_record()])

    assert conn.rollbacks == 1
