from __future__ import annotations

import uuid

import pytest

from sales_import.db.catalog import CatalogError, PostgresCatalog


class FakeCursor:
    def __init__(self, results: dict[str, list[tuple]], fail: bool = False) -> None:
        self.results = results
        self.fail = fail
        self.executed: list[str] = []
        self._last: list[tuple] = []

    def __enter__(self) -> FakeCursor:
        return self

    def __exit__(self, *exc) -> None:
        return None

    def execute(self, sql: str) -> None:
        if self.fail:
            raise RuntimeError('relation "dealers" does not exist')
        self.executed.append(sql)
        table = sql.split(" FROM ")[1].split()[0]
        self._last = self.results.get(table, [])

    def fetchall(self) -> list[tuple]:
        return self._last


class FakeConnection:
    def __init__(self, cursor: FakeCursor) -> None:
        self._cursor = cursor

    def cursor(self) -> FakeCursor:
        return self._cursor


def test_list_dealers_maps_columns():
    dealer_id = uuid.uuid4()
    cur = FakeCursor({"dealers": [(dealer_id, "GVT-01", "Green Valley Traders"), (7, None, "No Code Co")]})

    dealers = PostgresCatalog(FakeConnection(cur)).list_dealers()

    assert dealers[0].id == str(dealer_id)
    assert dealers[0].code == "GVT-01"
    assert dealers[0].name == "Green Valley Traders"
    assert dealers[1].id == "7"
    assert dealers[1].code is None
    assert cur.executed == ["SELECT id, dealer_code, business_name FROM dealers ORDER BY business_name"]


def test_list_products_uses_configured_table():
    cur = FakeCursor({"master_products": [(1, "WS-001", "Wheat Seed")]})

    products = PostgresCatalog(FakeConnection(cur), product_table="master_products").list_products()

    assert [p.name for p in products] == ["Wheat Seed"]
    assert "FROM master_products" in cur.executed[0]


def test_catalog_errors_are_wrapped():
    cur = FakeCursor({}, fail=True)

    with pytest.raises(CatalogError, match="does not exist"):
        PostgresCatalog(FakeConnection(cur)).list_dealers()
