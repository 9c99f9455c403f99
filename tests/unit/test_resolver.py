from __future__ import annotations

import logging

from sales_import.models.catalog import CanonicalDealer, CanonicalProduct
from sales_import.services.resolver import CatalogIndex, EntityIndex, resolve_rows
from tests.conftest import DEALERS, PRODUCTS, make_raw_row


def _catalog() -> CatalogIndex:
    return CatalogIndex.build(DEALERS, PRODUCTS)


def test_lookup_is_case_insensitive_exact_match():
    index = EntityIndex.build(DEALERS)

    assert index.resolve("green valley traders") == "d-1"
    assert index.resolve("  GREEN VALLEY TRADERS ") == "d-1"
    # 部分一致はしない
    assert index.resolve("Green Valley") is None


def test_lookup_falls_back_to_code():
    index = EntityIndex.build(DEALERS)

    assert index.resolve("Unknown Name", "sas-02") == "d-2"
    assert index.resolve(None, "KFM-03") == "d-3"
    assert index.resolve("Unknown Name") is None


def test_name_match_wins_over_code():
    index = EntityIndex.build(DEALERS)

    assert index.resolve("Kisan Farm Mart", "GVT-01") == "d-3"


def test_ambiguous_name_never_matches(caplog):
    dealers = [
        CanonicalDealer(id="a", code="SA-1", name="Sharma Agro"),
        CanonicalDealer(id="b", code="SA-2", name="sharma agro"),
    ]

    with caplog.at_level(logging.WARNING):
        index = EntityIndex.build(dealers)
        reversed_index = EntityIndex.build(list(reversed(dealers)))

    assert index.resolve("Sharma Agro") is None
    assert reversed_index.resolve("Sharma Agro") is None
    assert index.ambiguous_names == frozenset({"sharma agro"})
    # code は一意なので引ける
    assert index.resolve("Sharma Agro", "SA-2") == "b"
    assert "ambiguous" in caplog.text


def test_entities_without_code_are_indexed_by_name_only():
    index = EntityIndex.build(PRODUCTS)

    assert index.resolve("drip kit") == "p-3"
    assert None not in index.by_code


def test_resolve_rows_matches_dealer_and_product():
    rows, queue = resolve_rows([make_raw_row(dealer_name="green valley traders")], _catalog())

    (row,) = rows
    assert row.dealer_id == "d-1"
    assert row.matched_dealer_code == "GVT-01"
    assert row.product_id == "p-1"
    assert row.product_code == "WS-001"  # back-filled from the catalog
    assert row.validation_errors == []
    assert len(queue) == 0


def test_resolve_rows_keeps_file_product_code():
    rows, _ = resolve_rows([make_raw_row(product_code="WS-OLD")], _catalog())

    assert rows[0].product_id == "p-1"
    assert rows[0].product_code == "WS-OLD"


def test_unknown_product_is_kept_by_name():
    rows, _ = resolve_rows([make_raw_row(product_name="Mystery Pellets")], _catalog())

    assert rows[0].product_id is None
    assert rows[0].product_code is None
    assert rows[0].validation_errors == []


def test_unmatched_dealers_are_queued():
    raw_rows = [
        make_raw_row(2, dealer_name="Green Valey Traders"),
        make_raw_row(3, dealer_name="Sunrise Agro Store"),
        make_raw_row(4, dealer_name="green valey traders"),
        make_raw_row(5, dealer_name=None),
    ]

    rows, queue = resolve_rows(raw_rows, _catalog())

    assert rows[0].validation_errors == ["Dealer not found: Green Valey Traders"]
    assert rows[1].dealer_id == "d-2"
    assert rows[3].validation_errors == ["Missing dealer name"]
    (group,) = queue.groups
    assert group.raw_dealer_name == "Green Valey Traders"
    assert group.row_indices == (0, 2)


def test_catalog_index_by_id():
    catalog = CatalogIndex.build(DEALERS, [CanonicalProduct(id="p", code=None, name="x")])

    assert catalog.dealers_by_id["d-2"].name == "Sunrise Agro Store"
