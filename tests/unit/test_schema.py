from __future__ import annotations

import pytest

from sales_import.errors import SchemaError
from sales_import.excel.schema import REQUIRED_COLUMNS, TEMPLATE_COLUMNS, validate_schema


def test_validate_schema_accepts_first_row_mapping():
    row = {c: "x" for c in REQUIRED_COLUMNS}
    validate_schema(row)  # no exception


def test_validate_schema_ignores_case_and_padding():
    validate_schema([f" {c.upper()} " for c in REQUIRED_COLUMNS])


def test_validate_schema_lists_missing_in_required_order():
    columns = [c for c in REQUIRED_COLUMNS if c not in ("unit_price", "dealer_name")]

    with pytest.raises(SchemaError) as exc:
        validate_schema(columns)

    assert exc.value.missing_columns == ["dealer_name", "unit_price"]
    assert str(exc.value) == "Missing required columns: dealer_name, unit_price"


def test_optional_columns_are_not_required():
    validate_schema(list(REQUIRED_COLUMNS))


def test_template_columns_cover_required():
    assert set(REQUIRED_COLUMNS) <= set(TEMPLATE_COLUMNS)
    assert len(TEMPLATE_COLUMNS) == len(set(TEMPLATE_COLUMNS))
