from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from sales_import.errors import SchemaError

"""Required-column check, run once per file before any row-level work."""

__all__ = [
    "REQUIRED_COLUMNS",
    "OPTIONAL_COLUMNS",
    "TEMPLATE_COLUMNS",
    "validate_schema",
]

REQUIRED_COLUMNS: tuple[str, ...] = (
    "dealer_name",
    "transaction_type",
    "transaction_date",
    "reference_number",
    "product_name",
    "quantity",
    "unit_price",
)

OPTIONAL_COLUMNS: tuple[str, ...] = (
    "dealer_code",
    "product_code",
    "discount_amount",
    "tax_amount",
    "payment_status",
    "payment_date",
    "due_date",
    "notes",
)

# Column order of the downloadable template.
TEMPLATE_COLUMNS: tuple[str, ...] = (
    "dealer_name",
    "dealer_code",
    "transaction_type",
    "transaction_date",
    "reference_number",
    "product_name",
    "product_code",
    "quantity",
    "unit_price",
    "discount_amount",
    "tax_amount",
    "payment_status",
    "payment_date",
    "due_date",
    "notes",
)


def validate_schema(first_row: Mapping[str, Any] | Iterable[str]) -> None:
    """Check that every required column is present.

    ``first_row`` is the first parsed record (its keys are the header) or the
    header column names themselves.

    Raises:
        SchemaError: listing the missing columns in required-column order
    """
    present = {str(c).strip().lower() for c in first_row}
    missing = [c for c in REQUIRED_COLUMNS if c not in present]
    if missing:
        raise SchemaError(missing)
