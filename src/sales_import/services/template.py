from __future__ import annotations

from pathlib import Path

import pandas as pd

from sales_import.excel.schema import TEMPLATE_COLUMNS

"""Reference import template.

Two invoice lines sharing one reference number and one credit memo with a
negative quantity; doubles as the file-format documentation for operators.
"""

__all__ = [
    "TEMPLATE_SHEET_NAME",
    "TEMPLATE_ROWS",
    "build_template_frame",
    "write_template",
]

TEMPLATE_SHEET_NAME = "Dealer Sales"

TEMPLATE_ROWS: list[dict[str, object]] = [
    {
        "dealer_name": "Green Valley Traders",
        "transaction_type": "invoice",
        "transaction_date": "2025-11-01",
        "reference_number": "INV-001",
        "product_name": "Wheat Seed",
        "product_code": "WS-001",
        "quantity": 100,
        "unit_price": 500,
        "discount_amount": 1000,
        "tax_amount": 500,
        "payment_status": "paid",
        "payment_date": "2025-11-01",
        "due_date": "2025-12-01",
        "notes": "First order",
    },
    {
        "dealer_name": "Green Valley Traders",
        "transaction_type": "invoice",
        "transaction_date": "2025-11-01",
        "reference_number": "INV-001",
        "product_name": "Fertilizer NPK",
        "product_code": "FERT-001",
        "quantity": 50,
        "unit_price": 800,
        "discount_amount": 0,
        "tax_amount": 400,
        "payment_status": "paid",
        "payment_date": "2025-11-01",
        "due_date": "2025-12-01",
        "notes": "Same invoice - multiple line items",
    },
    {
        "dealer_name": "Green Valley Traders",
        "transaction_type": "credit_memo",
        "transaction_date": "2025-11-03",
        "reference_number": "CM-001",
        "product_name": "Wheat Seed",
        "product_code": "WS-001",
        "quantity": -5,
        "unit_price": 500,
        "discount_amount": 0,
        "tax_amount": 0,
        "payment_status": "paid",
        "payment_date": "2025-11-03",
        "due_date": "",
        "notes": "Damaged items returned (negative quantity)",
    },
]


def build_template_frame() -> pd.DataFrame:
    return pd.DataFrame(TEMPLATE_ROWS, columns=list(TEMPLATE_COLUMNS))


def write_template(path: Path, fmt: str | None = None) -> Path:
    """Write the template as ``xlsx`` or ``csv`` (default: from the suffix, else xlsx)."""
    fmt = (fmt or path.suffix.lstrip(".") or "xlsx").lower()
    df = build_template_frame()
    path.parent.mkdir(parents=True, exist_ok=True)
    if fmt == "csv":
        df.to_csv(path, index=False)
    elif fmt == "xlsx":
        with pd.ExcelWriter(path, engine="openpyxl") as writer:
            df.to_excel(writer, sheet_name=TEMPLATE_SHEET_NAME, index=False)
    else:
        raise ValueError(f"unsupported template format: {fmt}")
    return path
