from __future__ import annotations

import io
import math
import re
import warnings
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any

import pandas as pd

from sales_import.errors import ParseError
from sales_import.models.sales_row import RawRow

"""Sheet reader for dealer sales files.

- Header is the first row; column names are stripped and lower-cased.
- Only the first sheet of a workbook is read.
- Fully empty rows are skipped; NaN and blank strings become None.
- Date columns are normalized to ``YYYY-MM-DD`` (see ``excel_date_to_string``).

CSV is read with every cell as text so codes like ``007`` survive untouched.
"""

__all__ = [
    "SheetData",
    "read_sheet",
    "build_raw_rows",
    "excel_date_to_string",
    "EXCEL_EPOCH",
]

# Spreadsheet serial day 0. Serial 1 = 1899-12-31 (the usual off-by-one convention).
EXCEL_EPOCH = datetime(1899, 12, 30)

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}")
_NUMERIC_RE = re.compile(r"^-?\d+(\.\d+)?$")

_ZIP_MAGIC = b"PK\x03\x04"  # xlsx
_OLE_MAGIC = b"\xd0\xcf\x11\xe0"  # legacy xls
_EXCEL_SUFFIXES = {".xlsx", ".xlsm", ".xls"}


@dataclass
class SheetData:
    sheet_name: str
    columns: list[str]
    rows: list[dict[str, Any]]  # column -> cleaned value
    row_numbers: list[int]  # sheet line of each entry in rows (header = 1)


def _serial_to_date(serial: float) -> str | None:
    try:
        return (EXCEL_EPOCH + timedelta(days=serial)).date().isoformat()
    except (OverflowError, ValueError):
        return None


def excel_date_to_string(value: Any) -> str | None:
    """Normalize a date cell to ``YYYY-MM-DD``.

    Accepts ISO-like strings (date part kept), spreadsheet serial numbers
    (as numbers or numeric strings), ``datetime``/``date`` objects and, as a
    last resort, anything ``pandas.to_datetime`` understands. Returns None when
    nothing works; the row is then rejected by validation, not by the parser.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        if pd.isna(value):  # NaT
            return None
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (int, float)):
        if isinstance(value, float) and math.isnan(value):
            return None
        return _serial_to_date(float(value))

    text = str(value).strip()
    if not text:
        return None
    if _ISO_DATE_RE.match(text):
        return text.split("T")[0][:10]
    if _NUMERIC_RE.match(text):
        return _serial_to_date(float(text))

    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        parsed = pd.to_datetime(text, errors="coerce")
    if pd.isna(parsed):
        return None
    return parsed.date().isoformat()


def _clean_cell(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    if value is pd.NaT:
        return None
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return value


def _detect_kind(source: Path | bytes, file_name: str | None) -> str:
    name = file_name or (source.name if isinstance(source, Path) else "")
    suffix = Path(name).suffix.lower()
    if suffix == ".csv":
        return "csv"
    if suffix in _EXCEL_SUFFIXES:
        return "excel"
    if isinstance(source, bytes):
        head = source[:8]
    else:
        with source.open("rb") as f:
            head = f.read(8)
    if head.startswith(_ZIP_MAGIC) or head.startswith(_OLE_MAGIC):
        return "excel"
    return "csv"


def read_sheet(source: Path | str | bytes, file_name: str | None = None) -> SheetData:
    """Read the first sheet of a CSV/XLSX payload.

    Parameters
    ----------
    source: file path or the raw file bytes (e.g. an upload body)
    file_name: name used for format detection and messages when ``source`` is bytes

    Raises
    ------
    ParseError: the payload cannot be decoded or contains no data rows
    """
    if isinstance(source, str):
        source = Path(source)
    name = file_name or (source.name if isinstance(source, Path) else "<upload>")

    try:
        kind = _detect_kind(source, file_name)
        handle: Any = io.BytesIO(source) if isinstance(source, bytes) else source
        if kind == "csv":
            # blank lines kept so row_numbers match the sheet
            df = pd.read_csv(
                handle,
                dtype=str,
                keep_default_na=False,
                skip_blank_lines=False,
                encoding="utf-8-sig",
            )
        else:
            df = pd.read_excel(handle, sheet_name=0, dtype=object)
    except Exception as e:
        raise ParseError(f"Failed to parse file '{name}': {e}") from e

    columns = [str(c).strip().lower() for c in df.columns]
    rows: list[dict[str, Any]] = []
    row_numbers: list[int] = []
    for offset, raw in enumerate(df.itertuples(index=False, name=None)):
        values = [_clean_cell(v) for v in raw]
        if all(v is None for v in values):
            continue
        rows.append(dict(zip(columns, values, strict=False)))
        row_numbers.append(offset + 2)  # line 1 is the header

    if not rows:
        raise ParseError(f"File '{name}' contains no data rows")

    return SheetData(sheet_name=name, columns=columns, rows=rows, row_numbers=row_numbers)


def _text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        # Excel はコードを数値で持つことがある (例: 1001.0)
        return str(int(value))
    return str(value).strip() or None


def _build_raw_row(row_number: int, row: Mapping[str, Any]) -> RawRow:
    return RawRow(
        row_number=row_number,
        dealer_name=_text(row.get("dealer_name")),
        dealer_code=_text(row.get("dealer_code")),
        transaction_type=_text(row.get("transaction_type")),
        transaction_date=excel_date_to_string(row.get("transaction_date")),
        reference_number=_text(row.get("reference_number")),
        product_name=_text(row.get("product_name")),
        product_code=_text(row.get("product_code")),
        quantity=row.get("quantity"),
        unit_price=row.get("unit_price"),
        discount_amount=row.get("discount_amount"),
        tax_amount=row.get("tax_amount"),
        payment_status=_text(row.get("payment_status")),
        payment_date=excel_date_to_string(row.get("payment_date")),
        due_date=excel_date_to_string(row.get("due_date")),
        notes=_text(row.get("notes")),
    )


def build_raw_rows(sheet: SheetData) -> list[RawRow]:
    """Turn cleaned sheet records into immutable RawRows, in sheet order."""
    return [_build_raw_row(n, row) for n, row in zip(sheet.row_numbers, sheet.rows, strict=True)]
