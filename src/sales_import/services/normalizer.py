from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any

from sales_import.models.sales_row import LedgerRecord, ResolvedRow

from .resolver import DEALER_NOT_FOUND, MISSING_DEALER_NAME

"""Row normalization and validation.

Every rule runs on every row and errors accumulate. Values are always derived
from the row's RawRow plus its resolution outcome, so normalizing an already
normalized row gives the same row back.

Sign convention: credit memo quantities end up negative (a positive input is
negated silently), invoice quantities must be positive. ``amount`` is never
read from the file; it is ``quantity * unit_price`` at commit time, which makes
it negative for credit memos.

Repeated (reference_number, product_name) pairs are allowed: one invoice may
list the same product twice at different batches or prices.
"""

__all__ = [
    "INVOICE",
    "CREDIT_MEMO",
    "PAYMENT_STATUSES",
    "normalize_transaction_type",
    "normalize_quantity",
    "parse_decimal",
    "normalize_row",
    "normalize_rows",
    "eligible_rows",
    "to_ledger_record",
]

INVOICE = "invoice"
CREDIT_MEMO = "credit_memo"

_TYPE_ALIASES = {
    "invoice": INVOICE,
    "inv": INVOICE,
    "creditmemo": CREDIT_MEMO,
    "credit": CREDIT_MEMO,
}

PAYMENT_STATUSES = frozenset({"pending", "paid", "overdue", "cancelled"})
DEFAULT_PAYMENT_STATUS = "pending"

ERR_TRANSACTION_TYPE = (
    "Invalid transaction type: {value}. Use 'invoice' or 'credit_memo' "
    "(or 'credit memo', 'Credit Memo', etc.)"
)
ERR_TRANSACTION_DATE = "Invalid transaction date"
ERR_QUANTITY = "Invalid quantity: must be a non-zero number"
ERR_INVOICE_QUANTITY = "Invalid quantity for invoice: must be positive"
ERR_UNIT_PRICE = "Invalid unit price: must be a non-negative number"
ERR_DISCOUNT = "Invalid discount amount: must be a number"
ERR_TAX = "Invalid tax amount: must be a number"
ERR_PAYMENT_STATUS = "Invalid payment status: {value}"
ERR_REFERENCE = "Missing reference number"
ERR_PRODUCT_NAME = "Missing product name"


def normalize_transaction_type(value: str | None) -> str | None:
    """``"Credit Memo"``, ``"credit-memo"``, ``"CREDIT"`` -> ``credit_memo``; ``"INV"`` -> ``invoice``."""
    if value is None:
        return None
    compact = "".join(ch for ch in str(value).lower() if not ch.isspace() and ch not in "-_")
    return _TYPE_ALIASES.get(compact)


def parse_decimal(value: Any) -> Decimal | None:
    """Parse a numeric cell. Returns None for blanks, text and NaN/inf."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, int):
        number = Decimal(value)
    else:
        text = str(value).strip().replace(",", "")
        if not text:
            return None
        try:
            number = Decimal(text)
        except InvalidOperation:
            return None
    if not number.is_finite():
        return None
    return number


def normalize_quantity(transaction_type: str | None, value: Any) -> tuple[Decimal | None, str | None]:
    """Apply the sign convention.

    Returns ``(quantity, error)``; exactly one of them is None.
    Anything that is not a credit memo (including an unknown type) is held to
    the invoice rule.
    """
    quantity = parse_decimal(value)
    if quantity is None or quantity == 0:
        return None, ERR_QUANTITY
    if transaction_type == CREDIT_MEMO:
        return -abs(quantity), None
    if quantity < 0:
        return None, ERR_INVOICE_QUANTITY
    return quantity, None


def _valid_iso_date(value: str | None) -> bool:
    if not value:
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def _dealer_errors(row: ResolvedRow) -> list[str]:
    if row.dealer_id is not None:
        return []
    if row.raw.dealer_name is None:
        return [MISSING_DEALER_NAME]
    return [f"{DEALER_NOT_FOUND}: {row.raw.dealer_name}"]


def normalize_row(row: ResolvedRow) -> ResolvedRow:
    """Return a normalized copy of ``row`` with a complete ``validation_errors`` list."""
    raw = row.raw
    errors = _dealer_errors(row)

    transaction_type = normalize_transaction_type(raw.transaction_type)
    if transaction_type is None:
        errors.append(ERR_TRANSACTION_TYPE.format(value=raw.transaction_type or ""))

    if not _valid_iso_date(raw.transaction_date):
        errors.append(ERR_TRANSACTION_DATE)

    if raw.reference_number is None:
        errors.append(ERR_REFERENCE)
    if raw.product_name is None:
        errors.append(ERR_PRODUCT_NAME)

    quantity, quantity_error = normalize_quantity(transaction_type, raw.quantity)
    if quantity_error is not None:
        errors.append(quantity_error)

    unit_price = parse_decimal(raw.unit_price)
    if unit_price is None or unit_price < 0:
        errors.append(ERR_UNIT_PRICE)
        unit_price = None

    discount = Decimal("0")
    if raw.discount_amount is not None:
        parsed = parse_decimal(raw.discount_amount)
        if parsed is None:
            errors.append(ERR_DISCOUNT)
        else:
            discount = parsed

    tax = Decimal("0")
    if raw.tax_amount is not None:
        parsed = parse_decimal(raw.tax_amount)
        if parsed is None:
            errors.append(ERR_TAX)
        else:
            tax = parsed

    payment_status = DEFAULT_PAYMENT_STATUS
    if raw.payment_status is not None:
        payment_status = raw.payment_status.strip().lower()
        if payment_status not in PAYMENT_STATUSES:
            errors.append(ERR_PAYMENT_STATUS.format(value=raw.payment_status))

    return replace(
        row,
        transaction_type=transaction_type,
        quantity=quantity,
        unit_price=unit_price,
        discount_amount=discount,
        tax_amount=tax,
        payment_status=payment_status,
        validation_errors=errors,
    )


def normalize_rows(rows: Sequence[ResolvedRow]) -> list[ResolvedRow]:
    return [normalize_row(r) for r in rows]


def eligible_rows(rows: Sequence[ResolvedRow]) -> list[ResolvedRow]:
    """Rows that may be committed: exactly those with no validation errors."""
    return [r for r in rows if r.is_eligible]


def to_ledger_record(row: ResolvedRow) -> LedgerRecord:
    """Build the store payload for an eligible row.

    Raises:
        ValueError: the row still has validation errors (or was never normalized)
    """
    if not row.is_eligible:
        raise ValueError(
            f"row {row.row_number} is not eligible for commit: {'; '.join(row.validation_errors)}"
        )
    raw = row.raw
    if (
        row.dealer_id is None
        or row.transaction_type is None
        or row.quantity is None
        or row.unit_price is None
        or raw.transaction_date is None
        or raw.reference_number is None
        or raw.product_name is None
    ):
        raise ValueError(f"row {row.row_number} has not been normalized")

    return LedgerRecord(
        row_number=raw.row_number,
        dealer_id=row.dealer_id,
        product_id=row.product_id,
        transaction_type=row.transaction_type,
        transaction_date=raw.transaction_date,
        reference_number=raw.reference_number,
        product_name=raw.product_name,
        product_code=row.product_code,
        quantity=row.quantity,
        unit_price=row.unit_price,
        amount=row.quantity * row.unit_price,
        discount_amount=row.discount_amount,
        tax_amount=row.tax_amount,
        payment_status=row.payment_status,
        payment_date=raw.payment_date,
        due_date=raw.due_date,
        notes=raw.notes,
    )
