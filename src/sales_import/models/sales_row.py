from __future__ import annotations

from dataclasses import asdict, dataclass, field
from decimal import Decimal
from typing import Any

"""Row models for the dealer sales import.

RawRow is the as-parsed sheet record. ResolvedRow carries the resolution and
normalization outcome; every stage derives a new ResolvedRow with
``dataclasses.replace`` instead of mutating the previous one. LedgerRecord is
the shape written to the ledger store.
"""

__all__ = [
    "RawRow",
    "ResolvedRow",
    "LedgerRecord",
    "LEDGER_COLUMNS",
]


@dataclass(frozen=True)
class RawRow:
    """One sheet row, straight from the file (dates already normalized to YYYY-MM-DD).

    ``row_number`` is the spreadsheet line: header = 1, first data row = 2.
    """
    row_number: int
    dealer_name: str | None
    transaction_type: str | None
    transaction_date: str | None  # None when the cell could not be read as a date
    reference_number: str | None
    product_name: str | None
    quantity: Any
    unit_price: Any
    dealer_code: str | None = None
    product_code: str | None = None
    discount_amount: Any = None
    tax_amount: Any = None
    payment_status: str | None = None
    payment_date: str | None = None
    due_date: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class ResolvedRow:
    """RawRow plus its resolution outcome and normalized values.

    A row is eligible for commit if and only if ``validation_errors`` is empty.
    """
    raw: RawRow
    dealer_id: str | None = None
    matched_dealer_code: str | None = None
    product_id: str | None = None  # product matching is optional
    product_code: str | None = None
    transaction_type: str | None = None  # "invoice" | "credit_memo" after normalization
    quantity: Decimal | None = None  # sign-corrected
    unit_price: Decimal | None = None
    discount_amount: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0")
    payment_status: str = "pending"
    validation_errors: list[str] = field(default_factory=list)

    @property
    def row_number(self) -> int:
        return self.raw.row_number

    @property
    def is_eligible(self) -> bool:
        return not self.validation_errors


LEDGER_COLUMNS: tuple[str, ...] = (
    "dealer_id",
    "product_id",
    "transaction_type",
    "transaction_date",
    "reference_number",
    "product_name",
    "product_code",
    "quantity",
    "unit_price",
    "amount",
    "discount_amount",
    "tax_amount",
    "payment_status",
    "payment_date",
    "due_date",
    "notes",
)


@dataclass(frozen=True)
class LedgerRecord:
    """A commit-ready sales ledger row. ``amount`` is always ``quantity * unit_price``."""
    row_number: int  # source sheet line, not written to the store
    dealer_id: str
    product_id: str | None
    transaction_type: str
    transaction_date: str
    reference_number: str
    product_name: str
    product_code: str | None
    quantity: Decimal
    unit_price: Decimal
    amount: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    payment_status: str
    payment_date: str | None
    due_date: str | None
    notes: str | None

    def to_dict(self) -> dict[str, Any]:
        """Store payload (``row_number`` excluded)."""
        data = asdict(self)
        data.pop("row_number")
        return data

    def values(self) -> tuple[Any, ...]:
        """Column values in LEDGER_COLUMNS order."""
        return tuple(getattr(self, c) for c in LEDGER_COLUMNS)
