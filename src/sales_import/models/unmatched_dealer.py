from __future__ import annotations

from dataclasses import dataclass

__all__ = [
    "UnmatchedDealerGroup",
]


@dataclass(frozen=True)
class UnmatchedDealerGroup:
    """All rows sharing one unresolved dealer name (case-insensitive).

    ``raw_dealer_name`` keeps the first spelling seen in the sheet; ``row_indices``
    are 0-based positions into the resolved row list.
    """
    raw_dealer_name: str
    row_indices: tuple[int, ...]
    chosen_dealer_id: str | None = None

    @property
    def key(self) -> str:
        return self.raw_dealer_name.strip().lower()

    @property
    def is_resolved(self) -> bool:
        return self.chosen_dealer_id is not None
