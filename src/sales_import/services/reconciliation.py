from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace

from sales_import.errors import ReconciliationError
from sales_import.models.catalog import CanonicalDealer
from sales_import.models.sales_row import ResolvedRow
from sales_import.models.unmatched_dealer import UnmatchedDealerGroup

"""Manual dealer reconciliation.

Rows whose dealer could not be matched are grouped by raw dealer name
(case-insensitive), so the operator picks a canonical dealer once per name.
Both ``choose`` and ``apply_resolutions`` return new values; nothing is
modified in place, so a recorded set of choices can be replayed.
"""

__all__ = [
    "ReconciliationQueue",
    "apply_resolutions",
]

_DEALER_NOT_FOUND_PREFIX = "Dealer not found"


@dataclass(frozen=True)
class ReconciliationQueue:
    groups: tuple[UnmatchedDealerGroup, ...] = ()

    @classmethod
    def from_rows(cls, rows: Sequence[ResolvedRow]) -> ReconciliationQueue:
        """One group per distinct unresolved dealer name, in first-seen order.

        Rows without any dealer name cannot be mapped by name and are left out;
        they stay invalid.
        """
        order: list[str] = []
        names: dict[str, str] = {}
        indices: dict[str, list[int]] = {}
        for idx, row in enumerate(rows):
            name = row.raw.dealer_name
            if row.dealer_id is not None or not name:
                continue
            key = name.strip().lower()
            if key not in indices:
                order.append(key)
                names[key] = name
                indices[key] = []
            indices[key].append(idx)
        return cls(
            groups=tuple(
                UnmatchedDealerGroup(raw_dealer_name=names[k], row_indices=tuple(indices[k]))
                for k in order
            )
        )

    def __len__(self) -> int:
        return len(self.groups)

    @property
    def is_complete(self) -> bool:
        return all(g.is_resolved for g in self.groups)

    @property
    def pending(self) -> tuple[UnmatchedDealerGroup, ...]:
        return tuple(g for g in self.groups if not g.is_resolved)

    def get(self, raw_dealer_name: str) -> UnmatchedDealerGroup:
        key = raw_dealer_name.strip().lower()
        for group in self.groups:
            if group.key == key:
                return group
        raise ReconciliationError(f"No unmatched dealer named '{raw_dealer_name}'")

    def choose(self, raw_dealer_name: str, dealer_id: str) -> ReconciliationQueue:
        """Return a new queue with ``dealer_id`` chosen for the named group."""
        target = self.get(raw_dealer_name)
        return ReconciliationQueue(
            groups=tuple(
                replace(g, chosen_dealer_id=dealer_id) if g is target else g
                for g in self.groups
            )
        )

    def resolutions(self) -> dict[str, str]:
        """Chosen dealer id per lower-cased raw name."""
        return {g.key: g.chosen_dealer_id for g in self.groups if g.chosen_dealer_id is not None}


def apply_resolutions(
    rows: Sequence[ResolvedRow],
    queue: ReconciliationQueue,
    dealers_by_id: Mapping[str, CanonicalDealer],
) -> list[ResolvedRow]:
    """Fan each chosen dealer out to every row of its group.

    The "Dealer not found" entry is removed from those rows; other errors stay.
    Groups without a choice leave their rows untouched.

    Raises:
        ReconciliationError: a chosen dealer id is not in the catalog
    """
    updated = list(rows)
    for group in queue.groups:
        if group.chosen_dealer_id is None:
            continue
        dealer = dealers_by_id.get(group.chosen_dealer_id)
        if dealer is None:
            raise ReconciliationError(
                f"Unknown dealer id '{group.chosen_dealer_id}' chosen for '{group.raw_dealer_name}'"
            )
        for idx in group.row_indices:
            row = updated[idx]
            updated[idx] = replace(
                row,
                dealer_id=dealer.id,
                matched_dealer_code=dealer.code,
                validation_errors=[
                    e for e in row.validation_errors if not e.startswith(_DEALER_NOT_FOUND_PREFIX)
                ],
            )
    return updated
