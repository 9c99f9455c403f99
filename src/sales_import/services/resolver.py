from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from sales_import.models.catalog import CanonicalDealer, CanonicalProduct
from sales_import.models.sales_row import RawRow, ResolvedRow

from .reconciliation import ReconciliationQueue

"""Entity resolution against the dealer/product catalog.

Matching is case-insensitive exact match only: first on name, then on code.
There is no fuzzy matching. A dealer that does not match is left for the
operator (see ``ReconciliationQueue``); a product that does not match is kept
by name only.

A key shared by two different catalog entries (e.g. two dealers both called
"Sharma Agro") is ambiguous and never matches, so the result does not depend
on catalog order.
"""

__all__ = [
    "EntityIndex",
    "CatalogIndex",
    "DEALER_NOT_FOUND",
    "MISSING_DEALER_NAME",
    "resolve_rows",
]

logger = logging.getLogger(__name__)

DEALER_NOT_FOUND = "Dealer not found"
MISSING_DEALER_NAME = "Missing dealer name"

E = TypeVar("E", CanonicalDealer, CanonicalProduct)


def _key(value: str | None) -> str | None:
    if value is None:
        return None
    key = value.strip().lower()
    return key or None


def _build_lookup(pairs: Iterable[tuple[str | None, E]]) -> tuple[dict[str, E], frozenset[str]]:
    lookup: dict[str, E] = {}
    ambiguous: set[str] = set()
    for raw_key, entity in pairs:
        key = _key(raw_key)
        if key is None:
            continue
        existing = lookup.get(key)
        if existing is not None and existing.id != entity.id:
            ambiguous.add(key)
        lookup[key] = entity
    for key in ambiguous:
        del lookup[key]
    return lookup, frozenset(ambiguous)


@dataclass(frozen=True)
class EntityIndex(Generic[E]):
    """Two case-normalized dictionaries (by name, by code) over one catalog snapshot."""
    by_name: dict[str, E] = field(default_factory=dict)
    by_code: dict[str, E] = field(default_factory=dict)
    ambiguous_names: frozenset[str] = frozenset()
    ambiguous_codes: frozenset[str] = frozenset()

    @classmethod
    def build(cls, entities: Iterable[E]) -> EntityIndex[E]:
        items = list(entities)
        by_name, amb_names = _build_lookup((e.name, e) for e in items)
        by_code, amb_codes = _build_lookup((e.code, e) for e in items)
        if amb_names or amb_codes:
            logger.warning(
                "catalog has ambiguous keys (left for manual resolution): names=%s codes=%s",
                sorted(amb_names),
                sorted(amb_codes),
            )
        return cls(
            by_name=by_name,
            by_code=by_code,
            ambiguous_names=amb_names,
            ambiguous_codes=amb_codes,
        )

    def lookup(self, name: str | None, code: str | None = None) -> E | None:
        """Name first; code only when the name misses and a code was given."""
        name_key = _key(name)
        if name_key is not None and name_key in self.by_name:
            return self.by_name[name_key]
        code_key = _key(code)
        if code_key is not None:
            return self.by_code.get(code_key)
        return None

    def resolve(self, name: str | None, code: str | None = None) -> str | None:
        entity = self.lookup(name, code)
        return entity.id if entity is not None else None


@dataclass(frozen=True)
class CatalogIndex:
    """Dealer and product indices, built once per import run."""
    dealers: EntityIndex[CanonicalDealer]
    products: EntityIndex[CanonicalProduct]
    dealers_by_id: dict[str, CanonicalDealer]

    @classmethod
    def build(
        cls,
        dealers: Sequence[CanonicalDealer],
        products: Sequence[CanonicalProduct],
    ) -> CatalogIndex:
        return cls(
            dealers=EntityIndex.build(dealers),
            products=EntityIndex.build(products),
            dealers_by_id={d.id: d for d in dealers},
        )


def _resolve_row(raw: RawRow, catalog: CatalogIndex) -> ResolvedRow:
    errors: list[str] = []
    dealer = catalog.dealers.lookup(raw.dealer_name, raw.dealer_code)
    if dealer is None:
        if raw.dealer_name is None:
            errors.append(MISSING_DEALER_NAME)
        else:
            errors.append(f"{DEALER_NOT_FOUND}: {raw.dealer_name}")

    product = catalog.products.lookup(raw.product_name, raw.product_code)
    product_code = raw.product_code
    if product is not None and product_code is None:
        product_code = product.code

    return ResolvedRow(
        raw=raw,
        dealer_id=dealer.id if dealer is not None else None,
        matched_dealer_code=dealer.code if dealer is not None else None,
        product_id=product.id if product is not None else None,
        product_code=product_code,
        validation_errors=errors,
    )


def resolve_rows(
    raw_rows: Sequence[RawRow], catalog: CatalogIndex
) -> tuple[list[ResolvedRow], ReconciliationQueue]:
    """Resolve every row and collect unresolved dealer names into a queue."""
    resolved = [_resolve_row(r, catalog) for r in raw_rows]
    queue = ReconciliationQueue.from_rows(resolved)
    matched = sum(1 for r in resolved if r.dealer_id is not None)
    products = sum(1 for r in resolved if r.product_id is not None)
    logger.info(
        "resolved dealers=%d/%d products=%d/%d unmatched_dealer_names=%d",
        matched,
        len(resolved),
        products,
        len(resolved),
        len(queue.groups),
    )
    return resolved, queue
