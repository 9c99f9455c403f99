from __future__ import annotations

from dataclasses import dataclass

"""Canonical master records owned by the external catalog.

The import only ever reads these; it never creates or edits dealers or products.
"""

__all__ = [
    "CanonicalDealer",
    "CanonicalProduct",
]


@dataclass(frozen=True)
class CanonicalDealer:
    id: str
    code: str | None
    name: str


@dataclass(frozen=True)
class CanonicalProduct:
    id: str
    code: str | None
    name: str
