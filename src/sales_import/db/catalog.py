from __future__ import annotations

from typing import Any, Protocol

from sales_import.models.catalog import CanonicalDealer, CanonicalProduct

"""Read-only access to the dealer and product master."""

__all__ = [
    "CatalogError",
    "CatalogSource",
    "PostgresCatalog",
]


class CatalogError(Exception):
    pass


class CatalogSource(Protocol):
    def list_dealers(self) -> list[CanonicalDealer]: ...

    def list_products(self) -> list[CanonicalProduct]: ...


class PostgresCatalog:
    """CatalogSource reading ``dealers(id, dealer_code, business_name)`` and
    ``products(id, product_code, product_name)``."""

    def __init__(
        self,
        connection: Any,
        dealer_table: str = "dealers",
        product_table: str = "products",
    ) -> None:
        self._conn = connection
        self.dealer_table = dealer_table
        self.product_table = product_table

    def _fetch(self, sql: str) -> list[tuple[Any, ...]]:
        try:
            with self._conn.cursor() as cur:
                cur.execute(sql)
                return list(cur.fetchall())
        except Exception as e:
            raise CatalogError(str(e)) from e

    def list_dealers(self) -> list[CanonicalDealer]:
        rows = self._fetch(
            f"SELECT id, dealer_code, business_name FROM {self.dealer_table} ORDER BY business_name"
        )
        return [CanonicalDealer(id=str(r[0]), code=r[1], name=r[2]) for r in rows]

    def list_products(self) -> list[CanonicalProduct]:
        rows = self._fetch(
            f"SELECT id, product_code, product_name FROM {self.product_table} ORDER BY product_name"
        )
        return [CanonicalProduct(id=str(r[0]), code=r[1], name=r[2]) for r in rows]
