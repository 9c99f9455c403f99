from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from psycopg2.extras import execute_values

from sales_import.models.sales_row import LEDGER_COLUMNS, LedgerRecord

"""Ledger store: bulk and single-row INSERT into the sales ledger.

The store is append-only from the importer's point of view; it never updates
or deletes ledger rows. Each ``insert_batch``/``insert_one`` call is its own
transaction (COMMIT on success, ROLLBACK on failure), so batches already
committed stay committed if a later batch fails or the run is abandoned.

Any driver error, including statement timeouts and dropped connections, is
raised as ``BatchInsertError``; the batch committer decides what to do with it.
"""

__all__ = [
    "BatchInsertError",
    "InsertResult",
    "LedgerStore",
    "PostgresLedgerStore",
    "batch_insert",
]


class BatchInsertError(Exception):
    pass


@dataclass(frozen=True)
class InsertResult:
    inserted_rows: int


class LedgerStore(Protocol):
    """What the batch committer needs from a ledger store."""

    def insert_batch(self, records: Sequence[LedgerRecord]) -> InsertResult: ...

    def insert_one(self, record: LedgerRecord) -> InsertResult: ...


def batch_insert(
    cursor: Any,
    table: str,
    columns: Sequence[str],
    rows: Iterable[Sequence[Any]],
    page_size: int = 1000,
) -> InsertResult:
    """Perform a batched INSERT using psycopg2.extras.execute_values.

    Parameters
    ----------
    cursor: psycopg2 cursor
    table: target table (validated identifier, see config schema)
    columns: insert columns
    rows: value sequences in ``columns`` order
    page_size: execute_values page size
    """
    rows_list = list(rows)
    if not rows_list:
        return InsertResult(inserted_rows=0)

    cols_sql = ",".join(f'"{c}"' for c in columns)
    sql = f"INSERT INTO {table} ({cols_sql}) VALUES %s"
    try:
        execute_values(cursor, sql, rows_list, page_size=page_size)
    except Exception as e:
        raise BatchInsertError(str(e)) from e
    return InsertResult(inserted_rows=len(rows_list))


class PostgresLedgerStore:
    """LedgerStore backed by a psycopg2 connection."""

    def __init__(self, connection: Any, table: str = "dealer_sales") -> None:
        self._conn = connection
        self.table = table

    def insert_batch(self, records: Sequence[LedgerRecord]) -> InsertResult:
        return self._insert(records)

    def insert_one(self, record: LedgerRecord) -> InsertResult:
        return self._insert([record])

    def _insert(self, records: Sequence[LedgerRecord]) -> InsertResult:
        rows = [r.values() for r in records]
        try:
            with self._conn.cursor() as cur:
                result = batch_insert(cur, self.table, LEDGER_COLUMNS, rows, page_size=max(len(rows), 1))
            self._conn.commit()
        except BatchInsertError:
            self._rollback()
            raise
        except Exception as e:
            # cursor/commit failures (connection lost, serialization failure, ...)
            self._rollback()
            raise BatchInsertError(str(e)) from e
        return result

    def _rollback(self) -> None:
        try:
            self._conn.rollback()
        except Exception:  # pragma: no cover - connection already gone
            pass
