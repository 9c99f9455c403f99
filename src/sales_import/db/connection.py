from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import psycopg2

from sales_import.models.config_models import DatabaseConfig

"""PostgreSQL connection helper.

接続情報の優先順位:
    1. DATABASE_URL / PGDSN (DSN 全体)
    2. 個別 PGHOST / PGPORT / PGUSER / PGPASSWORD / PGDATABASE
    3. config/import.yml の database セクション (不足分のフォールバック)
``.env`` is loaded by the CLI before this runs, so its values count as environment.
"""

__all__ = [
    "build_dsn",
    "db_connection",
]


def build_dsn(db_cfg: DatabaseConfig) -> str:
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if dsn:
        return dsn
    host = os.getenv("PGHOST", db_cfg.host or "localhost")
    port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
    user = os.getenv("PGUSER", db_cfg.user or "postgres")
    password = os.getenv("PGPASSWORD", db_cfg.password or "")
    database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn


@contextmanager
def db_connection(db_cfg: DatabaseConfig) -> Iterator[Any]:  # pragma: no cover (thin wrapper)
    """Yield a psycopg2 connection with explicit transactions (autocommit off).

    The ledger store commits per batch; nothing is committed here on exit.
    """
    conn = psycopg2.connect(build_dsn(db_cfg))
    conn.autocommit = False
    try:
        yield conn
    finally:
        try:
            conn.close()
        except Exception:  # pragma: no cover
            pass
