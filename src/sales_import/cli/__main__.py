from __future__ import annotations

import argparse
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import psycopg2
from dotenv import load_dotenv

from sales_import.config.loader import DEFAULT_CONFIG_PATH, ConfigError, load_config
from sales_import.db.batch_insert import PostgresLedgerStore
from sales_import.db.catalog import CatalogError, PostgresCatalog
from sales_import.db.connection import db_connection
from sales_import.errors import NoValidRowsError, ParseError, ReconciliationError, SchemaError
from sales_import.logging.init import log_summary, setup_logging
from sales_import.models.config_models import ImportConfig
from sales_import.models.import_step import ImportStep
from sales_import.services.session import ImportSession
from sales_import.services.summary import render_summary_line
from sales_import.services.template import write_template

"""CLI entrypoint.

    sales-import [--debug] import FILE [--config PATH] [--map "RAW NAME=DEALER"]... [--dry-run]
    sales-import template OUT [--format xlsx|csv]

Exit codes:
    0  every row committed (or, with --dry-run, every row valid)
    1  fatal: config, file structure, database connection or catalog
    2  some rows invalid or rejected by the ledger store
    3  dealer names left unmatched; rerun with --map
"""

EXIT_SUCCESS_ALL = 0
EXIT_FATAL = 1
EXIT_PARTIAL_FAILURE = 2
EXIT_UNMATCHED_DEALERS = 3


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env so its connection settings win over the YAML database section."""
    try:
        if path.exists():
            load_dotenv(dotenv_path=path, override=override)
    except OSError as e:  # pragma: no cover
        print(f"WARNING: failed to load .env via python-dotenv: {e}")


def _parse_mapping(values: list[str] | None) -> dict[str, str]:
    mapping: dict[str, str] = {}
    for item in values or []:
        name, sep, dealer = item.rpartition("=")
        if not sep or not name.strip() or not dealer.strip():
            raise argparse.ArgumentTypeError(f"--map expects 'RAW NAME=DEALER', got {item!r}")
        mapping[name.strip()] = dealer.strip()
    return mapping


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="sales-import", description="Dealer sales ledger importer")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    imp = sub.add_parser("import", help="Import a CSV/XLSX dealer sales file")
    imp.add_argument("file", type=Path)
    imp.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="YAML config path")
    imp.add_argument(
        "--map",
        action="append",
        metavar="RAW NAME=DEALER",
        help="Map an unmatched dealer name to a dealer id or code (repeatable)",
    )
    imp.add_argument("--dry-run", action="store_true", help="Stop after validation; write nothing")

    tpl = sub.add_parser("template", help="Write the import template")
    tpl.add_argument("output", type=Path)
    tpl.add_argument("--format", choices=["xlsx", "csv"], default=None)
    return p.parse_args(argv)


@contextmanager
def _open_backends(cfg: ImportConfig) -> Iterator[tuple[Any, Any]]:  # pragma: no cover (thin wrapper)
    """Yield (catalog, ledger store) sharing one database connection."""
    with db_connection(cfg.database) as conn:
        yield (
            PostgresCatalog(conn, dealer_table=cfg.dealer_table, product_table=cfg.product_table),
            PostgresLedgerStore(conn, table=cfg.ledger_table),
        )


def _apply_cli_mappings(session: ImportSession, mapping: dict[str, str], logger: Any) -> bool:
    """Apply --map choices. Returns False when some dealer names remain unmatched."""
    lookup = {k.lower(): v for k, v in mapping.items()}
    for group in session.queue.groups:
        ref = lookup.get(group.key)
        if ref is None:
            continue
        dealer = session.find_dealer(ref)
        if dealer is None:
            logger.error(f"mapping: unknown dealer '{ref}' for '{group.raw_dealer_name}'")
            continue
        session.choose_dealer(group.raw_dealer_name, dealer.id)
        logger.info(f"mapping: '{group.raw_dealer_name}' -> {dealer.name} ({dealer.code})")

    if not session.queue.is_complete:
        for group in session.queue.pending:
            rows = ",".join(str(session.rows[i].row_number) for i in group.row_indices)
            logger.warning(f"unmatched dealer '{group.raw_dealer_name}' rows={rows}")
        return False
    session.apply_dealer_mappings()
    return True


def _run_template(args: argparse.Namespace, logger: Any) -> int:
    try:
        path = write_template(args.output, args.format)
    except (OSError, ValueError) as e:
        logger.error(f"template: {e}")
        return EXIT_FATAL
    logger.info(f"template written: {path}")
    return EXIT_SUCCESS_ALL


def _run_import(args: argparse.Namespace, logger: Any) -> int:
    try:
        mapping = _parse_mapping(args.map)
    except argparse.ArgumentTypeError as e:
        logger.error(str(e))
        return EXIT_FATAL
    try:
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    session = ImportSession(cfg)
    try:
        session.load(args.file)
    except (ParseError, SchemaError) as e:
        logger.error(f"file: {e}")
        return EXIT_FATAL

    try:
        with _open_backends(cfg) as (catalog, store):
            try:
                step = session.resolve(catalog)
            except CatalogError as e:
                logger.error(f"catalog: {e}")
                return EXIT_FATAL

            if step is ImportStep.DEALER_MAPPING and not _apply_cli_mappings(session, mapping, logger):
                session.flush_errors()
                return EXIT_UNMATCHED_DEALERS

            preview = session.preview()
            for row_number, reasons in preview.invalid_rows:
                logger.warning(f"row={row_number} {'; '.join(reasons)}")
            logger.info(f"preview total={preview.total} valid={preview.valid} invalid={preview.invalid}")

            if args.dry_run:
                session.flush_errors()
                log_summary(
                    f"rows={preview.total} valid={preview.valid} invalid={preview.invalid} dry_run=1"
                )
                return EXIT_SUCCESS_ALL if preview.invalid == 0 else EXIT_PARTIAL_FAILURE

            try:
                report = session.commit(store)
            except NoValidRowsError as e:
                session.flush_errors()
                logger.error(str(e))
                return EXIT_PARTIAL_FAILURE
    except ReconciliationError as e:
        logger.error(f"mapping: {e}")
        return EXIT_FATAL
    except psycopg2.Error as e:
        # 接続断・権限不足など
        logger.error(f"db: {e}")
        return EXIT_FATAL

    for err in report.errors:
        logger.error(f"row={err.row} insert failed: {err.message}")
    # log_summary adds the "SUMMARY " prefix itself
    log_summary(render_summary_line(report)[len("SUMMARY "):])
    return EXIT_SUCCESS_ALL if report.all_committed else EXIT_PARTIAL_FAILURE


def main(argv: list[str] | None = None) -> int:
    # None のときのみ sys.argv を読む (テストで main([]) を呼ぶため)
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    logger = setup_logging(debug=args.debug)
    if args.debug:
        logger.debug("debug mode enabled")

    if args.command == "template":
        return _run_template(args, logger)

    _load_env_file(Path(".env"), override=True)
    return _run_import(args, logger)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
