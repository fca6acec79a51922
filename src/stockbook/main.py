from __future__ import annotations

import argparse
import logging
from typing import Sequence

from stockbook.application.container import build_container
from stockbook.config import get_app_paths, load_settings
from stockbook.logging_config import setup_logging


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="stockbook", description="Stock ledger and supplier payables.")
    parser.add_argument("--db", help="SQLite database path (defaults to the per-user app directory)")
    sub = parser.add_subparsers(dest="command", required=True)

    imp = sub.add_parser("import-stock", help="reconcile stock to an .xlsx/.csv sheet")
    imp.add_argument("path")

    exp = sub.add_parser("export-payables", help="write the payables workbook")
    exp.add_argument("path")

    sub.add_parser("verify", help="report products whose cached stock differs from the ledger")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = _parser().parse_args(argv)

    paths = get_app_paths()
    setup_logging(paths.logs_dir, level=logging.INFO)
    container = build_container(args.db or paths.db_path, load_settings())

    if args.command == "import-stock":
        summary = container.excel.import_stock_sheet(args.path)
        print(
            f"created={summary.created} updated={summary.updated} skipped={summary.skipped} "
            f"movements={summary.movements} errors={len(summary.errors)}"
        )
        for err in summary.errors:
            print(f"  {err}")
        return 1 if summary.errors else 0

    if args.command == "export-payables":
        container.reporting.export_payables_excel(args.path)
        print(f"Payables written to {args.path}")
        return 0

    drift = container.inventory.verify_stock_integrity()
    for sku, cached, ledger in drift:
        print(f"{sku}: cached={cached} ledger={ledger}")
    if not drift:
        print("Stock matches the ledger.")
    return 1 if drift else 0


if __name__ == "__main__":
    raise SystemExit(main())
