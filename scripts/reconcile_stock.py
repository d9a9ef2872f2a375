#!/usr/bin/env python3
"""
Reconcile one warehouse's stock against its completed documents.

Prints expected vs. actual per (wood type, thickness) bucket and every
finding.  Read-only: nothing is repaired.  Exits 1 when the report has
discrepancies.

Uses --database-url, else STOCK_KERNEL_DATABASE_URL / DATABASE_URL.

Usage:
    python3 scripts/reconcile_stock.py --warehouse WH-MAIN
    python3 scripts/reconcile_stock.py --database-url postgresql://... --warehouse WH-MAIN --wood-type Teak --json
"""

import argparse
import json
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

W = 96


def _report_dict(report) -> dict:
    from stock_kernel.api.schemas import ReconciliationReportResponse

    return ReconciliationReportResponse.from_report(report).model_dump(mode="json")


def _print_report(report) -> None:
    print()
    print("=" * W)
    print(f"  STOCK RECONCILIATION  {report.warehouse_code}  ({report.checked_at:%Y-%m-%d %H:%M:%S %Z})")
    print("=" * W)
    print(
        f"  {'Wood type':<20} {'Thickness':<10} {'Receipts':>9} {'Out':>8} {'In':>8} "
        f"{'Expected':>9} {'Actual':>9} {'Diff':>7}"
    )
    print("  " + "-" * (W - 2))
    for row in report.rows:
        name = (row.wood_type_name or str(row.wood_type_id))[:20]
        marker = "" if row.is_consistent else "  <<"
        print(
            f"  {name:<20} {row.thickness:<10} {row.expected_receipts:>9} "
            f"{row.expected_transfers_out:>8} {row.expected_transfers_in:>8} "
            f"{row.expected_stock:>9} {row.actual_stock:>9} {row.discrepancy:>+7}{marker}"
        )
    if not report.rows:
        print("  (no stock and no completed documents)")
    print()
    for finding in report.findings:
        print(f"  [{finding.severity.value.upper()}] {finding.code.value}: {finding.message}")
    print(f"  Status: {report.status.value.upper()}")
    print()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Reconcile warehouse stock against completed documents")
    parser.add_argument("--database-url", default=None, help="SQLAlchemy database URL")
    parser.add_argument("--config", default=None, help="YAML config file")
    parser.add_argument("--warehouse", required=True, help="Warehouse code")
    parser.add_argument("--wood-type", default=None, help="Restrict to one wood type (by name)")
    parser.add_argument("--json", action="store_true", help="Print the report as JSON")
    args = parser.parse_args(argv)

    logging.disable(logging.CRITICAL)

    from sqlalchemy.exc import SQLAlchemyError

    from stock_kernel.config import load_config
    from stock_kernel.db.engine import init_engine_from_url, session_scope
    from stock_kernel.exceptions import StockKernelError
    from stock_kernel.services.reconciliation_service import ReconciliationService
    from stock_kernel.stores.warehouse_store import SqlWarehouseStore

    config = load_config(args.config)
    database_url = args.database_url or config.database_url

    try:
        init_engine_from_url(database_url, echo=False, lock_timeout_ms=config.lock_timeout_ms)
    except Exception as exc:
        logging.disable(logging.NOTSET)
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 2

    try:
        with session_scope() as session:
            store = SqlWarehouseStore(session)
            warehouse = store.get_by_code(args.warehouse)
            wood_type_id = store.get_wood_type_by_name(args.wood_type).id if args.wood_type else None
            report = ReconciliationService(session).reconcile(warehouse.id, wood_type_id)
    except (StockKernelError, SQLAlchemyError) as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 2
    finally:
        logging.disable(logging.NOTSET)

    if args.json:
        print(json.dumps(_report_dict(report), indent=2))
    else:
        _print_report(report)
    return 1 if report.has_discrepancies else 0


if __name__ == "__main__":
    sys.exit(main())
