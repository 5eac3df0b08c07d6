#!/usr/bin/env python3
"""
Operate on inventory lots from the command line.

Settings come from get_active_config(): --config (or $INVENTORY_CONFIG) for the
YAML file, --database-url (or $DATABASE_URL) for the database.

Usage:
    python3 scripts/batch_cli.py [--config PATH] [--database-url URL] <command> [options]

Examples:
    # Create the tables
    python3 scripts/batch_cli.py --database-url sqlite:///inventory.db init-db

    # Receive 50 units of a size, expiring mid-2026
    python3 scripts/batch_cli.py receive --product-id <uuid> --size-id <uuid> \\
        --quantity 50 --lot-number L-0425 --expiry 2026-06-30 --cost 4.25

    # Preview which lots an order would draw from, then commit it
    python3 scripts/batch_cli.py allocate --size-id <uuid> --quantity 8
    python3 scripts/batch_cli.py sell --size-id <uuid> --quantity 8 --reference-id SO-1001

    # Lots expiring in the next 30 days
    python3 scripts/batch_cli.py expiring --days 30
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from uuid import UUID

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

W = 78


def _iso_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid date {value!r}, expected YYYY-MM-DD")


def _decimal(value: str) -> Decimal:
    try:
        return Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"invalid decimal {value!r}")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Receive, allocate and audit inventory lots (FEFO).",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="YAML settings file (default: $INVENTORY_CONFIG, else built-in defaults).",
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="Database URL; overrides the settings file and $DATABASE_URL.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create the inventory tables.")

    receive = sub.add_parser("receive", help="Receive a new lot.")
    receive.add_argument("--product-id", type=UUID, required=True)
    receive.add_argument("--size-id", type=UUID, required=True)
    receive.add_argument("--quantity", type=int, required=True)
    receive.add_argument("--lot-number", required=True)
    receive.add_argument(
        "--batch-number",
        default=None,
        help="Batch number (default: generated PREFIX-YYMM-NNNN).",
    )
    receive.add_argument("--expiry", type=_iso_date, default=None, help="YYYY-MM-DD")
    receive.add_argument("--manufactured", type=_iso_date, default=None, help="YYYY-MM-DD")
    receive.add_argument("--cost", type=_decimal, default=None, help="Cost per unit.")
    receive.add_argument("--supplier-id", type=UUID, default=None)
    receive.add_argument("--notes", default=None)

    allocate = sub.add_parser("allocate", help="Preview a FEFO allocation (no writes).")
    allocate.add_argument("--size-id", type=UUID, required=True)
    allocate.add_argument("--quantity", type=int, required=True)

    sell = sub.add_parser("sell", help="Allocate and deduct in one transaction.")
    sell.add_argument("--size-id", type=UUID, required=True)
    sell.add_argument("--quantity", type=int, required=True)
    sell.add_argument("--reference-id", default=None)
    sell.add_argument("--reference-type", default="order")

    expiring = sub.add_parser("expiring", help="List lots expiring soon.")
    expiring.add_argument(
        "--days",
        type=int,
        default=None,
        help="Window in days (default: expiry_warning_days from settings).",
    )

    history = sub.add_parser("history", help="Show the audit trail of a lot.")
    history.add_argument("--batch-id", type=UUID, required=True)

    reconcile = sub.add_parser("reconcile", help="Rebuild a size's stock counter from its lots.")
    reconcile.add_argument("--size-id", type=UUID, required=True)

    return parser


# =============================================================================
# Commands
# =============================================================================


def _cmd_init_db(args, service_factory) -> int:
    from inventory_kernel.db.engine import create_tables

    create_tables()
    print("  Tables created.")
    return 0


def _cmd_receive(args, service_factory) -> int:
    from inventory_kernel.db.engine import session_scope

    with session_scope() as session:
        batch = service_factory(session).create_batch(
            product_id=args.product_id,
            product_size_id=args.size_id,
            quantity=args.quantity,
            lot_number=args.lot_number,
            batch_number=args.batch_number,
            expiry_date=args.expiry,
            manufacturing_date=args.manufactured,
            cost_per_unit=args.cost,
            supplier_id=args.supplier_id,
            notes=args.notes,
        )

    print(f"  Received {batch.quantity} units")
    print(f"  Batch:  {batch.batch_number}  (lot {batch.lot_number})")
    print(f"  Id:     {batch.id}")
    print(f"  Expiry: {batch.expiry_date or '-'}")
    return 0


def _print_allocations(allocations) -> None:
    print(f"  {'Lot':<20} {'Expiry':<12} {'Qty':>8}  Batch id")
    print(f"  {'-'*20} {'-'*12} {'-'*8}  {'-'*36}")
    for a in allocations:
        expiry = a.expiry_date.isoformat() if a.expiry_date else "-"
        print(f"  {a.lot_number:<20} {expiry:<12} {a.quantity:>8}  {a.batch_id}")
    print(f"  {'':<20} {'TOTAL':<12} {sum(a.quantity for a in allocations):>8}")


def _cmd_allocate(args, service_factory) -> int:
    from inventory_kernel.db.engine import session_scope

    with session_scope() as session:
        allocations = service_factory(session).allocate_quantity(args.size_id, args.quantity)
        session.rollback()

    print(f"  Allocation preview for {args.quantity} units (nothing written):")
    _print_allocations(allocations)
    return 0


def _cmd_sell(args, service_factory) -> int:
    from inventory_kernel.db.engine import session_scope

    with session_scope() as session:
        allocations = service_factory(session).allocate_and_deduct(
            args.size_id,
            args.quantity,
            reference_id=args.reference_id,
            reference_type=args.reference_type,
        )

    print(f"  Deducted {args.quantity} units:")
    _print_allocations(allocations)
    return 0


def _cmd_expiring(args, service_factory) -> int:
    from inventory_kernel.db.engine import session_scope

    with session_scope() as session:
        rows = service_factory(session).get_expiring_batches(args.days)

    if not rows:
        print("  No lots expiring in the window.")
        return 0

    print()
    print("=" * W)
    print("EXPIRING LOTS".center(W))
    print("=" * W)
    print(f"  {'SKU':<16} {'Lot':<16} {'Expiry':<12} {'Days':>6} {'Avail':>8} {'At risk':>10}")
    print(f"  {'-'*16} {'-'*16} {'-'*12} {'-'*6} {'-'*8} {'-'*10}")
    for row in rows:
        risk = row.value_at_risk
        risk_str = f"{risk:,.2f}" if risk is not None else "-"
        print(
            f"  {(row.sku or '-'):<16} {row.batch.lot_number:<16} "
            f"{row.batch.expiry_date.isoformat():<12} {row.days_until_expiry:>6} "
            f"{row.batch.quantity_available:>8} {risk_str:>10}"
        )
    print()
    return 0


def _cmd_history(args, service_factory) -> int:
    from inventory_kernel.db.engine import session_scope

    with session_scope() as session:
        service = service_factory(session)
        batch = service.get_batch(args.batch_id)
        txns = service.get_batch_transactions(args.batch_id)

    print(f"  Lot {batch.lot_number}  |  {batch.status.value.upper()}  |  "
          f"{batch.quantity_available}/{batch.quantity} available")
    print(f"  {'When':<26} {'Type':<11} {'Qty':>6}  {'Reference':<20} Notes")
    print(f"  {'-'*26} {'-'*11} {'-'*6}  {'-'*20} {'-'*20}")
    for t in txns:
        ref = f"{t.reference_type}:{t.reference_id}" if t.reference_id else "-"
        print(
            f"  {t.created_at.isoformat():<26} {t.transaction_type.value:<11} "
            f"{t.quantity:>6}  {ref:<20} {t.notes or ''}"
        )
    return 0


def _cmd_reconcile(args, service_factory) -> int:
    from inventory_kernel.db.engine import session_scope

    with session_scope() as session:
        result = service_factory(session).reconcile_stock_counter(args.size_id)

    print(f"  Recorded: {result.recorded}")
    print(f"  Computed: {result.computed}")
    if result.in_sync:
        print("  Counter in sync.")
    else:
        print(f"  Drift {result.drift:+d} corrected.")
    return 0


_COMMANDS = {
    "init-db": _cmd_init_db,
    "receive": _cmd_receive,
    "allocate": _cmd_allocate,
    "sell": _cmd_sell,
    "expiring": _cmd_expiring,
    "history": _cmd_history,
    "reconcile": _cmd_reconcile,
}


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    # Lazy imports so we fail fast on args first
    from inventory_config import get_active_config
    from inventory_kernel.db.engine import init_engine_from_url, reset_engine
    from inventory_kernel.db.immutability import register_immutability_listeners
    from inventory_kernel.exceptions import InventoryKernelError
    from inventory_kernel.logging_config import configure_logging
    from inventory_services import BatchInventoryService

    environ = dict(os.environ)
    if args.database_url:
        environ["DATABASE_URL"] = args.database_url

    try:
        config = get_active_config(args.config, environ=environ)
    except (OSError, ValueError) as e:
        print(f"ERROR: Failed to load config: {e}", file=sys.stderr)
        return 1

    configure_logging(level=getattr(logging, config.log_level), stream=sys.stderr)

    try:
        init_engine_from_url(
            config.database_url,
            echo=config.echo_sql,
            pool_size=config.pool_size,
            max_overflow=config.max_overflow,
        )
    except Exception as e:
        print(f"ERROR: Database init failed: {e}", file=sys.stderr)
        return 1

    register_immutability_listeners()

    def service_factory(session):
        return BatchInventoryService(session, config=config)

    try:
        return _COMMANDS[args.command](args, service_factory)
    except InventoryKernelError as e:
        print(f"ERROR [{e.code}]: {e}", file=sys.stderr)
        return 1
    finally:
        reset_engine()


if __name__ == "__main__":
    sys.exit(main())
