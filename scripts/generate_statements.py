#!/usr/bin/env python3
"""
Generate owner statements for a period from booking and accounting exports.

Reads reservations and synced expenses from JSON exports, builds one draft
statement per target (see --mode), commits, and prints a per-target report.

Usage:
    python3 scripts/generate_statements.py --bookings <json> [--expenses <json>] [options]

Examples:
    # Every active listing, last complete payout week (Tue-Mon)
    python3 scripts/generate_statements.py --bookings res.json --expenses exp.json

    # One combined statement for an owner's tagged listings, calendar mode
    python3 scripts/generate_statements.py --bookings res.json --mode owner_tag \\
        --owner-id 7 --tag beach --combined --calculation-type calendar \\
        --start 2025-01-01 --end 2025-01-31
"""

from __future__ import annotations

import argparse
import os
import sys
from datetime import date
from pathlib import Path
from uuid import UUID, uuid4

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

DB_URL = "sqlite:///statements.db"


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Generate draft owner statements for a period.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--bookings", required=True, type=Path, help="Booking export (JSON).")
    parser.add_argument("--expenses", type=Path, default=None, help="Accounting export (JSON).")
    parser.add_argument(
        "--mode",
        default="all",
        choices=["single", "owner_properties", "owner_tag", "group", "all"],
        help="Target selection (default: all).",
    )
    parser.add_argument("--owner-id", type=int, default=None)
    parser.add_argument("--property-id", type=int, action="append", default=[], dest="property_ids")
    parser.add_argument("--tag", default=None)
    parser.add_argument("--group-id", type=int, default=None)
    parser.add_argument("--combined", action="store_true", help="One statement per owner.")
    parser.add_argument(
        "--calculation-type",
        choices=["checkout", "calendar"],
        default=None,
        help="Override the listing/group calculation type.",
    )
    parser.add_argument("--start", type=lambda s: date.fromisoformat(s), default=None)
    parser.add_argument("--end", type=lambda s: date.fromisoformat(s), default=None)
    parser.add_argument("--include-inactive", action="store_true")
    parser.add_argument("--config", type=Path, default=None, help="Statement config YAML.")
    parser.add_argument("--idempotency-key", default=None)
    parser.add_argument(
        "--actor-id",
        default=None,
        help="Actor UUID for audit (default: STATEMENT_ACTOR_ID env or new UUID).",
    )
    parser.add_argument("--db-url", default=DB_URL, help=f"Database URL (default: {DB_URL!r}).")
    return parser.parse_args()


def main() -> int:
    args = _parse_args()

    actor_id = UUID(args.actor_id) if args.actor_id else UUID(
        os.environ.get("STATEMENT_ACTOR_ID", str(uuid4()))
    )
    for path in (args.bookings, args.expenses):
        if path is not None and not path.is_file():
            print(f"ERROR: File not found: {path}", file=sys.stderr)
            return 1

    # Lazy imports so we fail fast on args first
    from statement_batch.domain.types import GenerationRequest, SelectionMode
    from statement_batch.services.driver import GenerationDriver
    from statement_config import get_active_config
    from statement_engines.periods import previous_payout_week
    from statement_ingestion.adapters.json_adapter import (
        JsonAccountingProvider,
        JsonBookingProvider,
    )
    from statement_ingestion.guard import ProviderGuard
    from statement_kernel.db.engine import create_tables, init_engine_from_url, session_scope
    from statement_kernel.domain.clock import SystemClock
    from statement_kernel.domain.policy import CalculationType
    from statement_kernel.exceptions import StatementKernelError
    from statement_kernel.services.listing_repository import ListingRepository
    from statement_services.expense_collector import ExpenseCollector
    from statement_services.property_mapping import PropertyMappingRepository
    from statement_services.statement_builder import StatementBuilder

    try:
        config = get_active_config(args.config)
    except (OSError, StatementKernelError) as e:
        print(f"ERROR: Failed to load config: {e}", file=sys.stderr)
        return 1

    clock = SystemClock()
    if args.start and args.end:
        start, end = args.start, args.end
    else:
        start, end = previous_payout_week(clock.today())

    init_engine_from_url(args.db_url)
    create_tables()

    def _progress(p) -> None:
        print(f"[{p.current}/{p.total}] {p.item_key}: {p.status.value}")

    try:
        with session_scope() as session:
            guard = ProviderGuard.from_config(config.providers)
            listings = ListingRepository(session)
            collector = ExpenseCollector(
                session,
                listings,
                PropertyMappingRepository(session),
                accounting=JsonAccountingProvider(args.expenses) if args.expenses else None,
                guard=guard,
            )
            builder = StatementBuilder(
                session,
                listings,
                JsonBookingProvider(args.bookings),
                collector,
                config,
                clock=clock,
                guard=guard,
            )
            driver = GenerationDriver(session, builder, listings, clock=clock)
            report = driver.run(
                GenerationRequest(
                    mode=SelectionMode(args.mode),
                    period_start=start,
                    period_end=end,
                    owner_id=args.owner_id,
                    property_ids=tuple(args.property_ids),
                    tag=args.tag,
                    group_id=args.group_id,
                    calculation_type=(
                        CalculationType(args.calculation_type) if args.calculation_type else None
                    ),
                    combined=args.combined,
                    include_inactive=args.include_inactive,
                    idempotency_key=args.idempotency_key,
                ),
                actor_id,
                progress=_progress,
            )
    except (ValueError, StatementKernelError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    print(f"Period: {start.isoformat()} .. {end.isoformat()}")
    print(f"Job {report.job_id}: {report.status.value}")
    print(f"  succeeded={report.succeeded} failed={report.failed} skipped={report.skipped}")
    for item in report.item_results:
        if item.error_code:
            retry = " (retryable)" if item.retryable else ""
            print(f"  {item.item_key}: {item.error_code} {item.error_message}{retry}")
    return 0 if report.failed == 0 else 2


if __name__ == "__main__":
    sys.exit(main())
