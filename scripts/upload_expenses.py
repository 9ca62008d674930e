#!/usr/bin/env python3
"""
Upload a CSV or XLSX expense file into the statement database.

Listing names in the file are resolved through stored property mappings;
unmapped names get a similarity suggestion printed (never applied).

Usage:
    python3 scripts/upload_expenses.py --file expenses.xlsx [--property-id 12]
"""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path
from uuid import UUID, uuid4

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

DB_URL = "sqlite:///statements.db"


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Upload an expense file (CSV or XLSX).")
    parser.add_argument("--file", required=True, type=Path)
    parser.add_argument(
        "--property-id",
        type=int,
        default=None,
        help="Property for rows without a (mapped) listing name.",
    )
    parser.add_argument("--sheet", default=None, help="XLSX sheet name.")
    parser.add_argument("--dry-run", action="store_true", help="Parse and report only.")
    parser.add_argument("--actor-id", default=None)
    parser.add_argument("--db-url", default=DB_URL)
    return parser.parse_args()


def main() -> int:
    args = _parse_args()
    actor_id = UUID(args.actor_id) if args.actor_id else UUID(
        os.environ.get("STATEMENT_ACTOR_ID", str(uuid4()))
    )
    if not args.file.is_file():
        print(f"ERROR: File not found: {args.file}", file=sys.stderr)
        return 1

    from statement_ingestion.services.upload_service import ExpenseUploadService
    from statement_kernel.db.engine import create_tables, init_engine_from_url, session_scope
    from statement_kernel.exceptions import ExpenseUploadError
    from statement_kernel.services.listing_repository import ListingRepository
    from statement_services.property_mapping import PropertyMappingRepository

    init_engine_from_url(args.db_url)
    create_tables()

    options = {"sheet": args.sheet} if args.sheet else {}
    try:
        with session_scope() as session:
            mappings = PropertyMappingRepository(session)
            service = ExpenseUploadService(session, resolve_property=mappings.lookup)
            result = service.parse(args.file, options, default_property_id=args.property_id)
            if not args.dry_run:
                result = service.store(result, actor_id)

            listings = ListingRepository(session).list_all(include_inactive=True)
            for row in result.unmapped_rows:
                hint = ""
                if row.listing_name:
                    match = mappings.suggest(row.listing_name, listings)
                    if match is not None:
                        hint = f" (did you mean {match[0].label!r}, score {match[1]:.2f}?)"
                print(f"  row {row.row_number}: unmapped listing {row.listing_name!r}{hint}")
    except ExpenseUploadError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    for err in result.errors:
        print(f"  row {err.row_number}: {err.field}: {err.message}")
    print(f"{result.filename}: {len(result.rows)} valid, {len(result.errors)} invalid, "
          f"{result.stored_count} stored")
    return 0 if not result.errors else 2


if __name__ == "__main__":
    sys.exit(main())
