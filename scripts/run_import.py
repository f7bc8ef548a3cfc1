#!/usr/bin/env python3
"""
Import branch loan extracts into the consolidated client view and/or the raw ledger.

Settings come from loanbook_config (``--config`` or the packaged default);
``--db-url`` and LOANBOOK_DATABASE_URL override the database URL.

Usage:
    python3 scripts/run_import.py --file <path> [--file <path> ...] [options]

Examples:
    # Merge an extract into clients (effective-date merge)
    python3 scripts/run_import.py --file "Loan Report-branch-5235364.csv"

    # Write raw ledger rows and merge clients in one go
    python3 scripts/run_import.py --file extract.xlsx --target all --branch-id 5235364

    # Probe source file (row count, columns, sample) without loading
    python3 scripts/run_import.py --file extract.csv --probe-only

    # Print client totals per status bucket
    python3 scripts/run_import.py --stats-only
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

TARGETS = ("clients", "ledger", "all")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Import branch loan extracts (CSV/XLSX) into loanbook.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--file",
        action="append",
        type=Path,
        default=[],
        help="Source file (CSV, TXT or XLSX). Repeat for several files.",
    )
    parser.add_argument(
        "--target",
        choices=TARGETS,
        default="clients",
        help="clients: effective-date merge; ledger: raw rows; all: both (default: clients).",
    )
    parser.add_argument("--batch-size", type=int, default=None, help="Rows per flush (1..10000).")
    parser.add_argument("--branch-id", default=None, help="Branch id for rows without a branch column.")
    parser.add_argument("--config", type=Path, default=None, help="Settings YAML file.")
    parser.add_argument("--db-url", default=None, help="Database URL (overrides settings).")
    parser.add_argument(
        "--probe-only",
        action="store_true",
        help="Probe source files (row count, columns, sample rows) and exit. No DB writes.",
    )
    parser.add_argument("--stats-only", action="store_true", help="Print client stats and exit.")
    parser.add_argument(
        "--create-tables",
        action="store_true",
        help="Create the loanbook tables before importing.",
    )
    return parser.parse_args(argv)


def _print_result(label: str, result) -> None:
    summary = result.summary()
    print(
        f"  {label}: rows={result.total_rows} merged={summary['total_merged']} "
        f"errors={summary['total_errors']} superseded={result.total_superseded} "
        f"success={summary['success']}"
    )
    for failure in result.failures[:10]:
        where = f"row {failure.row_number}" if failure.row_number else failure.identity_key
        print(f"    [{failure.code}] {where}: {failure.reason}")
    if len(result.failures) > 10:
        print(f"    ... and {len(result.failures) - 10} more.")


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    if not args.file and not args.stats_only:
        print("ERROR: at least one --file is required (or --stats-only).", file=sys.stderr)
        return 2

    # Lazy imports so we fail fast on args first
    from loanbook_config import get_settings
    from loanbook_ingestion.services import ImportService
    from loanbook_kernel.db.engine import create_tables, get_session, init_engine_from_url
    from loanbook_kernel.domain.clock import SystemClock
    from loanbook_kernel.exceptions import LoanbookError, SourceError
    from loanbook_kernel.logging_config import configure_logging

    configure_logging()
    try:
        settings = get_settings(args.config)
    except (LoanbookError, OSError) as e:
        print(f"ERROR: Failed to load settings: {e}", file=sys.stderr)
        return 1

    sources = [p.resolve() for p in args.file]
    missing = [p for p in sources if not p.is_file()]
    if missing:
        for p in missing:
            print(f"ERROR: File not found: {p}", file=sys.stderr)
        return 1

    store = settings.store
    try:
        init_engine_from_url(
            args.db_url or store.database_url,
            echo=store.echo,
            pool_size=store.pool_size,
            max_overflow=store.max_overflow,
            pool_timeout=store.pool_timeout,
        )
        if args.create_tables:
            create_tables()
    except LoanbookError as e:
        print(f"ERROR: Database init failed: {e}", file=sys.stderr)
        return 1

    session = get_session()
    svc = ImportService(session, settings, clock=SystemClock())
    try:
        if args.probe_only:
            for path in sources:
                probe = svc.probe_source(path)
                print(f"{path.name}")
                print(f"  Rows: {probe.row_count}")
                print(f"  Columns: {list(probe.columns)}")
                for i, row in enumerate(probe.sample_rows[:3], 1):
                    print(f"  {i}: {row}")
            return 0

        if args.stats_only:
            stats = svc.get_import_stats()
            print(f"Clients: {stats['total_clients']}")
            for bucket, count in sorted(stats["by_bucket"].items()):
                print(f"  {bucket}: {count}")
            print(f"Total balance: {stats['total_balance']}")
            print(f"Ledger rows: {stats['ledger_rows']}")
            return 0

        all_ok = True
        for path in sources:
            print(f"Importing {path.name} ({args.target})...")
            try:
                if args.target in ("ledger", "all"):
                    result = svc.import_ledger(path, branch_id=args.branch_id, batch_size=args.batch_size)
                    _print_result("ledger", result)
                    all_ok = all_ok and result.success
                if args.target in ("clients", "all"):
                    result = svc.import_clients(path, branch_id=args.branch_id, batch_size=args.batch_size)
                    _print_result("clients", result)
                    all_ok = all_ok and result.success
            except SourceError as e:
                print(f"ERROR: [{e.code}] {e}", file=sys.stderr)
                if e.partial_result is not None:
                    _print_result("partial", e.partial_result)
                all_ok = False
        return 0 if all_ok else 1
    except LoanbookError as e:
        session.rollback()
        print(f"ERROR: [{e.code}] {e}", file=sys.stderr)
        return 1
    finally:
        session.close()


if __name__ == "__main__":
    sys.exit(main())
