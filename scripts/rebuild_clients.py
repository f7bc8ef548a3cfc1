#!/usr/bin/env python3
"""
Recompute the consolidated client view from the raw loan_records table.

Usage:
    python3 scripts/rebuild_clients.py [--purge-malformed] [--config PATH] [--db-url URL]
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Rebuild clients from raw loan records.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--purge-malformed",
        action="store_true",
        help="Delete clients with malformed identity keys before rebuilding.",
    )
    parser.add_argument("--config", type=Path, default=None, help="Settings YAML file.")
    parser.add_argument("--db-url", default=None, help="Database URL (overrides settings).")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    from loanbook_config import get_settings
    from loanbook_kernel.db.engine import get_session, init_engine_from_url
    from loanbook_kernel.domain.clock import SystemClock
    from loanbook_kernel.exceptions import LoanbookError
    from loanbook_kernel.logging_config import LogContext, configure_logging
    from loanbook_services import ClientRebuilder

    configure_logging()
    try:
        settings = get_settings(args.config)
        init_engine_from_url(args.db_url or settings.store.database_url, echo=settings.store.echo)
    except (LoanbookError, OSError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    session = get_session()
    try:
        with LogContext.bind(job="rebuild_clients"):
            result = ClientRebuilder.from_settings(
                session, settings.imports, clock=SystemClock()
            ).rebuild(purge_malformed=args.purge_malformed)
        print(
            f"Scanned {result.rows_scanned} rows, skipped {result.rows_skipped}, "
            f"wrote {result.clients_written} clients, purged {result.clients_purged}."
        )
        return 0
    except LoanbookError as e:
        print(f"ERROR: [{e.code}] {e}", file=sys.stderr)
        return 1
    finally:
        session.close()


if __name__ == "__main__":
    sys.exit(main())
