#!/usr/bin/env python3
"""
Create the claims schema and optionally seed staff records.

Reads database settings from the packaged defaults (or --config), creates
every table, initializes the audit sequence counter and, with --seed-staff,
inserts lecturer / coordinator / manager records from a YAML file.  Running
it again is safe: tables are only created if missing and staff records are
matched on user_id.

Usage:
  python3 scripts/init_db.py [--config claims.yaml] [--db-url URL]
                             [--seed-staff staff.yaml] [--drop]
"""

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Create the claims schema and seed staff records")
    p.add_argument(
        "--config",
        default=None,
        help="YAML file overriding the packaged defaults",
    )
    p.add_argument(
        "--db-url",
        default=None,
        help="Database URL (overrides database.url from config)",
    )
    p.add_argument(
        "--seed-staff",
        default=None,
        help="YAML file with lecturers / coordinators / managers to insert",
    )
    p.add_argument(
        "--drop",
        action="store_true",
        help="Drop all tables before creating them",
    )
    return p.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    from claims_config import get_active_config, load_staff_seed
    from claims_kernel.db.engine import (
        create_tables,
        drop_tables,
        init_engine_from_url,
        session_scope,
    )
    from claims_kernel.logging_config import configure_logging
    from claims_kernel.services.claim_store import SqlClaimStore
    from claims_kernel.services.sequence_service import SequenceService

    try:
        config = get_active_config(args.config)
    except (OSError, ValueError) as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1

    configure_logging(level=config.logging.level)

    db_url = args.db_url or config.database.url
    print()
    print("  [1/3] Connecting to database...")
    init_engine_from_url(
        db_url,
        echo=config.database.echo,
        pool_size=config.database.pool_size,
        max_overflow=config.database.max_overflow,
        pool_timeout=config.database.pool_timeout,
    )

    print("  [2/3] Creating schema...")
    if args.drop:
        drop_tables()
    create_tables()

    records = ()
    if args.seed_staff:
        try:
            records = load_staff_seed(Path(args.seed_staff))
        except (OSError, ValueError) as exc:
            print(f"  ERROR: {exc}", file=sys.stderr)
            return 1

    print(f"  [3/3] Seeding {len(records)} staff record(s)...")
    with session_scope() as session:
        SequenceService(session).initialize_sequences()
        store = SqlClaimStore(session)
        for record in records:
            store.add_staff(record)

    print()
    print("  Done.")
    print()
    return 0


if __name__ == "__main__":
    sys.exit(main())
