from __future__ import annotations

import argparse

from dotenv import load_dotenv
from sqlmodel import Session

from flashstats.config.logging_setup import configure_logging
from flashstats.config.settings import get_settings
from flashstats.db.base import get_engine, init_db
from flashstats.services.backfill_service import BackfillService


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Rebuild card progress, daily and cumulative study statistics "
        "from the recorded study sessions and card reviews."
    )
    parser.add_argument("--timezone", default="UTC", help="IANA timezone used to assign sessions to calendar days")
    parser.add_argument("--dry-run", action="store_true", help="Compute everything, then roll back")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    load_dotenv()
    configure_logging(get_settings())
    init_db()
    with Session(get_engine()) as session:
        try:
            report = BackfillService(session).rebuild(timezone=args.timezone, dry_run=args.dry_run)
        except ValueError as exc:
            raise SystemExit(f"ERROR: {exc}")
    prefix = "[DRY RUN] " if args.dry_run else ""
    print(
        f"{prefix}Replayed {report.reviews_replayed} review(s) and {report.sessions_replayed} session(s) "
        f"for {report.users} user(s) across {report.decks} deck(s)."
    )


if __name__ == "__main__":
    main()
