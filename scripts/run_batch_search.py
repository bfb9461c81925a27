#!/usr/bin/env python3
"""
Batch flight search over the configured target destinations.

For every target, each pivot airport is queried in turn (route cache first),
the cheapest offer per pivot is kept, and the cheapest results are written
to RESULTS_DIR/results-{CODE}.json.

Usage:
    python -m scripts.run_batch_search
    python -m scripts.run_batch_search --date 2026-12-01
    python -m scripts.run_batch_search --target BKK --target DPS --max-results 10
"""

import argparse
import logging
import sys
from datetime import date, timedelta

from config import BATCH_MAX_RESULTS, BATCH_TARGETS
from db import Base, engine
import models  # noqa: F401
from services.cache_service import ensure_directories
from services.search_service import run_batch_search

DEFAULT_DAYS_AHEAD = 30


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Search every pivot airport for the batch targets")
    parser.add_argument(
        "--date",
        "-d",
        type=str,
        default=None,
        help=f"Travel date (YYYY-MM-DD). Default: today + {DEFAULT_DAYS_AHEAD} days",
    )
    parser.add_argument(
        "--target",
        "-t",
        action="append",
        default=None,
        help=f"Destination IATA code, repeatable. Default: {','.join(BATCH_TARGETS)}",
    )
    parser.add_argument(
        "--adults",
        type=int,
        default=1,
        help="Number of adult passengers",
    )
    parser.add_argument(
        "--max-results",
        type=int,
        default=BATCH_MAX_RESULTS,
        help="Results kept per target",
    )
    args = parser.parse_args(argv)

    if args.date:
        try:
            travel_date = date.fromisoformat(args.date)
        except ValueError:
            print(f"Error: Invalid date {args.date}", file=sys.stderr)
            return 1
    else:
        travel_date = date.today() + timedelta(days=DEFAULT_DAYS_AHEAD)

    if args.adults < 1:
        print("Error: --adults must be at least 1", file=sys.stderr)
        return 1

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")

    Base.metadata.create_all(bind=engine)
    ensure_directories()

    results = run_batch_search(
        travel_date.isoformat(),
        targets=args.target,
        adults=args.adults,
        max_results=args.max_results,
    )
    for code, rows in results.items():
        print(f"{code}: {len(rows)} results", file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())
