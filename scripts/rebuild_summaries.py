#!/usr/bin/env python3
"""Rebuild the category and monthly summary collections from the ledger."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from finance_tracker import db, summaries
from finance_tracker.config import configure_logging


def main(check_only: bool = False) -> int:
    configure_logging()
    db.init_db()
    transactions = db.list_transactions()

    mismatched = summaries.verify_summaries(transactions)
    if mismatched:
        print(f"{len(mismatched)} summaries disagree with the ledger:")
        for summary_id in mismatched[:50]:
            print(f"  {summary_id}")
    else:
        print("All category summaries match the ledger.")

    if check_only:
        return 1 if mismatched else 0

    counts = summaries.rebuild_all(transactions)
    print(
        f"Rebuilt {counts['category_summaries']} category summaries and "
        f"{counts['monthly_summaries']} monthly summaries from {counts['transactions']} transactions."
    )
    return 0


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='Rebuild precomputed spending summaries.')
    parser.add_argument('--check', action='store_true', help='Only report mismatches; exit 1 if any')
    args = parser.parse_args()
    raise SystemExit(main(check_only=args.check))
