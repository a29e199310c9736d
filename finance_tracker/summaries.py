"""Category-summary aggregation.

Two precomputed collections let the dashboard read totals without scanning
the ledger:

* category summaries, one row per ``YYYY-MM-category`` with the running
  total and transaction count
* monthly summaries, one document per ``YYYY-MM`` holding every category
  total for that month

Both are kept current by the increment/decrement/update helpers, which the
ledger calls after each write. Failures while maintaining a summary are
logged and swallowed so the transaction write itself still succeeds; the
``rebuild_*`` functions recompute everything from the ledger when the stored
copies drift.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

import pandas as pd

from . import db
from .categories import normalize_category_id
from .models import Transaction

logger = logging.getLogger(__name__)

# Largest stored-vs-ledger difference verify_summaries accepts
VERIFY_TOLERANCE = 0.01

# (year, month) -> monthly summary document, or None when the month has none
_MONTHLY_CACHE: Dict[Tuple[int, int], Optional[Dict]] = {}


def summary_id(year: int, month: int, category_id: Optional[str]) -> str:
    return f"{year}-{month:02d}-{normalize_category_id(category_id)}"


def month_key(year: int, month: int) -> str:
    return f"{year}-{month:02d}"


def clear_summary_cache() -> None:
    """Forget cached monthly summaries; call after any ledger write."""
    _MONTHLY_CACHE.clear()


def _locate(txn: Transaction) -> Tuple[int, int, str]:
    return txn.year, txn.month, normalize_category_id(txn.category)


def _recent_months(months_count: int, today: Optional[date] = None) -> List[Tuple[int, int]]:
    """(year, month) pairs for the last ``months_count`` months, newest first."""
    today = today or date.today()
    anchor = pd.Period(year=today.year, month=today.month, freq='M')
    return [((anchor - i).year, (anchor - i).month) for i in range(max(months_count, 0))]


# --- pure reducers --------------------------------------------------------

def aggregate_category_summaries(transactions: Iterable[Transaction]) -> List[Dict]:
    """Group transactions into category summary rows."""
    summaries: Dict[str, Dict] = {}
    for txn in transactions:
        year, month, category_id = _locate(txn)
        sid = summary_id(year, month, category_id)
        row = summaries.setdefault(sid, {
            'id': sid,
            'year': year,
            'month': month,
            'category_id': category_id,
            'total_spent': 0.0,
            'transaction_count': 0,
        })
        row['total_spent'] += txn.amount
        row['transaction_count'] += 1
    return sorted(summaries.values(), key=lambda r: r['id'])


def aggregate_monthly_summaries(transactions: Iterable[Transaction]) -> List[Dict]:
    """Group transactions into one document per month."""
    months: Dict[str, Dict] = {}
    for txn in transactions:
        year, month, category_id = _locate(txn)
        key = month_key(year, month)
        doc = months.setdefault(key, {
            'id': key,
            'year': year,
            'month': month,
            'category_totals': {},
            'total_spent': 0.0,
        })
        totals = doc['category_totals']
        totals[category_id] = totals.get(category_id, 0.0) + txn.amount
        doc['total_spent'] += txn.amount
    return sorted(months.values(), key=lambda d: d['id'])


def summaries_frame(summaries: List[Dict]) -> pd.DataFrame:
    """Category summaries as a frame sorted by month then total."""
    columns = ['id', 'year', 'month', 'category_id', 'total_spent', 'transaction_count']
    if not summaries:
        return pd.DataFrame(columns=columns)
    frame = pd.DataFrame(summaries)[columns]
    return frame.sort_values(['year', 'month', 'total_spent'], ascending=[True, True, False]).reset_index(drop=True)


# --- incremental maintenance ---------------------------------------------

def _sync_monthly(year: int, month: int, category_id: str, category_total: Optional[float]) -> None:
    """Mirror one category total into the month document."""
    key = month_key(year, month)
    doc = db.get_monthly_summary(key) or {
        'id': key, 'year': year, 'month': month, 'category_totals': {}, 'total_spent': 0.0,
    }
    totals = doc['category_totals']
    if category_total is None:
        totals.pop(category_id, None)
    else:
        totals[category_id] = category_total
    if not totals:
        db.delete_monthly_summary(key)
        return
    doc['total_spent'] = float(sum(totals.values()))
    db.put_monthly_summary(doc)


def increment_category_summary(txn: Transaction) -> None:
    """Add a new transaction to its month/category summary."""
    year, month, category_id = _locate(txn)
    sid = summary_id(year, month, category_id)
    try:
        summary = db.get_category_summary(sid)
        if summary:
            summary['total_spent'] += txn.amount
            summary['transaction_count'] += 1
        else:
            summary = {
                'id': sid,
                'year': year,
                'month': month,
                'category_id': category_id,
                'total_spent': txn.amount,
                'transaction_count': 1,
            }
        db.put_category_summary(summary)
        _sync_monthly(year, month, category_id, summary['total_spent'])
    except sqlite3.Error:
        logger.warning("Could not increment category summary %s", sid, exc_info=True)
    finally:
        clear_summary_cache()


def decrement_category_summary(txn: Transaction) -> None:
    """Remove a transaction from its summary, deleting the summary once empty."""
    year, month, category_id = _locate(txn)
    sid = summary_id(year, month, category_id)
    try:
        summary = db.get_category_summary(sid)
        if summary is None:
            logger.debug("Category summary %s does not exist, nothing to decrement", sid)
            return
        new_count = max(0, summary['transaction_count'] - 1)
        new_total = max(0.0, summary['total_spent'] - txn.amount)
        if new_count <= 0:
            db.delete_category_summary(sid)
            _sync_monthly(year, month, category_id, None)
        else:
            summary['transaction_count'] = new_count
            summary['total_spent'] = new_total
            db.put_category_summary(summary)
            _sync_monthly(year, month, category_id, new_total)
    except sqlite3.Error:
        logger.warning("Could not decrement category summary %s", sid, exc_info=True)
    finally:
        clear_summary_cache()


def update_category_summary(old: Transaction, new: Transaction) -> None:
    """Move a transaction between summaries or adjust its amount in place."""
    old_year, old_month, old_category = _locate(old)
    new_year, new_month, new_category = _locate(new)

    if (old_year, old_month, old_category) != (new_year, new_month, new_category):
        decrement_category_summary(old)
        increment_category_summary(new)
        return

    amount_diff = new.amount - old.amount
    if amount_diff == 0:
        return

    sid = summary_id(new_year, new_month, new_category)
    try:
        summary = db.get_category_summary(sid)
        if summary is None:
            logger.warning("Category summary %s missing during update", sid)
            return
        summary['total_spent'] += amount_diff
        db.put_category_summary(summary)
        _sync_monthly(new_year, new_month, new_category, summary['total_spent'])
    except sqlite3.Error:
        logger.warning("Could not update category summary %s", sid, exc_info=True)
    finally:
        clear_summary_cache()


# --- reads ----------------------------------------------------------------

def get_category_summaries_by_month(year: int, month: int) -> Dict[str, float]:
    return {
        row['category_id']: row['total_spent']
        for row in db.list_category_summaries(year=year, month=month)
    }


def get_category_summaries_by_year(year: int) -> Dict[str, float]:
    totals: Dict[str, float] = {}
    for row in db.list_category_summaries(year=year):
        totals[row['category_id']] = totals.get(row['category_id'], 0.0) + row['total_spent']
    return totals


def get_category_summaries_for_months(months_count: int = 12, today: Optional[date] = None) -> List[Dict]:
    """Every category summary inside the last ``months_count`` calendar months."""
    wanted = set(_recent_months(months_count, today))
    years = sorted({year for year, _ in wanted})
    rows: List[Dict] = []
    for year in years:
        rows.extend(r for r in db.list_category_summaries(year=year) if (r['year'], r['month']) in wanted)
    return rows


def get_monthly_spendings(months_count: int = 12, today: Optional[date] = None) -> List[Dict]:
    """Total per month for the chart window, oldest first."""
    totals: Dict[Tuple[int, int], float] = {}
    for row in get_category_summaries_for_months(months_count, today):
        key = (row['year'], row['month'])
        totals[key] = totals.get(key, 0.0) + row['total_spent']
    return [
        {'year': year, 'month': month, 'total_spent': total}
        for (year, month), total in sorted(totals.items())
    ]


def get_monthly_summary(year: int, month: int) -> Optional[Dict]:
    """Month document, served from the module cache after the first read."""
    cache_key = (year, month)
    if cache_key in _MONTHLY_CACHE:
        logger.debug("Monthly summary cache hit for %s", month_key(year, month))
        return _MONTHLY_CACHE[cache_key]
    summary = db.get_monthly_summary(month_key(year, month))
    _MONTHLY_CACHE[cache_key] = summary
    return summary


def get_monthly_summaries(months_count: int = 12, today: Optional[date] = None) -> List[Dict]:
    """Existing month documents for the window, newest first."""
    summaries = []
    for year, month in _recent_months(months_count, today):
        summary = get_monthly_summary(year, month)
        if summary:
            summaries.append(summary)
    return summaries


def get_category_totals_by_month(year: int, month: int) -> Dict[str, float]:
    summary = get_monthly_summary(year, month)
    return dict(summary['category_totals']) if summary else {}


def get_category_totals_by_year(year: int) -> Dict[str, float]:
    totals: Dict[str, float] = {}
    for month in range(1, 13):
        for category_id, amount in get_category_totals_by_month(year, month).items():
            totals[category_id] = totals.get(category_id, 0.0) + amount
    return totals


# --- rebuild --------------------------------------------------------------

def rebuild_category_summaries(transactions: Iterable[Transaction]) -> int:
    summaries = aggregate_category_summaries(transactions)
    count = db.replace_category_summaries(summaries)
    clear_summary_cache()
    logger.info("Rebuilt %d category summaries", count)
    return count


def rebuild_monthly_summaries(transactions: Iterable[Transaction]) -> int:
    summaries = aggregate_monthly_summaries(transactions)
    count = db.replace_monthly_summaries(summaries)
    clear_summary_cache()
    logger.info("Rebuilt %d monthly summaries", count)
    return count


def rebuild_all(transactions: Optional[List[Transaction]] = None) -> Dict[str, int]:
    """Recompute both collections from ``transactions`` (default: the whole ledger)."""
    if transactions is None:
        transactions = db.list_transactions()
    return {
        'transactions': len(transactions),
        'category_summaries': rebuild_category_summaries(transactions),
        'monthly_summaries': rebuild_monthly_summaries(transactions),
    }


def verify_summaries(transactions: Iterable[Transaction], tolerance: float = VERIFY_TOLERANCE) -> List[str]:
    """Ids whose stored total disagrees with the ledger.

    Covers missing rows, stale rows and totals that differ by more than
    ``tolerance``.
    """
    expected = {row['id']: row['total_spent'] for row in aggregate_category_summaries(transactions)}
    stored = {row['id']: row['total_spent'] for row in db.list_category_summaries()}
    mismatched = []
    for sid in sorted(set(expected) | set(stored)):
        if sid not in expected or sid not in stored:
            mismatched.append(sid)
        elif abs(expected[sid] - stored[sid]) > tolerance:
            mismatched.append(sid)
    return mismatched
