"""Recurring transactions and the bills they generate.

A recurring transaction raises a bill once today falls inside its reminder
window (``reminder_days`` before the next due date). Entries flagged
``auto_create`` are also posted to the ledger as their due dates pass.
"""

from __future__ import annotations

import dataclasses
import logging
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from dateutil.relativedelta import relativedelta

from . import db
from .models import FREQUENCIES, Bill, RecurringTransaction, Transaction, parse_date, to_iso_date
from .settings import get_setting

logger = logging.getLogger(__name__)

RECURRING_COLLECTION = 'recurring_transactions'
BILL_COLLECTION = 'bills'

_STEPS = {
    'daily': relativedelta(days=1),
    'weekly': relativedelta(days=7),
    'monthly': relativedelta(months=1),
    'quarterly': relativedelta(months=3),
    'yearly': relativedelta(years=1),
}

AUTO_CATEGORIES: List[Dict] = get_setting('recurring', 'auto_categories', default=[])
FALLBACK_CATEGORY: Dict = get_setting('recurring', 'fallback', default={'category': 'Other', 'tags': []})


def calculate_next_due_date(current_date, frequency: str) -> str:
    """Next due date after ``current_date`` as an ISO string.

    Month arithmetic clamps to the end of shorter months (Jan 31 -> Feb 28).
    """
    if frequency not in _STEPS:
        raise ValueError(f"Unknown frequency: {frequency}")
    return (parse_date(current_date) + _STEPS[frequency]).isoformat()


def bill_frequency(frequency: str) -> str:
    return frequency if frequency in ('monthly', 'quarterly', 'yearly') else 'monthly'


def should_create_bill(due_date: date, today: date, reminder_days: int) -> bool:
    return today >= due_date - timedelta(days=reminder_days)


def process_recurring_transactions(
    recurring: Iterable[RecurringTransaction],
    today: Optional[date] = None,
) -> List[Bill]:
    """Bills for every active recurring entry inside its reminder window."""
    today = today or date.today()
    bills = []
    for rt in recurring:
        if not rt.is_active:
            continue
        due = parse_date(rt.next_due_date)
        if not should_create_bill(due, today, rt.reminder_days):
            continue
        bills.append(Bill(
            id=f"bill_{rt.id}_{due.isoformat()}",
            name=rt.name,
            description=rt.description,
            category=rt.category,
            amount=rt.amount,
            due_date=due.isoformat(),
            frequency=bill_frequency(rt.frequency),
            reminder_days=rt.reminder_days,
            is_overdue=due < today,
            recurring_transaction_id=rt.id,
            bank_account_id=rt.bank_account_id,
            vendor=rt.vendor,
            tags=list(rt.tags),
        ))
    return bills


def get_upcoming_bills(bills: Iterable[Bill], days: int = 7, today: Optional[date] = None) -> List[Bill]:
    today = today or date.today()
    horizon = today + timedelta(days=days)
    upcoming = [
        b for b in bills
        if not b.is_paid and today <= parse_date(b.due_date) <= horizon
    ]
    return sorted(upcoming, key=lambda b: b.due_date)


def get_overdue_bills(bills: Iterable[Bill], today: Optional[date] = None) -> List[Bill]:
    today = today or date.today()
    overdue = [b for b in bills if not b.is_paid and parse_date(b.due_date) < today]
    return sorted(overdue, key=lambda b: b.due_date)


def auto_categorize_recurring(description: str, vendor: Optional[str] = None) -> Dict[str, object]:
    """Guess a category and tags from keywords in the description or vendor.

    Groups are checked in settings order and the first match wins.
    """
    text = (description or '').lower()
    vendor_text = (vendor or '').lower()
    for group in AUTO_CATEGORIES:
        if any(k in text or k in vendor_text for k in group['keywords']):
            return {'category': group['category'], 'tags': list(group['tags'])}
    return {'category': FALLBACK_CATEGORY['category'], 'tags': list(FALLBACK_CATEGORY['tags'])}


def materialize_due_transactions(
    rt: RecurringTransaction,
    today: Optional[date] = None,
) -> Tuple[List[Transaction], RecurringTransaction]:
    """Ledger entries for every due date up to today, plus the advanced recurring entry.

    Only active ``auto_create`` entries produce transactions. Nothing is
    generated past ``end_date``; an entry that runs past it is deactivated.
    """
    today = today or date.today()
    if not rt.is_active or not rt.auto_create:
        return [], rt

    end = parse_date(rt.end_date) if rt.end_date else None
    due = parse_date(rt.next_due_date)
    created = []
    while due <= today and (end is None or due <= end):
        created.append(Transaction(
            id=f"txn_{rt.id}_{due.isoformat()}",
            date=due.isoformat(),
            description=rt.description,
            category=rt.category,
            type=rt.type,
            amount=rt.amount,
            payment_method=rt.payment_method,
            bank_account_id=rt.bank_account_id,
            recurring_transaction_id=rt.id,
            tags=list(rt.tags),
        ))
        due = parse_date(calculate_next_due_date(due, rt.frequency))

    if not created:
        return [], rt

    advanced = dataclasses.replace(
        rt,
        next_due_date=due.isoformat(),
        last_processed_date=created[-1].date,
        is_active=end is None or due <= end,
    )
    logger.info("Recurring %s produced %d transactions", rt.id, len(created))
    return created, advanced


def mark_bill_paid(bill: Bill, paid_amount: Optional[float] = None, paid_date=None) -> Bill:
    return dataclasses.replace(
        bill,
        is_paid=True,
        is_overdue=False,
        paid_amount=bill.amount if paid_amount is None else paid_amount,
        paid_date=to_iso_date(paid_date or date.today()),
    )


# Persistence

def save_recurring(rt: RecurringTransaction) -> RecurringTransaction:
    if rt.frequency not in FREQUENCIES:
        raise ValueError(f"Unknown frequency: {rt.frequency}")
    if rt.amount <= 0:
        raise ValueError("Recurring amounts must be positive")
    if not rt.name or not rt.name.strip():
        raise ValueError("A recurring transaction needs a name")
    rt.next_due_date = to_iso_date(rt.next_due_date)
    rt.start_date = to_iso_date(rt.start_date)
    db.put_document(RECURRING_COLLECTION, rt.id, rt.to_dict())
    return rt


def load_recurring() -> List[RecurringTransaction]:
    return [RecurringTransaction.from_dict(d) for d in db.list_documents(RECURRING_COLLECTION)]


def delete_recurring(recurring_id: str) -> bool:
    return db.delete_document(RECURRING_COLLECTION, recurring_id)


def save_bill(bill: Bill) -> Bill:
    db.put_document(BILL_COLLECTION, bill.id, bill.to_dict())
    return bill


def load_bills() -> List[Bill]:
    return [Bill.from_dict(d) for d in db.list_documents(BILL_COLLECTION)]


def sync_bills(today: Optional[date] = None) -> List[Bill]:
    """Store bills for stored recurring entries, keeping paid state of existing ones."""
    existing = {b.id: b for b in load_bills()}
    new_bills = []
    for bill in process_recurring_transactions(load_recurring(), today):
        if bill.id not in existing:
            new_bills.append(save_bill(bill))
    return new_bills
