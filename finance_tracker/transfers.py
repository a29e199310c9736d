"""Detect money moved between the user's own accounts.

An outflow and an inflow of the same amount within two days, booked on
different accounts, are most likely one internal transfer rather than real
spending and income.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List

from . import ledger
from .categories import TRANSFER_ID
from .models import Transaction, parse_date

logger = logging.getLogger(__name__)

MAX_GAP_HOURS = 48
HIGH_CONFIDENCE_HOURS = 24


@dataclass
class TransferPair:
    outflow: Transaction
    inflow: Transaction
    confidence: float


def _gap_hours(first: Transaction, second: Transaction) -> float:
    return abs((parse_date(second.date) - parse_date(first.date)).days) * 24.0


def _is_pair(first: Transaction, second: Transaction) -> bool:
    if {first.type, second.type} != {'income', 'expense'}:
        return False
    if abs(first.amount) != abs(second.amount):
        return False
    if first.bank_account_id and second.bank_account_id and first.bank_account_id == second.bank_account_id:
        return False
    return True


def detect_transfers(transactions: Iterable[Transaction]) -> List[TransferPair]:
    """Pair up likely transfers; each transaction is used at most once."""
    ordered = sorted(
        (t for t in transactions if t.category != TRANSFER_ID),
        key=lambda t: t.date,
    )
    used = set()
    pairs = []
    for i, first in enumerate(ordered):
        if first.id in used:
            continue
        for second in ordered[i + 1:]:
            if second.id in used:
                continue
            gap = _gap_hours(first, second)
            if gap > MAX_GAP_HOURS:
                break
            if not _is_pair(first, second):
                continue
            outflow, inflow = (first, second) if first.type == 'expense' else (second, first)
            pairs.append(TransferPair(outflow, inflow, 0.9 if gap < HIGH_CONFIDENCE_HOURS else 0.7))
            used.update((first.id, second.id))
            break

    logger.debug("Detected %d transfer pairs", len(pairs))
    return pairs


def mark_as_transfer(pair: TransferPair) -> List[Transaction]:
    """Re-categorize both sides of a pair as transfers in the ledger."""
    return [
        ledger.update_transaction(txn.id, category=TRANSFER_ID, type='transfer')
        for txn in (pair.outflow, pair.inflow)
    ]
