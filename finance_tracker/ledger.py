"""Transaction CRUD that keeps the category summaries in step.

Every write goes to the transactions table first and then to the summary
collections. Summary maintenance never raises, so a summary failure leaves
the ledger correct and the summaries repairable with
:func:`finance_tracker.summaries.rebuild_all`.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from . import db, summaries
from .categories import UNCATEGORIZED_ID, load_categories, normalize_category_id, validate_category_id
from .category_rules import CategoryRulesManager
from .duplicates import ImportSummary, check_bulk_duplicates
from .models import TRANSACTION_TYPES, Category, Transaction, new_id

logger = logging.getLogger(__name__)


def new_transaction(**fields: Any) -> Transaction:
    """Build a transaction, assigning an id when none is given."""
    fields.setdefault('id', new_id('txn'))
    fields.setdefault('category', UNCATEGORIZED_ID)
    return Transaction(**fields)


def _validate(txn: Transaction, categories: Optional[Sequence[Category]] = None) -> Transaction:
    if txn.type not in TRANSACTION_TYPES:
        raise ValueError(f"Unknown transaction type: {txn.type}")
    if txn.amount <= 0:
        raise ValueError("Transaction amounts must be positive; the type carries the direction")
    if not txn.description or not str(txn.description).strip():
        raise ValueError("A transaction needs a description")
    txn.category = validate_category_id(txn.category, categories or load_categories())
    return txn


def _apply_rules(txn: Transaction, rules_manager: Optional[CategoryRulesManager]) -> None:
    if rules_manager is None or normalize_category_id(txn.category) != UNCATEGORIZED_ID:
        return
    result = rules_manager.apply_rules(txn)
    if result:
        txn.category = result['category_id']
        if result['transaction_type']:
            txn.type = result['transaction_type']
        logger.debug("Rule categorized %s as %s", txn.id, txn.category)


def add_transaction(
    txn: Transaction,
    rules_manager: Optional[CategoryRulesManager] = None,
    categories: Optional[Sequence[Category]] = None,
) -> Transaction:
    """Validate, store and count a new transaction."""
    _apply_rules(txn, rules_manager)
    _validate(txn, categories)
    db.insert_transaction(txn)
    summaries.increment_category_summary(txn)
    logger.debug("Added transaction %s (%s %.2f)", txn.id, txn.category, txn.amount)
    return txn


def update_transaction(
    transaction_id: str,
    categories: Optional[Sequence[Category]] = None,
    **changes: Any,
) -> Transaction:
    """Apply field changes to a stored transaction.

    Raises KeyError if the id is unknown.
    """
    if 'id' in changes:
        raise ValueError("Transaction ids cannot be changed")
    old = db.get_transaction(transaction_id)
    updated = _validate(dataclasses.replace(old, **changes), categories)
    db.update_transaction(updated)
    summaries.update_category_summary(old, updated)
    return updated


def delete_transaction(transaction_id: str) -> bool:
    try:
        old = db.get_transaction(transaction_id)
    except KeyError:
        return False
    removed = db.delete_transaction(transaction_id)
    if removed:
        summaries.decrement_category_summary(old)
    return removed


def bulk_add(
    transactions: List[Transaction],
    skip_duplicates: bool = True,
    smart_mode: bool = True,
    rules_manager: Optional[CategoryRulesManager] = None,
) -> ImportSummary:
    """Import a batch, dropping rows that already exist in the ledger."""
    existing = db.list_transactions()
    report = check_bulk_duplicates(transactions, existing, smart_mode=smart_mode)
    to_insert = report.imported_transactions
    if not skip_duplicates:
        to_insert = to_insert + report.duplicates

    categories = load_categories()
    for txn in to_insert:
        add_transaction(txn, rules_manager=rules_manager, categories=categories)

    logger.info(
        "Imported %d of %d transactions (%d duplicates, %d repeated in batch)",
        len(to_insert), report.total_transactions,
        report.duplicate_transactions, report.skipped_transactions,
    )
    return report


def apply_rule(rule_id: str, rules_manager: CategoryRulesManager) -> int:
    """Re-categorize every stored transaction matching a rule."""
    categories = load_categories()

    def _update(transaction_id: str, updates: Dict[str, Any]) -> None:
        update_transaction(transaction_id, categories=categories, **updates)

    return rules_manager.apply_rule_to_transactions(rule_id, db.list_transactions(), _update)


def list_transactions(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    categories: Optional[Sequence[str]] = None,
    types: Optional[Sequence[str]] = None,
) -> List[Transaction]:
    return db.list_transactions(start_date, end_date, categories, types)


def transactions_frame(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> pd.DataFrame:
    return db.fetch_transactions(start_date, end_date)


def to_frame(transactions: Sequence[Transaction]) -> pd.DataFrame:
    """Build the analytics frame from in-memory transactions."""
    rows = [
        {label: getattr(txn, column) for column, label in db.FRAME_COLUMNS.items()}
        for txn in transactions
    ]
    frame = pd.DataFrame(rows, columns=list(db.FRAME_COLUMNS.values()))
    if not frame.empty:
        frame['Transaction Date'] = pd.to_datetime(frame['Transaction Date'])
    return frame
