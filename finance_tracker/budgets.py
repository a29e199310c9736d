"""Monthly budget storage and budget-vs-actual calculations.

The monthly budget holds expected income and five expense ceilings
(household, insurance, loans, investments, other). Actual spending is
bucketed from the ledger by transaction type and category, then compared
against those ceilings. Per-category limits live in
``MonthlyBudget.category_budgets`` with ``Category.budget`` as a fallback.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence

import pandas as pd

from . import db
from .analytics import FinanceAnalytics
from .categories import TRANSFER_ID, build_index, root_of, rollup_totals
from .models import BUDGET_BUCKETS, Category, MonthlyBudget, Transaction
from .settings import get_setting

logger = logging.getLogger(__name__)

BUDGET_COLLECTION = 'budget'
BUDGET_DOC_ID = 'monthly'

# Checked in this order; the first bucket whose keyword appears in the
# category id (or its parent's id) wins.
BUCKET_ORDER = ('insurance', 'loans', 'investments', 'household')
BUCKET_KEYWORDS: Dict[str, List[str]] = get_setting('budgets', 'bucket_keywords', default={})

INCOME_WEIGHTS = [0.8, 0.15, 0.05]


def load_monthly_budget() -> MonthlyBudget:
    try:
        return MonthlyBudget.from_dict(db.get_document(BUDGET_COLLECTION, BUDGET_DOC_ID))
    except KeyError:
        return MonthlyBudget()


def save_monthly_budget(budget: MonthlyBudget) -> MonthlyBudget:
    """Validate, recompute the surplus and persist the budget."""
    if budget.income < 0:
        raise ValueError("Budgeted income cannot be negative")
    unknown = set(budget.expenses) - set(BUDGET_BUCKETS)
    if unknown:
        raise ValueError(f"Unknown budget buckets: {sorted(unknown)}")
    for bucket, amount in budget.expenses.items():
        if amount < 0:
            raise ValueError(f"Budget for {bucket} cannot be negative")
    for category_id, amount in budget.category_budgets.items():
        if amount < 0:
            raise ValueError(f"Budget for category {category_id} cannot be negative")
    budget.recalculate()
    db.put_document(BUDGET_COLLECTION, BUDGET_DOC_ID, budget.to_dict())
    logger.info("Saved monthly budget (surplus %.2f)", budget.surplus)
    return budget


def bucket_for_transaction(txn: Transaction, categories: Optional[Sequence[Category]] = None) -> Optional[str]:
    """Budget bucket for an outgoing transaction; None for income and transfers."""
    if txn.type in ('income', 'transfer') or TRANSFER_ID in (txn.category or '').lower():
        return None
    if txn.type == 'investment':
        return 'investments'
    if txn.type == 'insurance':
        return 'insurance'

    category_id = (txn.category or '').lower()
    candidates = [category_id]
    if categories:
        candidates.append(root_of(categories, txn.category).lower())
    for bucket in BUCKET_ORDER:
        keywords = BUCKET_KEYWORDS.get(bucket, [])
        if any(keyword in candidate for candidate in candidates for keyword in keywords):
            return bucket
    return 'other'


def actuals_for_month(
    transactions: Iterable[Transaction],
    year: int,
    month: int,
    categories: Optional[Sequence[Category]] = None,
) -> Dict[str, object]:
    """Income and per-bucket spending for one month."""
    income = 0.0
    expenses = {bucket: 0.0 for bucket in BUDGET_BUCKETS}
    for txn in transactions:
        if txn.year != year or txn.month != month:
            continue
        if txn.type == 'income':
            income += txn.amount
            continue
        bucket = bucket_for_transaction(txn, categories)
        if bucket is not None:
            expenses[bucket] += txn.amount
    return {
        'income': income,
        'expenses': expenses,
        'total_expenses': sum(expenses.values()),
        'surplus': income - sum(expenses.values()),
    }


def _status(budget_amount: float, actual: float) -> str:
    if budget_amount <= 0:
        return 'No Budget' if actual == 0 else 'Over Budget'
    return 'Over Budget' if actual > budget_amount else 'Under Budget'


def compare_budget(budget: MonthlyBudget, actuals: Dict[str, object]) -> pd.DataFrame:
    """Budget vs actual per bucket.

    Columns: Bucket, Budget, Actual, Remaining, Percentage_Used, Status
    """
    rows = []
    actual_expenses: Dict[str, float] = actuals['expenses']  # type: ignore[assignment]
    for bucket in BUDGET_BUCKETS:
        budget_amount = float(budget.expenses.get(bucket, 0.0))
        actual = float(actual_expenses.get(bucket, 0.0))
        rows.append({
            'Bucket': bucket,
            'Budget': budget_amount,
            'Actual': actual,
            'Remaining': budget_amount - actual,
            'Percentage_Used': (actual / budget_amount * 100) if budget_amount > 0 else 0.0,
            'Status': _status(budget_amount, actual),
        })
    return pd.DataFrame(rows)


def category_limits(budget: MonthlyBudget, categories: Iterable[Category]) -> Dict[str, float]:
    """Per-category limits, preferring the monthly budget over ``Category.budget``."""
    limits = {c.id: float(c.budget) for c in categories if c.budget}
    limits.update({k: float(v) for k, v in budget.category_budgets.items() if v})
    return limits


def category_budget_performance(
    limits: Dict[str, float],
    category_totals: Dict[str, float],
    categories: Optional[Sequence[Category]] = None,
) -> pd.DataFrame:
    """Limit vs spending per category.

    A limit set on a parent category is compared with the parent's total
    including its children.
    """
    rolled = rollup_totals(category_totals, categories) if categories else {}
    rows = []
    for category_id, limit in sorted(limits.items()):
        is_parent = bool(categories) and any(c.parent_id == category_id for c in categories)
        actual = rolled.get(category_id, 0.0) if is_parent else category_totals.get(category_id, 0.0)
        rows.append({
            'Category': category_id,
            'Budget': limit,
            'Actual': float(actual),
            'Remaining': max(0.0, limit - actual),
            'Percentage_Used': (actual / limit * 100) if limit > 0 else 0.0,
            'Status': _status(limit, actual),
        })
    return pd.DataFrame(rows, columns=['Category', 'Budget', 'Actual', 'Remaining', 'Percentage_Used', 'Status'])


def category_overview(
    transactions: Iterable[Transaction],
    categories: Sequence[Category],
    budget: Optional[MonthlyBudget] = None,
    today: Optional[date] = None,
) -> Dict[str, object]:
    """Current-month and year-to-date spending grouped under top-level categories.

    Only expense transactions outside the transfer category count.
    """
    today = today or date.today()
    expenses = [
        t for t in transactions
        if t.type == 'expense' and t.category and TRANSFER_ID not in t.category.lower()
    ]

    spent_month = 0.0
    spent_year = 0.0
    category_spend: Dict[str, float] = {}
    for txn in expenses:
        if txn.year != today.year:
            continue
        spent_year += txn.amount
        if txn.month == today.month:
            spent_month += txn.amount
            category_spend[txn.category] = category_spend.get(txn.category, 0.0) + txn.amount

    avg_monthly = spent_year / today.month

    index = build_index(categories)
    limits = budget.category_budgets if budget else {}
    groups: Dict[str, Dict[str, object]] = {
        c.id: {'id': c.id, 'name': c.name, 'categories': []}
        for c in categories if not c.parent_id
    }
    groups.setdefault('other', {'id': 'other', 'name': 'Other', 'categories': []})

    for category in categories:
        spent = category_spend.get(category.id, 0.0)
        limit = float(limits.get(category.id, 0.0))
        item = {
            'id': category.id,
            'name': category.name,
            'spent': spent,
            'budget': limit,
            'left': max(0.0, limit - spent),
        }
        if category.parent_id and category.parent_id in groups:
            groups[category.parent_id]['categories'].append(item)
        elif not category.parent_id:
            if spent > 0 or limit > 0:
                groups[category.id]['categories'].append(item)
        else:
            groups['other']['categories'].append(item)

    # Spending on ids that are not in the category list goes under "other"
    for category_id, spent in category_spend.items():
        if category_id not in index:
            groups['other']['categories'].append({
                'id': category_id, 'name': category_id, 'spent': spent, 'budget': 0.0, 'left': 0.0,
            })

    grouped = []
    for group in groups.values():
        items = sorted(group['categories'], key=lambda item: item['spent'], reverse=True)
        total = sum(item['spent'] for item in items)
        if total > 0 or any(item['budget'] > 0 for item in items):
            grouped.append({**group, 'categories': items, 'total_spent': total})
    grouped.sort(key=lambda g: g['total_spent'], reverse=True)

    top = sorted(category_spend.items(), key=lambda kv: kv[1], reverse=True)[:4]
    return {
        'spent_month': spent_month,
        'spent_year': spent_year,
        'avg_monthly': avg_monthly,
        'top_categories': [
            {'id': cid, 'name': index[cid].name if cid in index else cid, 'amount': amount}
            for cid, amount in top
        ],
        'groups': grouped,
    }


def weighted_income_estimate(analytics: FinanceAnalytics, today: Optional[date] = None) -> float:
    """Weighted monthly income from the last three complete months.

    Uses weights of [0.8, 0.15, 0.05], most recent month first.
    """
    income = analytics._income_rows()
    if income.empty:
        return 0.0

    income['Period'] = income['Transaction Date'].dt.to_period('M')
    current_month = pd.Period(pd.Timestamp(today or date.today()), freq='M')
    complete = income[income['Period'] < current_month]
    monthly = complete.groupby('Period')['Amount'].sum().sort_index(ascending=False)

    applicable = monthly.head(3)
    if applicable.empty:
        return float(income.groupby('Period')['Amount'].sum().mean())

    applied_weights = INCOME_WEIGHTS[:len(applicable)]
    weighted = sum(val * w for val, w in zip(applicable.values, applied_weights)) / sum(applied_weights)
    return float(weighted)
