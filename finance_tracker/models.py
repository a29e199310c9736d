"""Plain records persisted as documents by the tracker.

Every record is a dataclass with ``to_dict``/``from_dict`` helpers so it can
be stored as JSON in the document store or loaded back from a DataFrame row.
Dates are kept as ISO ``YYYY-MM-DD`` strings, the same way the transactions
table stores them.
"""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field, fields
from datetime import date, datetime
from typing import Any, Dict, List, Optional

import pandas as pd

TRANSACTION_TYPES = ('income', 'expense', 'investment', 'insurance', 'transfer')
GOAL_CATEGORIES = ('retirement', 'education', 'marriage', 'other')
ASSET_CATEGORIES = (
    'stocks', 'mutual_funds', 'fixed_deposit', 'gold', 'cash',
    'real_estate', 'epf', 'ppf', 'other',
)
FREQUENCIES = ('daily', 'weekly', 'monthly', 'quarterly', 'yearly')
BILL_FREQUENCIES = ('monthly', 'quarterly', 'yearly', 'one-time')
BUDGET_BUCKETS = ('household', 'insurance', 'loans', 'investments', 'other')


def new_id(prefix: str = '') -> str:
    """Return a fresh document id, optionally prefixed."""
    token = uuid.uuid4().hex[:16]
    return f"{prefix}_{token}" if prefix else token


def parse_date(value: Any) -> date:
    """Coerce strings, datetimes and pandas timestamps to a ``date``."""
    if value is None or value == '':
        raise ValueError("A date is required")
    if hasattr(value, 'to_pydatetime'):
        value = value.to_pydatetime()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    parsed = pd.to_datetime(str(value), errors='coerce')
    if pd.isna(parsed):
        raise ValueError(f"Unrecognised date: {value!r}")
    return parsed.date()


def to_iso_date(value: Any) -> str:
    return parse_date(value).isoformat()


class _Record:
    """Shared dict conversion for the dataclasses below."""

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)  # type: ignore[arg-type]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        known = {f.name for f in fields(cls)}  # type: ignore[arg-type]
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class Transaction(_Record):
    """A dated income or expense entry.

    ``amount`` is always positive; the direction of money comes from ``type``.
    """
    id: str
    date: str
    description: str
    category: str
    type: str
    amount: float
    payment_method: Optional[str] = None
    bank_account_id: Optional[str] = None
    recurring_transaction_id: Optional[str] = None
    tags: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.date = to_iso_date(self.date)
        self.amount = float(self.amount)

    @property
    def year(self) -> int:
        return int(self.date[:4])

    @property
    def month(self) -> int:
        return int(self.date[5:7])

    @property
    def period(self) -> str:
        return self.date[:7]


@dataclass
class Category(_Record):
    id: str
    name: str
    color: str = '#6B7280'
    icon: str = ''
    is_custom: bool = False
    parent_id: Optional[str] = None
    order: Optional[int] = None
    is_system: bool = False
    budget: Optional[float] = None


@dataclass
class SIPTransaction(_Record):
    date: str
    amount: float
    units: float = 0.0
    nav: float = 0.0


@dataclass
class Asset(_Record):
    id: str
    name: str
    category: str
    current_value: float
    purchase_value: Optional[float] = None
    purchase_date: Optional[str] = None
    symbol: Optional[str] = None
    is_sip: bool = False
    sip_amount: Optional[float] = None
    sip_transactions: List[SIPTransaction] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.sip_transactions = [
            SIPTransaction.from_dict(s) if isinstance(s, dict) else s
            for s in self.sip_transactions
        ]


@dataclass
class Goal(_Record):
    id: str
    name: str
    target_amount: float
    current_amount: float
    target_date: str
    monthly_contribution: float = 0.0
    category: str = 'other'
    expected_return_rate: float = 0.0  # annual, as a percentage
    is_inflation_adjusted: bool = False
    start_date: Optional[str] = None
    linked_sip_assets: List[str] = field(default_factory=list)
    linked_recurring_transactions: List[str] = field(default_factory=list)
    linked_transaction_categories: List[str] = field(default_factory=list)
    auto_update_from_transactions: bool = False
    last_sip_update: Optional[str] = None
    priority: Optional[str] = None


@dataclass
class MonthlyBudget(_Record):
    """Expected income against expense ceilings for one month."""
    income: float = 0.0
    expenses: Dict[str, float] = field(
        default_factory=lambda: {bucket: 0.0 for bucket in BUDGET_BUCKETS}
    )
    surplus: float = 0.0
    category_budgets: Dict[str, float] = field(default_factory=dict)

    def __post_init__(self) -> None:
        merged = {bucket: 0.0 for bucket in BUDGET_BUCKETS}
        merged.update({k: float(v or 0) for k, v in (self.expenses or {}).items()})
        self.expenses = merged

    @property
    def total_expenses(self) -> float:
        return float(sum(self.expenses.values()))

    def recalculate(self) -> 'MonthlyBudget':
        self.surplus = float(self.income) - self.total_expenses
        return self


@dataclass
class Liability(_Record):
    id: str
    name: str
    type: str
    principal_amount: float
    current_balance: float
    interest_rate: float
    emi_amount: float
    start_date: str
    end_date: Optional[str] = None
    bank_name: str = ''
    account_number: Optional[str] = None
    description: Optional[str] = None


@dataclass
class RecurringTransaction(_Record):
    id: str
    name: str
    description: str
    category: str
    type: str
    amount: float
    frequency: str
    start_date: str
    next_due_date: str
    end_date: Optional[str] = None
    is_active: bool = True
    bank_account_id: Optional[str] = None
    payment_method: Optional[str] = None
    reminder_days: int = 3
    auto_create: bool = False
    tags: List[str] = field(default_factory=list)
    vendor: Optional[str] = None
    last_processed_date: Optional[str] = None


@dataclass
class Bill(_Record):
    id: str
    name: str
    description: str
    category: str
    amount: float
    due_date: str
    frequency: str = 'monthly'
    is_paid: bool = False
    paid_date: Optional[str] = None
    paid_amount: Optional[float] = None
    reminder_days: int = 3
    is_overdue: bool = False
    recurring_transaction_id: Optional[str] = None
    bank_account_id: Optional[str] = None
    vendor: Optional[str] = None
    tags: List[str] = field(default_factory=list)


@dataclass
class GoalContribution(_Record):
    id: str
    goal_id: str
    amount: float
    date: str
    goal_name: str = ''
    transaction_id: Optional[str] = None
    notes: Optional[str] = None
