"""Category Rules Management - description-based categorization rules.

A rule maps a description pattern to a category id (and optionally a
transaction type). Partial rules match when the pattern appears anywhere in
the description, exact rules only when the whole description matches. The
most recently used rule wins when several match.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pandas as pd

from . import config
from .categories import UNCATEGORIZED_ID
from .models import Transaction, new_id

logger = logging.getLogger(__name__)

MATCH_TYPES = ('exact', 'partial')


def _now() -> str:
    return datetime.now().isoformat(timespec='seconds')


@dataclass
class CategoryRule:
    """A rule for categorizing transactions by description."""
    name: str  # the pattern matched against descriptions
    category_id: str
    match_type: str = 'partial'
    transaction_type: Optional[str] = None
    is_active: bool = True
    match_count: int = 0
    created_at: str = field(default_factory=_now)
    last_used: Optional[str] = None
    id: str = field(default_factory=lambda: new_id('rule'))

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValueError("A rule needs a non-empty pattern")
        if self.match_type not in MATCH_TYPES:
            raise ValueError(f"Unknown match type: {self.match_type}")


def matches_rule(transaction: Transaction, rule: CategoryRule) -> bool:
    if not rule.is_active:
        return False
    description = (transaction.description or '').lower().strip()
    pattern = rule.name.lower().strip()
    if rule.match_type == 'exact':
        return description == pattern
    return pattern in description


def find_matching_transactions(transactions: List[Transaction], rule: CategoryRule) -> List[Transaction]:
    return [t for t in transactions if matches_rule(t, rule)]


def _by_recent_use(rules: List[CategoryRule]) -> List[CategoryRule]:
    """Most recently used first; never-used rules keep their order at the end."""
    used = sorted((r for r in rules if r.last_used), key=lambda r: r.last_used, reverse=True)
    unused = [r for r in rules if not r.last_used]
    return used + unused


def auto_apply_rules(transaction: Transaction, rules: List[CategoryRule]) -> Optional[Dict[str, Optional[str]]]:
    """Category id and optional type from the first matching rule, or None."""
    for rule in _by_recent_use(rules):
        if matches_rule(transaction, rule):
            return {'category_id': rule.category_id, 'transaction_type': rule.transaction_type}
    return None


def apply_rule_bulk(
    transactions: List[Transaction],
    rule: CategoryRule,
    update_fn: Callable[[str, Dict[str, Any]], Any],
) -> int:
    """Push the rule's category/type onto every matching transaction.

    ``update_fn`` is only called for transactions that actually change.
    Returns the number of matching transactions.
    """
    matching = find_matching_transactions(transactions, rule)
    for transaction in matching:
        updates: Dict[str, Any] = {}
        if transaction.category != rule.category_id:
            updates['category'] = rule.category_id
        if rule.transaction_type and transaction.type != rule.transaction_type:
            updates['type'] = rule.transaction_type
        if updates:
            update_fn(transaction.id, updates)
    return len(matching)


def create_rule_from_transaction(
    transaction: Transaction,
    category_id: str,
    match_type: str = 'partial',
    transaction_type: Optional[str] = None,
) -> CategoryRule:
    return CategoryRule(
        name=transaction.description,
        category_id=category_id,
        match_type=match_type,
        transaction_type=transaction_type,
    )


def update_rule_stats(rule: CategoryRule, match_count: int) -> CategoryRule:
    rule.match_count += match_count
    rule.last_used = _now()
    return rule


def toggle_rule_status(rule: CategoryRule) -> CategoryRule:
    rule.is_active = not rule.is_active
    return rule


def get_rule_preview(transactions: List[Transaction], rule: CategoryRule) -> Dict[str, Any]:
    matching = find_matching_transactions(transactions, rule)
    return {
        'match_count': len(matching),
        'sample_transactions': matching[:10],
    }


class CategoryRulesManager:
    """Loads, edits and persists category rules in a JSON file."""

    def __init__(self, rules_file: Optional[Path] = None):
        """Initialize the rules manager.

        Args:
            rules_file: Path to JSON file storing rules. If None, uses the data directory.
        """
        if rules_file is None:
            rules_file = config.RULES_PATH
        self.rules_file = Path(rules_file)
        self.rules: List[CategoryRule] = []
        self._load_rules()

    def _load_rules(self) -> None:
        if not self.rules_file.exists():
            self.rules = []
            return

        try:
            with self.rules_file.open('r', encoding='utf-8') as f:
                data = json.load(f)
            self.rules = [CategoryRule(**entry) for entry in data.get('rules', [])]
        except (json.JSONDecodeError, OSError, TypeError, ValueError, AttributeError):
            logger.warning("Could not read category rules from %s; starting empty", self.rules_file, exc_info=True)
            self.rules = []

    def _save_rules(self) -> None:
        self.rules_file.parent.mkdir(parents=True, exist_ok=True)
        payload = {'rules': [asdict(rule) for rule in self.rules]}
        with self.rules_file.open('w', encoding='utf-8') as f:
            json.dump(payload, f, indent=2, ensure_ascii=False)

    def add_rule(
        self,
        name: str,
        category_id: str,
        match_type: str = 'partial',
        transaction_type: Optional[str] = None,
    ) -> CategoryRule:
        rule = CategoryRule(
            name=name,
            category_id=category_id,
            match_type=match_type,
            transaction_type=transaction_type,
        )
        self.rules.append(rule)
        self._save_rules()
        return rule

    def get_rule(self, rule_id: str) -> CategoryRule:
        for rule in self.rules:
            if rule.id == rule_id:
                return rule
        raise KeyError(f"Rule not found: {rule_id}")

    def remove_rule(self, rule_id: str) -> bool:
        original_count = len(self.rules)
        self.rules = [r for r in self.rules if r.id != rule_id]
        if len(self.rules) < original_count:
            self._save_rules()
            return True
        return False

    def update_rule(self, rule_id: str, **kwargs) -> bool:
        for rule in self.rules:
            if rule.id == rule_id:
                for key, value in kwargs.items():
                    if hasattr(rule, key) and key != 'id':
                        setattr(rule, key, value)
                self._save_rules()
                return True
        return False

    def toggle(self, rule_id: str) -> CategoryRule:
        rule = toggle_rule_status(self.get_rule(rule_id))
        self._save_rules()
        return rule

    def get_rules(self, active_only: bool = False) -> List[CategoryRule]:
        if active_only:
            return [r for r in self.rules if r.is_active]
        return self.rules.copy()

    def apply_rules(self, transaction: Transaction) -> Optional[Dict[str, Optional[str]]]:
        """Match against active rules and record the hit on the winning rule."""
        for rule in _by_recent_use(self.get_rules(active_only=True)):
            if matches_rule(transaction, rule):
                update_rule_stats(rule, 1)
                self._save_rules()
                return {'category_id': rule.category_id, 'transaction_type': rule.transaction_type}
        return None

    def apply_rule_to_transactions(
        self,
        rule_id: str,
        transactions: List[Transaction],
        update_fn: Callable[[str, Dict[str, Any]], Any],
    ) -> int:
        rule = self.get_rule(rule_id)
        matched = apply_rule_bulk(transactions, rule, update_fn)
        if matched:
            update_rule_stats(rule, matched)
            self._save_rules()
        return matched


def apply_rules_to_dataframe(df: pd.DataFrame, manager: Optional[CategoryRulesManager] = None) -> pd.DataFrame:
    """Fill in categories for uncategorized rows of a ledger frame.

    Expects 'Description' and optionally 'Category' and 'Type' columns.
    """
    manager = manager or CategoryRulesManager()
    rules = manager.get_rules(active_only=True)
    df = df.copy()

    if 'Category' not in df.columns:
        df['Category'] = None

    normalized = df['Category'].astype('string').fillna('').str.strip()
    mask = normalized.eq('') | normalized.str.lower().eq(UNCATEGORIZED_ID)

    for idx in df[mask].index:
        description = df.loc[idx, 'Description']
        if pd.isna(description) or not description:
            continue
        sample = Transaction(
            id=str(idx),
            date=df.loc[idx, 'Transaction Date'] if 'Transaction Date' in df.columns else '1970-01-01',
            description=str(description),
            category='',
            type=str(df.loc[idx, 'Type']) if 'Type' in df.columns else 'expense',
            amount=0.0,
        )
        result = auto_apply_rules(sample, rules)
        if result:
            df.loc[idx, 'Category'] = result['category_id']
            if result['transaction_type'] and 'Type' in df.columns:
                df.loc[idx, 'Type'] = result['transaction_type']

    return df


def get_rules_hash(rules_file: Optional[Path] = None) -> str:
    """Return a stable hash of the stored rules for sync tracking."""
    path = Path(rules_file or config.RULES_PATH)
    if not path.exists():
        return ''
    try:
        return hashlib.sha256(path.read_bytes()).hexdigest()
    except OSError:
        return ''
