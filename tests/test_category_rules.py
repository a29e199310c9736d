import json

import pandas as pd
import pytest

from finance_tracker.category_rules import (
    CategoryRule,
    CategoryRulesManager,
    apply_rule_bulk,
    apply_rules_to_dataframe,
    auto_apply_rules,
    get_rule_preview,
    get_rules_hash,
    matches_rule,
)
from finance_tracker.models import Transaction


def _txn(txn_id, description, category='uncategorized', txn_type='expense'):
    return Transaction(id=txn_id, date='2024-01-01', description=description,
                       category=category, type=txn_type, amount=10.0)


def test_partial_and_exact_matching():
    partial = CategoryRule(name='swiggy', category_id='delivery')
    exact = CategoryRule(name='Swiggy', category_id='delivery', match_type='exact')

    assert matches_rule(_txn('a', 'SWIGGY order 123'), partial)
    assert not matches_rule(_txn('a', 'SWIGGY order 123'), exact)
    assert matches_rule(_txn('b', '  swiggy '), exact)


def test_inactive_rules_never_match():
    rule = CategoryRule(name='swiggy', category_id='delivery', is_active=False)
    assert not matches_rule(_txn('a', 'swiggy'), rule)


def test_rule_requires_pattern_and_known_match_type():
    with pytest.raises(ValueError):
        CategoryRule(name='  ', category_id='misc')
    with pytest.raises(ValueError):
        CategoryRule(name='x', category_id='misc', match_type='regex')


def test_most_recently_used_rule_wins():
    older = CategoryRule(name='amazon', category_id='shopping', last_used='2024-01-01T00:00:00')
    newer = CategoryRule(name='amazon prime', category_id='streaming', last_used='2024-02-01T00:00:00')
    result = auto_apply_rules(_txn('a', 'Amazon Prime renewal'), [older, newer])
    assert result == {'category_id': 'streaming', 'transaction_type': None}


def test_apply_rule_bulk_only_updates_changed_rows():
    rule = CategoryRule(name='salary', category_id='salary', transaction_type='income')
    transactions = [
        _txn('a', 'SALARY JAN'),
        _txn('b', 'Salary Feb', category='salary', txn_type='income'),
        _txn('c', 'Groceries'),
    ]
    calls = []
    matched = apply_rule_bulk(transactions, rule, lambda txn_id, updates: calls.append((txn_id, updates)))

    assert matched == 2
    assert calls == [('a', {'category': 'salary', 'type': 'income'})]


def test_rule_preview_caps_samples():
    rule = CategoryRule(name='fuel', category_id='fuel')
    transactions = [_txn(str(i), f'Fuel stop {i}') for i in range(15)]
    preview = get_rule_preview(transactions, rule)
    assert preview['match_count'] == 15
    assert len(preview['sample_transactions']) == 10


def test_manager_persists_rules(tmp_path):
    path = tmp_path / 'rules.json'
    manager = CategoryRulesManager(path)
    rule = manager.add_rule('zomato', 'delivery')

    reloaded = CategoryRulesManager(path)
    assert [r.id for r in reloaded.get_rules()] == [rule.id]

    assert reloaded.toggle(rule.id).is_active is False
    assert CategoryRulesManager(path).get_rules(active_only=True) == []

    assert reloaded.remove_rule(rule.id) is True
    assert reloaded.remove_rule(rule.id) is False
    with pytest.raises(KeyError):
        reloaded.get_rule(rule.id)


def test_manager_update_rule(tmp_path):
    manager = CategoryRulesManager(tmp_path / 'rules.json')
    rule = manager.add_rule('zomato', 'delivery')
    assert manager.update_rule(rule.id, category_id='restaurants') is True
    assert manager.get_rule(rule.id).category_id == 'restaurants'
    assert manager.update_rule('missing', category_id='x') is False


def test_corrupt_rules_file_starts_empty(tmp_path):
    path = tmp_path / 'rules.json'
    path.write_text('{not json')
    assert CategoryRulesManager(path).get_rules() == []


def test_apply_rules_to_dataframe_fills_blank_categories(tmp_path):
    manager = CategoryRulesManager(tmp_path / 'rules.json')
    manager.add_rule('uber', 'public_transit')
    df = pd.DataFrame([
        {'Transaction Date': '2024-01-01', 'Description': 'Uber ride', 'Category': None, 'Type': 'expense'},
        {'Transaction Date': '2024-01-02', 'Description': 'Uber ride', 'Category': 'travel', 'Type': 'expense'},
    ])
    result = apply_rules_to_dataframe(df, manager)
    assert result['Category'].tolist() == ['public_transit', 'travel']


def test_rules_hash_changes_with_content(tmp_path):
    path = tmp_path / 'rules.json'
    assert get_rules_hash(path) == ''
    path.write_text(json.dumps({'rules': []}))
    first = get_rules_hash(path)
    path.write_text(json.dumps({'rules': [{'name': 'x'}]}))
    assert get_rules_hash(path) != first
