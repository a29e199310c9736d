from finance_tracker import db, ledger
from finance_tracker.models import Transaction
from finance_tracker.transfers import detect_transfers, mark_as_transfer


def _txn(txn_id, txn_type, when, amount=500.0, account=None, category=None):
    return Transaction(
        id=txn_id, date=when, description=f'Move {txn_id}',
        category=category or ('salary' if txn_type == 'income' else 'misc'),
        type=txn_type, amount=amount, bank_account_id=account,
    )


def test_same_day_pair_has_high_confidence():
    pairs = detect_transfers([
        _txn('out', 'expense', '2024-03-01', account='checking'),
        _txn('in', 'income', '2024-03-01', account='savings'),
    ])
    assert len(pairs) == 1
    assert (pairs[0].outflow.id, pairs[0].inflow.id) == ('out', 'in')
    assert pairs[0].confidence == 0.9


def test_next_day_pair_has_lower_confidence():
    pairs = detect_transfers([
        _txn('in', 'income', '2024-03-01'),
        _txn('out', 'expense', '2024-03-02'),
    ])
    assert pairs[0].confidence == 0.7
    assert pairs[0].outflow.id == 'out'


def test_pairs_further_apart_are_ignored():
    assert detect_transfers([
        _txn('out', 'expense', '2024-03-01'),
        _txn('in', 'income', '2024-03-04'),
    ]) == []


def test_same_account_or_different_amount_is_not_a_transfer():
    assert detect_transfers([
        _txn('out', 'expense', '2024-03-01', account='checking'),
        _txn('in', 'income', '2024-03-01', account='checking'),
    ]) == []
    assert detect_transfers([
        _txn('out', 'expense', '2024-03-01'),
        _txn('in', 'income', '2024-03-01', amount=499.0),
    ]) == []


def test_existing_transfers_are_skipped():
    assert detect_transfers([
        _txn('out', 'expense', '2024-03-01', category='transfer'),
        _txn('in', 'income', '2024-03-01'),
    ]) == []


def test_each_transaction_pairs_once():
    pairs = detect_transfers([
        _txn('out', 'expense', '2024-03-01'),
        _txn('in1', 'income', '2024-03-01'),
        _txn('in2', 'income', '2024-03-01'),
    ])
    assert len(pairs) == 1


def test_mark_as_transfer_updates_ledger():
    out = ledger.add_transaction(_txn('out', 'expense', '2024-03-01'))
    inflow = ledger.add_transaction(_txn('in', 'income', '2024-03-01'))
    pair = detect_transfers([out, inflow])[0]

    updated = mark_as_transfer(pair)

    assert [t.category for t in updated] == ['transfer', 'transfer']
    stored = db.get_transaction('out')
    assert (stored.category, stored.type) == ('transfer', 'transfer')
