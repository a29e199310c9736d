from datetime import date, timedelta

import pytest

from finance_tracker.models import Bill, RecurringTransaction
from finance_tracker.recurring import (
    auto_categorize_recurring,
    calculate_next_due_date,
    get_overdue_bills,
    get_upcoming_bills,
    load_bills,
    load_recurring,
    mark_bill_paid,
    materialize_due_transactions,
    process_recurring_transactions,
    save_recurring,
    sync_bills,
)


def _recurring(**overrides):
    fields = dict(
        id='rt1', name='Netflix', description='Netflix subscription', category='streaming',
        type='expense', amount=649, frequency='monthly', start_date='2024-01-10',
        next_due_date='2024-01-10',
    )
    fields.update(overrides)
    return RecurringTransaction(**fields)


def _bill(bill_id, due, paid=False):
    return Bill(id=bill_id, name=bill_id, description=bill_id, category='bills',
                amount=100, due_date=due, is_paid=paid)


@pytest.mark.parametrize('current, frequency, expected', [
    ('2024-01-31', 'monthly', '2024-02-29'),
    ('2024-02-29', 'yearly', '2025-02-28'),
    ('2024-01-01', 'daily', '2024-01-02'),
    ('2024-01-01', 'weekly', '2024-01-08'),
    ('2024-11-30', 'quarterly', '2025-02-28'),
])
def test_next_due_date(current, frequency, expected):
    assert calculate_next_due_date(current, frequency) == expected


def test_next_due_date_rejects_unknown_frequency():
    with pytest.raises(ValueError):
        calculate_next_due_date('2024-01-01', 'fortnightly')


def test_bill_created_inside_reminder_window():
    bills = process_recurring_transactions([_recurring(reminder_days=3)], today=date(2024, 1, 7))
    assert len(bills) == 1
    assert bills[0].id == 'bill_rt1_2024-01-10'
    assert bills[0].is_overdue is False
    assert process_recurring_transactions([_recurring(reminder_days=3)], today=date(2024, 1, 6)) == []


def test_bill_overdue_and_frequency_mapping():
    bills = process_recurring_transactions([_recurring(frequency='weekly')], today=date(2024, 1, 12))
    assert bills[0].is_overdue is True
    assert bills[0].frequency == 'monthly'


def test_inactive_entries_are_skipped():
    assert process_recurring_transactions([_recurring(is_active=False)], today=date(2024, 1, 10)) == []


def test_upcoming_and_overdue_bills():
    today = date(2024, 3, 10)
    bills = [
        _bill('late', '2024-03-01'),
        _bill('paid', '2024-03-02', paid=True),
        _bill('soon', '2024-03-15'),
        _bill('today', '2024-03-10'),
        _bill('later', '2024-04-30'),
    ]
    assert [b.id for b in get_upcoming_bills(bills, days=7, today=today)] == ['today', 'soon']
    assert [b.id for b in get_overdue_bills(bills, today=today)] == ['late']


@pytest.mark.parametrize('description, vendor, category', [
    ('Netflix monthly', None, 'Subscriptions'),
    ('Electricity bill', None, 'Utilities'),
    ('Home loan EMI', None, 'Loan EMI'),
    ('Monthly salary credit', None, 'Salary'),
    ('Music', 'Spotify', 'Subscriptions'),
    ('Gym membership', None, 'Other'),
])
def test_auto_categorize(description, vendor, category):
    assert auto_categorize_recurring(description, vendor)['category'] == category


def test_auto_categorize_fallback_has_no_tags():
    assert auto_categorize_recurring('')['tags'] == []


def test_materialize_creates_each_due_transaction():
    rt = _recurring(next_due_date='2024-01-15', auto_create=True)
    created, advanced = materialize_due_transactions(rt, today=date(2024, 3, 20))

    assert [t.date for t in created] == ['2024-01-15', '2024-02-15', '2024-03-15']
    assert created[0].id == 'txn_rt1_2024-01-15'
    assert created[0].recurring_transaction_id == 'rt1'
    assert advanced.next_due_date == '2024-04-15'
    assert advanced.last_processed_date == '2024-03-15'
    assert advanced.is_active is True
    assert rt.next_due_date == '2024-01-15', "original entry must not be mutated"


def test_materialize_stops_at_end_date():
    rt = _recurring(next_due_date='2024-01-15', end_date='2024-02-20', auto_create=True)
    created, advanced = materialize_due_transactions(rt, today=date(2024, 3, 20))
    assert len(created) == 2
    assert advanced.is_active is False


def test_materialize_requires_auto_create():
    rt = _recurring(next_due_date='2024-01-15')
    created, advanced = materialize_due_transactions(rt, today=date(2024, 3, 20))
    assert created == []
    assert advanced is rt


def test_mark_bill_paid():
    paid = mark_bill_paid(_bill('b', '2024-03-01'), paid_date='2024-03-05')
    assert paid.is_paid is True
    assert paid.paid_amount == 100
    assert paid.paid_date == '2024-03-05'


@pytest.mark.parametrize('overrides', [
    {'frequency': 'hourly'},
    {'amount': 0},
    {'name': ' '},
])
def test_save_recurring_validation(overrides):
    with pytest.raises(ValueError):
        save_recurring(_recurring(**overrides))


def test_sync_bills_only_adds_new_bills():
    today = date.today()
    save_recurring(_recurring(next_due_date=today + timedelta(days=2)))
    assert load_recurring()[0].next_due_date == (today + timedelta(days=2)).isoformat()

    assert len(sync_bills(today)) == 1
    assert sync_bills(today) == []
    assert len(load_bills()) == 1
