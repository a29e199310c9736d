from datetime import date

import pytest

from finance_tracker import db
from finance_tracker.goals import (
    CONTRIBUTION_COLLECTION,
    GoalTracker,
    calculate_expected_amount,
    calculate_goal_health,
    calculate_required_contribution,
    delete_goal,
    generate_goal_recommendations,
    get_goal_status,
    get_total_monthly_sip,
    is_goal_behind_schedule,
    link_recurring_to_goal,
    load_goals,
    months_between,
    save_goal,
    suggest_goal_for_transaction,
    suggest_recurring_for_goal,
    unlink_recurring_from_goal,
    update_goal_from_recurring_payment,
    update_goal_from_sips,
    update_goal_from_transaction,
)
from finance_tracker.models import Asset, Goal, RecurringTransaction, Transaction


def _goal(**overrides):
    fields = dict(
        id='g1', name='Retirement Fund', target_amount=100000.0, current_amount=0.0,
        target_date='2030-01-01', monthly_contribution=1000.0, category='retirement',
    )
    fields.update(overrides)
    return Goal(**fields)


def _recurring(rt_id='rt1', **overrides):
    fields = dict(
        id=rt_id, name='PPF deposit', description='Monthly PPF SIP', category='investment',
        type='investment', amount=2000.0, frequency='monthly',
        start_date='2024-01-01', next_due_date='2024-02-01',
    )
    fields.update(overrides)
    return RecurringTransaction(**fields)


def test_months_between_ignores_days():
    assert months_between(date(2024, 1, 31), date(2024, 2, 1)) == 1
    assert months_between(date(2024, 5, 1), date(2023, 5, 1)) == -12


def test_expected_amount_compounds_monthly():
    expected = calculate_expected_amount(0, 1000, 12, date(2024, 1, 1), date(2025, 1, 1))
    assert expected == pytest.approx(1000 * (1.01 ** 12 - 1) / 0.01)


def test_expected_amount_before_start_is_initial():
    assert calculate_expected_amount(500, 1000, 12, date(2024, 6, 1), date(2024, 6, 20)) == 500


def test_expected_amount_without_returns_is_linear():
    assert calculate_expected_amount(100, 50, 0, date(2024, 1, 1), date(2024, 7, 1)) == 400


def test_required_contribution_rounds_up():
    assert calculate_required_contribution(0, 10000, 12, 12) == 789
    assert calculate_required_contribution(0, 1200, 0, 12) == 100
    assert calculate_required_contribution(5000, 1000, 12, 12) == 0
    assert calculate_required_contribution(0, 1000, 12, 0) == 0


@pytest.mark.parametrize('current, status', [(7000, 'ahead'), (5500, 'on-track'), (3000, 'behind')])
def test_goal_status_against_plan(current, status):
    goal = _goal(current_amount=current, expected_return_rate=0.0)
    result = get_goal_status(goal, date(2024, 1, 1), today=date(2024, 7, 1))
    assert result['status'] == status
    assert result['expected_amount'] == 6000
    assert result['difference'] == current - 6000


def test_goal_without_plan_reports_ahead():
    goal = _goal(monthly_contribution=0.0, target_amount=1000.0)
    result = get_goal_status(goal, date(2024, 1, 1), today=date(2024, 7, 1))
    assert result['status'] == 'ahead'
    assert result['expected_amount'] == 0
    assert result['required_monthly'] == 16


def test_behind_schedule_uses_tolerance():
    goal = _goal(current_amount=5500)
    assert not is_goal_behind_schedule(goal, date(2024, 1, 1), today=date(2024, 7, 1))
    assert is_goal_behind_schedule(_goal(current_amount=5000), date(2024, 1, 1), today=date(2024, 7, 1))


def test_goal_value_follows_linked_sip_assets():
    assets = [
        Asset(id='a1', name='Index Fund', category='mutual_funds', current_value=5000, is_sip=True, sip_amount=500),
        Asset(id='a2', name='Gold', category='gold', current_value=3000),
    ]
    goal = _goal(linked_sip_assets=['a1', 'a2', 'gone'])
    updated = update_goal_from_sips(goal, assets)
    assert updated.current_amount == 5000
    assert updated.last_sip_update is not None
    assert get_total_monthly_sip(goal, assets) == 500


def test_unlinked_goal_is_unchanged():
    goal = _goal(current_amount=42)
    assert update_goal_from_sips(goal, []) is goal


def test_tracker_progress_and_completion_estimate():
    goal = _goal(target_amount=10000, current_amount=4000)
    tracker = GoalTracker()
    for when in ('2024-04-01', '2024-05-01', '2024-06-01'):
        tracker.add_contribution(goal, 1000, when)
    tracker.add_contribution(goal, 5000, '2023-01-01')

    progress = tracker.calculate_goal_progress(goal, today=date(2024, 6, 15))
    assert progress['progress_percentage'] == 40.0
    assert progress['contributed_amount'] == 8000
    assert progress['monthly_average'] == 500
    assert progress['estimated_completion'] == '2025-06-15'
    assert [c.date for c in progress['recent_contributions']][:2] == ['2024-06-01', '2024-05-01']


def test_progress_is_capped_at_100():
    goal = _goal(target_amount=1000, current_amount=2500)
    progress = GoalTracker().calculate_goal_progress(goal, today=date(2024, 1, 1))
    assert progress['progress_percentage'] == 100.0
    assert progress['estimated_completion'] is None


def test_contributions_must_be_positive():
    with pytest.raises(ValueError):
        GoalTracker().add_contribution(_goal(), 0, '2024-01-01')


def test_persisted_contributions_reload():
    tracker = GoalTracker.load()
    contribution = tracker.add_contribution(_goal(), 250, '2024-02-10', notes='bonus')
    assert [c.id for c in GoalTracker.load().contributions] == [contribution.id]

    assert tracker.remove_contribution(contribution.id) is True
    assert GoalTracker.load().contributions == []
    assert tracker.remove_contribution(contribution.id) is False


def test_monthly_contribution_summary():
    tracker = GoalTracker()
    tracker.add_contribution(_goal(), 300, '2024-05-02')
    tracker.add_contribution(_goal(id='g2', name='Car'), 100, '2024-05-20')
    tracker.add_contribution(_goal(), 999, '2024-06-01')

    summary = tracker.get_monthly_contribution_summary(2024, 5)
    assert summary['total_contributions'] == 400
    breakdown = {row['goal_name']: row['percentage'] for row in summary['goal_breakdown']}
    assert breakdown == {'Retirement Fund': 75.0, 'Car': 25.0}


def test_suggest_goal_for_transaction():
    goals = [_goal(name='Europe Trip', category='other'), _goal(id='g2', name='Kids education', category='education')]
    txn = Transaction(id='t', date='2024-01-01', description='Transfer to trip fund',
                      category='transfer', type='transfer', amount=100)
    assert suggest_goal_for_transaction(txn, goals).name == 'Europe Trip'

    unrelated = Transaction(id='u', date='2024-01-01', description='Groceries',
                            category='groceries', type='expense', amount=10)
    assert suggest_goal_for_transaction(unrelated, goals) is None


def test_link_and_unlink_recurring():
    goal = link_recurring_to_goal(_goal(), 'rt1')
    goal = link_recurring_to_goal(goal, 'rt1')
    assert goal.linked_recurring_transactions == ['rt1']
    assert unlink_recurring_from_goal(goal, 'rt1').linked_recurring_transactions == []


def test_recurring_payment_updates_linked_goal():
    goal = _goal(auto_update_from_transactions=True, linked_recurring_transactions=['rt1'], current_amount=100)
    assert update_goal_from_recurring_payment(goal, _recurring()).current_amount == 2100
    assert update_goal_from_recurring_payment(goal, _recurring(), paid_amount=500).current_amount == 600
    assert update_goal_from_recurring_payment(goal, _recurring('other')).current_amount == 100

    manual = _goal(linked_recurring_transactions=['rt1'], current_amount=100)
    assert update_goal_from_recurring_payment(manual, _recurring()).current_amount == 100


def test_investment_transactions_update_goal():
    goal = _goal(auto_update_from_transactions=True, linked_transaction_categories=['mutual_funds', 'investment'])

    def txn(category, txn_type):
        return Transaction(id='t', date='2024-01-01', description='x', category=category, type=txn_type, amount=700)

    assert update_goal_from_transaction(goal, txn('mutual_funds', 'investment')).current_amount == 700
    assert update_goal_from_transaction(goal, txn('investment', 'expense')).current_amount == 700
    assert update_goal_from_transaction(goal, txn('mutual_funds', 'expense')).current_amount == 0
    assert update_goal_from_transaction(goal, txn('stocks', 'investment')).current_amount == 0


def test_goal_health_for_strong_goal():
    goal = _goal(current_amount=80000, target_date='2027-01-01', monthly_contribution=10000, priority='high')
    health = calculate_goal_health(goal, today=date(2024, 1, 1))
    assert health['score'] == 90
    factors = {f['factor']: f['impact'] for f in health['factors']}
    assert factors['Automation'] == 'neutral'


def test_goal_health_is_clamped_for_overdue_goal():
    goal = _goal(current_amount=10000, target_date='2023-01-01', monthly_contribution=0)
    health = calculate_goal_health(goal, today=date(2024, 1, 1))
    assert health['score'] == 0


def test_linked_recurring_adds_automation_bonus():
    goal = _goal(current_amount=60000, target_date='2027-01-01', monthly_contribution=0)
    with_sip = calculate_goal_health(goal, [_recurring(amount=5000)], today=date(2024, 1, 1))
    without = calculate_goal_health(goal, today=date(2024, 1, 1))
    assert with_sip['score'] > without['score']


def test_suggest_recurring_for_goal():
    goal = _goal(linked_recurring_transactions=['rt1'])
    candidates = [
        _recurring('rt1'),
        _recurring('rt2', name='NPS contribution', description='NPS tier 1'),
        _recurring('rt3', name='Netflix', description='Netflix', type='expense', category='streaming'),
    ]
    assert [rt.id for rt in suggest_recurring_for_goal(goal, candidates)] == ['rt2']


def test_recommendations_for_underfunded_goal():
    goal = _goal(current_amount=1000, target_date='2024-06-01', monthly_contribution=0)
    kinds = [r['type'] for r in generate_goal_recommendations(goal, today=date(2024, 1, 1))]
    assert kinds == ['add_sip', 'extend_timeline']


def test_goal_persistence_roundtrip():
    save_goal(_goal(target_date='2031/05/01'))
    save_goal(_goal(id='g2', name='House', category='other', target_date='2028-01-01'))
    goals = load_goals()
    assert [g.id for g in goals] == ['g2', 'g1']
    assert goals[1].target_date == '2031-05-01'


@pytest.mark.parametrize('overrides', [
    {'name': ' '},
    {'target_amount': 0},
    {'current_amount': -1},
    {'category': 'vacation'},
])
def test_save_goal_validates(overrides):
    with pytest.raises(ValueError):
        save_goal(_goal(**overrides))


def test_delete_goal_removes_contributions():
    save_goal(_goal())
    GoalTracker.load().add_contribution(_goal(), 100, '2024-01-01')
    assert delete_goal('g1') is True
    assert db.list_documents(CONTRIBUTION_COLLECTION) == []
    assert delete_goal('g1') is False
