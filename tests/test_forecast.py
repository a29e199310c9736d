import pytest

from finance_tracker.forecast import (
    delete_asset,
    filter_assets,
    future_value,
    load_assets,
    retirement_analysis,
    retirement_sip,
    save_asset,
    weighted_return_rate,
    yearly_projection,
)
from finance_tracker.models import Asset, Goal, MonthlyBudget


def _asset(asset_id, category, value):
    return Asset(id=asset_id, name=asset_id.title(), category=category, current_value=value)


def _budget():
    return MonthlyBudget(income=100000, expenses={'household': 40000}).recalculate()


def test_future_value_compounds_monthly():
    assert future_value(1000, 0, 12, 1) == pytest.approx(1000 * 1.01 ** 12)
    assert future_value(0, 100, 12, 1) == pytest.approx(100 * (1.01 ** 12 - 1) / 0.01)


def test_future_value_zero_rate_is_linear():
    assert future_value(1000, 100, 0, 2) == 3400


def test_weighted_return_rate_by_value():
    assets = [_asset('s', 'stocks', 100), _asset('c', 'cash', 100)]
    assert weighted_return_rate(assets) == pytest.approx(8.0)
    assert weighted_return_rate([]) == 0.0


def test_unknown_category_uses_fallback_rate():
    assert weighted_return_rate([_asset('x', 'collectibles', 100)]) == pytest.approx(6.0)


def test_projection_grows_each_asset():
    frame = yearly_projection([_asset('s', 'stocks', 1000)], 0, current_age=30, years=2, start_year=2024)
    assert frame['year'].tolist() == [2024, 2025, 2026]
    assert frame['age'].tolist() == [30, 31, 32]
    assert frame['total_wealth'].tolist() == [1000, 1120, 1254]
    assert frame['invested_amount'].tolist() == [1000, 1000, 1000]
    assert frame['growth'].tolist() == [0, 120, 254]


def test_projection_with_only_sip():
    frame = yearly_projection([], 1000, current_age=40, years=1, start_year=2024)
    assert frame.iloc[1]['total_wealth'] == 12000
    assert frame.iloc[1]['invested_amount'] == 12000


def test_retirement_sip_adds_retirement_goal():
    goals = [Goal(id='g', name='Retire', target_amount=1, current_amount=0,
                  target_date='2050-01-01', monthly_contribution=10000, category='retirement')]
    assert retirement_sip(_budget(), goals) == 70000
    assert retirement_sip(_budget(), []) == 60000


def test_retirement_analysis():
    assets = [_asset('s', 'stocks', 1000000), _asset('h', 'real_estate', 5000000)]
    analysis = retirement_analysis(
        assets, _budget(), current_age=30, retirement_age=60,
        inflation_rate=6.0, forecast_years=10, excluded_ids=['h'], start_year=2024,
    )

    assert analysis['years_to_retirement'] == 30
    assert analysis['current_corpus'] == 1000000
    assert analysis['total_assets_value'] == 6000000
    assert analysis['inflated_monthly_expenses'] == pytest.approx(40000 * 1.06 ** 30)
    assert len(analysis['projection']) == 31

    at_sixty = analysis['projection'].set_index('age').loc[60, 'total_wealth']
    assert analysis['wealth_at_retirement'] == at_sixty
    assert analysis['monthly_income_at_retirement'] == pytest.approx(at_sixty * 0.04 / 12)
    assert analysis['is_surplus'] == (analysis['surplus_deficit'] >= 0)


def test_retirement_age_before_current_age_is_rejected():
    with pytest.raises(ValueError):
        retirement_analysis([], _budget(), current_age=50, retirement_age=40)


def test_filter_assets():
    assets = [_asset('a', 'gold', 1), _asset('b', 'gold', 2)]
    assert [a.id for a in filter_assets(assets, ['a'])] == ['b']
    assert len(filter_assets(assets, [])) == 2


def test_asset_persistence():
    save_asset(Asset(id='a1', name='EPF', category='epf', current_value=250000,
                     sip_transactions=[{'date': '2024-01-01', 'amount': 1000, 'units': 0, 'nav': 0}]))
    loaded = load_assets()
    assert loaded[0].sip_transactions[0].amount == 1000
    assert delete_asset('a1') is True
    assert load_assets() == []


def test_asset_validation():
    with pytest.raises(ValueError):
        save_asset(_asset('x', 'crypto', 10))
    with pytest.raises(ValueError):
        save_asset(_asset('x', 'gold', -10))
