"""Wealth projection and retirement analysis.

Each asset grows at the yearly rate for its category
(``settings/forecast.json``). New monthly investments accumulate
separately at the value-weighted rate of the assets being projected.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence

import pandas as pd

from . import db
from .models import ASSET_CATEGORIES, Asset, Goal, MonthlyBudget
from .settings import get_setting

logger = logging.getLogger(__name__)

ASSET_COLLECTION = 'assets'

DEFAULT_GROWTH_RATES: Dict[str, float] = get_setting('forecast', 'growth_rates', default={})
FALLBACK_GROWTH_RATE = DEFAULT_GROWTH_RATES.get('other', 6.0)
WITHDRAWAL_RATE = get_setting('forecast', 'defaults', 'withdrawal_rate', default=0.04)


def growth_rate_for(category: str, rates: Optional[Dict[str, float]] = None) -> float:
    rates = rates if rates is not None else DEFAULT_GROWTH_RATES
    return float(rates.get(category) or FALLBACK_GROWTH_RATE)


def future_value(pv: float, pmt: float, annual_rate: float, years: float) -> float:
    """Future value of a lump sum plus a monthly contribution.

    Compounds monthly at ``annual_rate`` percent. A zero rate adds the
    contributions without growth.
    """
    months = years * 12
    monthly_rate = annual_rate / 100 / 12
    if monthly_rate == 0:
        return pv + pmt * months
    growth = (1 + monthly_rate) ** months
    return pv * growth + pmt * (growth - 1) / monthly_rate


def weighted_return_rate(assets: Iterable[Asset], rates: Optional[Dict[str, float]] = None) -> float:
    assets = list(assets)
    total_value = sum(a.current_value for a in assets)
    if total_value == 0:
        return 0.0
    weighted = sum(a.current_value * growth_rate_for(a.category, rates) for a in assets)
    return weighted / total_value


def filter_assets(assets: Iterable[Asset], excluded_ids: Iterable[str]) -> List[Asset]:
    excluded = set(excluded_ids or [])
    return [a for a in assets if a.id not in excluded]


def yearly_projection(
    assets: Sequence[Asset],
    monthly_sip: float,
    current_age: int,
    years: int,
    start_year: Optional[int] = None,
    rates: Optional[Dict[str, float]] = None,
) -> pd.DataFrame:
    """Projected wealth for each year from now through ``years`` ahead.

    Year 0 is today's value. Columns: year, age, total_wealth,
    invested_amount, growth (all rounded to whole units).
    """
    start_year = start_year or date.today().year
    corpus = sum(a.current_value for a in assets)
    blended_rate = weighted_return_rate(assets, rates)
    values = [(a.current_value, growth_rate_for(a.category, rates)) for a in assets]

    rows = []
    for i in range(years + 1):
        assets_total = sum(value * (1 + rate / 100) ** i for value, rate in values)
        accumulated_sip = future_value(0, monthly_sip, blended_rate, i)
        total_wealth = assets_total + accumulated_sip
        invested = corpus + monthly_sip * 12 * i
        rows.append({
            'year': start_year + i,
            'age': current_age + i,
            'total_wealth': round(total_wealth),
            'invested_amount': round(invested),
            'growth': round(total_wealth - invested),
        })
    return pd.DataFrame(rows, columns=['year', 'age', 'total_wealth', 'invested_amount', 'growth'])


def retirement_sip(budget: MonthlyBudget, goals: Iterable[Goal]) -> float:
    """Monthly amount available for retirement: budget surplus plus the retirement goal's SIP."""
    retirement_goal = next((g for g in goals if g.category == 'retirement'), None)
    return budget.surplus + (retirement_goal.monthly_contribution if retirement_goal else 0.0)


def retirement_analysis(
    assets: Sequence[Asset],
    budget: MonthlyBudget,
    goals: Iterable[Goal] = (),
    current_age: int = 30,
    retirement_age: int = 60,
    inflation_rate: float = 6.0,
    forecast_years: int = 10,
    excluded_ids: Iterable[str] = (),
    start_year: Optional[int] = None,
) -> Dict[str, object]:
    """Can the projected corpus fund today's household spending at retirement?

    Household expenses are inflated to the retirement year and compared
    with a 4% yearly withdrawal from the projected wealth.
    """
    if retirement_age < current_age:
        raise ValueError("Retirement age must not be before the current age")

    fi_assets = filter_assets(assets, excluded_ids)
    years_to_retirement = retirement_age - current_age
    monthly_sip = retirement_sip(budget, goals)

    projection = yearly_projection(
        fi_assets, monthly_sip, current_age,
        max(forecast_years, years_to_retirement), start_year,
    )
    at_retirement = projection[projection['age'] == retirement_age]
    wealth_at_retirement = float(at_retirement['total_wealth'].iloc[0]) if not at_retirement.empty else 0.0

    inflated_expenses = budget.expenses.get('household', 0.0) * (1 + inflation_rate / 100) ** years_to_retirement
    monthly_income = wealth_at_retirement * WITHDRAWAL_RATE / 12
    surplus_deficit = monthly_income - inflated_expenses

    logger.debug(
        "Retirement analysis: %d years, corpus %.0f, wealth at retirement %.0f",
        years_to_retirement, sum(a.current_value for a in fi_assets), wealth_at_retirement,
    )
    return {
        'years_to_retirement': years_to_retirement,
        'current_corpus': float(sum(a.current_value for a in fi_assets)),
        'total_assets_value': float(sum(a.current_value for a in assets)),
        'monthly_sip': monthly_sip,
        'weighted_return_rate': weighted_return_rate(fi_assets),
        'inflated_monthly_expenses': inflated_expenses,
        'wealth_at_retirement': wealth_at_retirement,
        'monthly_income_at_retirement': monthly_income,
        'surplus_deficit': surplus_deficit,
        'is_surplus': monthly_income >= inflated_expenses,
        'projection': projection,
    }


# Asset persistence

def save_asset(asset: Asset) -> Asset:
    if not asset.name or not asset.name.strip():
        raise ValueError("An asset needs a name")
    if asset.category not in ASSET_CATEGORIES:
        raise ValueError(f"Unknown asset category: {asset.category}")
    if asset.current_value < 0:
        raise ValueError("Asset value cannot be negative")
    db.put_document(ASSET_COLLECTION, asset.id, asset.to_dict())
    return asset


def load_assets() -> List[Asset]:
    return [Asset.from_dict(d) for d in db.list_documents(ASSET_COLLECTION)]


def delete_asset(asset_id: str) -> bool:
    return db.delete_document(ASSET_COLLECTION, asset_id)
