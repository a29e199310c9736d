"""Investment return metrics: XIRR, CAGR, SIP analytics and risk ratios.

Cash flows are ``(date, amount)`` pairs with money invested as negative
amounts and the current (or sale) value as a positive amount.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
from scipy import optimize

from .models import Asset, SIPTransaction, Transaction, parse_date
from .settings import get_setting

logger = logging.getLogger(__name__)

CashFlow = Tuple[date, float]

XIRR_GUESS = get_setting('forecast', 'returns', 'xirr_guess', default=0.1)
XIRR_MAX_ITERATIONS = get_setting('forecast', 'returns', 'xirr_max_iterations', default=100)
XIRR_TOLERANCE = get_setting('forecast', 'returns', 'xirr_tolerance', default=1e-6)
XIRR_BRACKET = tuple(get_setting('forecast', 'returns', 'xirr_bracket', default=[-0.9999, 10.0]))
DAYS_PER_YEAR = get_setting('forecast', 'returns', 'days_per_year', default=365.25)
RISK_FREE_RATE = get_setting('forecast', 'returns', 'risk_free_rate', default=6.0)


def _npv(rate: float, years: np.ndarray, amounts: np.ndarray) -> float:
    return float(np.sum(amounts / np.power(1 + rate, years)))


def _npv_derivative(rate: float, years: np.ndarray, amounts: np.ndarray) -> float:
    return float(-np.sum(amounts * years / np.power(1 + rate, years + 1)))


def calculate_xirr(cash_flows: Sequence[CashFlow], guess: float = XIRR_GUESS) -> Optional[float]:
    """Annualised internal rate of return for irregular cash flows, in percent.

    Solved with Newton-Raphson from ``guess``, falling back to Brent's method
    over ``XIRR_BRACKET`` when Newton fails. Returns None for fewer than two
    flows or when neither finds a root.
    """
    if len(cash_flows) < 2:
        return None

    flows = sorted(((parse_date(d), float(a)) for d, a in cash_flows), key=lambda f: f[0])
    base = flows[0][0]
    years = np.array([(d - base).days / DAYS_PER_YEAR for d, _ in flows])
    amounts = np.array([a for _, a in flows])

    args = (years, amounts)
    with np.errstate(all='ignore'):
        try:
            rate = optimize.newton(
                _npv, guess, fprime=_npv_derivative, args=args,
                tol=XIRR_TOLERANCE, maxiter=XIRR_MAX_ITERATIONS,
            )
        except (RuntimeError, OverflowError, ZeroDivisionError):
            rate = None
        if rate is None or not np.isfinite(rate) or rate <= -1:
            logger.debug("Newton failed for XIRR, trying bracketed search")
            try:
                rate = optimize.brentq(
                    _npv, *XIRR_BRACKET, args=args,
                    xtol=XIRR_TOLERANCE, maxiter=XIRR_MAX_ITERATIONS,
                )
            except (ValueError, RuntimeError):
                logger.debug("No XIRR root inside %s", XIRR_BRACKET)
                return None
    return float(rate) * 100


def _mentions(asset: Asset, description: str) -> bool:
    text = description.lower()
    return asset.name.lower() in text or bool(asset.symbol and asset.symbol.lower() in text)


def calculate_asset_xirr(
    asset: Asset,
    transactions: Iterable[Transaction],
    today: Optional[date] = None,
) -> Optional[float]:
    """XIRR of an asset from investment transactions naming it and its SIP history."""
    flows: List[CashFlow] = [
        (parse_date(t.date), -t.amount)
        for t in transactions
        if t.type == 'investment' and _mentions(asset, t.description)
    ]
    flows.extend((parse_date(s.date), -s.amount) for s in asset.sip_transactions)
    flows.append((today or date.today(), asset.current_value))
    return calculate_xirr(flows)


def calculate_sip_xirr(
    sip_transactions: Sequence[SIPTransaction],
    current_value: float,
    today: Optional[date] = None,
) -> Optional[float]:
    flows: List[CashFlow] = [(parse_date(s.date), -s.amount) for s in sip_transactions]
    flows.append((today or date.today(), current_value))
    return calculate_xirr(flows)


def calculate_portfolio_xirr(
    assets: Iterable[Asset],
    transactions: Iterable[Transaction],
    today: Optional[date] = None,
) -> Optional[float]:
    flows: List[CashFlow] = [(parse_date(t.date), -t.amount) for t in transactions if t.type == 'investment']
    flows.append((today or date.today(), sum(a.current_value for a in assets)))
    return calculate_xirr(flows)


def calculate_cagr(initial_value: float, final_value: float, years: float) -> float:
    if years <= 0 or initial_value <= 0:
        return 0.0
    return ((final_value / initial_value) ** (1 / years) - 1) * 100


def calculate_annualized_return(
    initial_value: float,
    final_value: float,
    start_date,
    end_date=None,
) -> float:
    years = (parse_date(end_date or date.today()) - parse_date(start_date)).days / DAYS_PER_YEAR
    return calculate_cagr(initial_value, final_value, years)


def calculate_sip_analytics(
    sip_transactions: Sequence[SIPTransaction],
    current_value: float,
    today: Optional[date] = None,
) -> Dict[str, Optional[float]]:
    total_invested = sum(s.amount for s in sip_transactions)
    total_units = sum(s.units for s in sip_transactions)
    absolute_return = current_value - total_invested
    xirr = calculate_sip_xirr(sip_transactions, current_value, today)
    return {
        'total_invested': total_invested,
        'total_units': total_units,
        'average_nav': total_invested / total_units if total_units > 0 else 0.0,
        'current_nav': current_value / total_units if total_units > 0 else 0.0,
        'absolute_return': absolute_return,
        'absolute_return_percent': (absolute_return / total_invested * 100) if total_invested > 0 else 0.0,
        'xirr': xirr,
        'monthly_return': xirr / 12 if xirr else 0.0,
        'yearly_projection': current_value * (1 + xirr / 100) if xirr else current_value,
    }


def calculate_volatility(returns: Sequence[float]) -> float:
    """Sample standard deviation of periodic returns."""
    if len(returns) < 2:
        return 0.0
    return float(np.std(np.asarray(returns, dtype=float), ddof=1))


def calculate_sharpe_ratio(portfolio_return: float, volatility: float, risk_free_rate: float = RISK_FREE_RATE) -> float:
    if volatility == 0:
        return 0.0
    return (portfolio_return - risk_free_rate) / volatility
