#!/usr/bin/env python3
"""Print the retirement analysis and write the yearly projection to CSV."""

from __future__ import annotations

import argparse
import sys
from datetime import date
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from finance_tracker import db
from finance_tracker.budgets import load_monthly_budget
from finance_tracker.config import EXPORTS_DIR, PREFERENCES_PATH, configure_logging, ensure_data_directories
from finance_tracker.forecast import load_assets, retirement_analysis
from finance_tracker.goals import load_goals
from finance_tracker.preferences import load_preferences


def main(output: Path, inflation_rate: float = None) -> int:
    configure_logging()
    ensure_data_directories()
    db.init_db()

    assets = load_assets()
    if not assets:
        print("No assets stored; nothing to project.")
        return 1

    preferences = load_preferences(PREFERENCES_PATH)
    analysis = retirement_analysis(
        assets,
        load_monthly_budget(),
        load_goals(),
        current_age=preferences['current_age'],
        retirement_age=preferences['retirement_age'],
        inflation_rate=inflation_rate if inflation_rate is not None else preferences['inflation_rate'],
        forecast_years=preferences['forecast_years'],
        excluded_ids=preferences['excluded_assets'],
        start_year=date.today().year,
    )

    print(f"Years to retirement:          {analysis['years_to_retirement']}")
    print(f"Current corpus:               {analysis['current_corpus']:,.0f}")
    print(f"Monthly SIP:                  {analysis['monthly_sip']:,.0f}")
    print(f"Weighted return:              {analysis['weighted_return_rate']:.1f}%")
    print(f"Wealth at retirement:         {analysis['wealth_at_retirement']:,.0f}")
    print(f"Monthly expenses then:        {analysis['inflated_monthly_expenses']:,.0f}")
    print(f"Monthly income at retirement: {analysis['monthly_income_at_retirement']:,.0f}")
    print(f"{'Surplus' if analysis['is_surplus'] else 'Deficit'}: {abs(analysis['surplus_deficit']):,.0f} per month")

    analysis['projection'].to_csv(output, index=False)
    print(f"\nProjection written to {output}")
    return 0


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='Retirement forecast report.')
    parser.add_argument('--output', type=Path, default=EXPORTS_DIR / 'projection.csv', help='CSV destination')
    parser.add_argument('--inflation', type=float, default=None, help='Override the stored inflation rate')
    args = parser.parse_args()
    raise SystemExit(main(args.output, args.inflation))
