"""Shared sidebar for the multi-page dashboard.

Every page calls :func:`render_shared_sidebar` to pick the month being
viewed and to get the ledger, categories and stored budget.
"""

from __future__ import annotations

from datetime import date
from typing import Dict

import streamlit as st

from finance_tracker import db, summaries
from finance_tracker.budgets import load_monthly_budget
from finance_tracker.categories import load_categories
from finance_tracker.config import configure_logging, ensure_data_directories

MONTH_NAMES = [
    'January', 'February', 'March', 'April', 'May', 'June',
    'July', 'August', 'September', 'October', 'November', 'December',
]


def _bootstrap() -> None:
    if st.session_state.get('_fintrack_ready'):
        return
    configure_logging()
    ensure_data_directories()
    db.init_db()
    st.session_state['_fintrack_ready'] = True


def render_shared_sidebar() -> Dict:
    """Render the month picker and load shared data.

    Returns:
        Dict with keys: 'year', 'month', 'today', 'transactions',
        'categories', 'budget'
    """
    _bootstrap()
    today = date.today()

    st.sidebar.title("💰 Finance Tracker")
    years = list(range(today.year, today.year - 10, -1))
    year = st.sidebar.selectbox("Year", years, index=0)
    month = st.sidebar.selectbox(
        "Month", list(range(1, 13)), index=today.month - 1,
        format_func=lambda m: MONTH_NAMES[m - 1],
    )

    if st.sidebar.button("🔄 Rebuild summaries"):
        counts = summaries.rebuild_all()
        st.sidebar.success(
            f"Rebuilt {counts['category_summaries']} category and "
            f"{counts['monthly_summaries']} monthly summaries"
        )

    return {
        'year': int(year),
        'month': int(month),
        'today': today,
        'transactions': db.list_transactions(),
        'categories': load_categories(),
        'budget': load_monthly_budget(),
    }
