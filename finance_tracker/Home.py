"""Main entry point for the Streamlit multi-page app.

Run with ``streamlit run finance_tracker/Home.py``. Pages in the pages/
directory appear in the sidebar automatically.
"""

from __future__ import annotations

import sys
from pathlib import Path

import streamlit as st

# Add project root to path for imports
project_root = Path(__file__).parent.parent.resolve()
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from finance_tracker import summaries
from finance_tracker.analytics import FinanceAnalytics
from finance_tracker.ledger import to_frame
from finance_tracker.shared_sidebar import render_shared_sidebar


def main():
    st.set_page_config(page_title="Finance Tracker", page_icon="💰", layout="wide")
    sidebar_data = render_shared_sidebar()
    transactions = sidebar_data['transactions']

    st.header("💰 Finance Tracker")
    if not transactions:
        st.info("No transactions yet. Import a statement or add transactions to get started.")
        return

    analytics = FinanceAnalytics(to_frame(transactions))
    summary = analytics.calculate_monthly_summary(sidebar_data['year'], sidebar_data['month'])

    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Income", f"{summary['income']:,.2f}")
    col2.metric("Expenses", f"{summary['expenses']:,.2f}")
    col3.metric("Investments", f"{summary['investments']:,.2f}")
    col4.metric("Savings Rate", f"{summary['savings_rate']:.1f}%")

    st.subheader("Last 12 months")
    monthly = summaries.get_monthly_spendings(12, sidebar_data['today'])
    st.dataframe(monthly, use_container_width=True)


main()
