"""Personal Finance Analytics.

Frame-based calculations over the ledger: monthly and period summaries,
category spending, trends and health metrics. Amounts in the ledger are
positive; the ``Type`` column says which way the money moved.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Dict, Optional

import numpy as np
import pandas as pd

from .categories import TRANSFER_ID, UNCATEGORIZED_ID

TYPE_TO_FLOW = {
    'income': 'Income',
    'expense': 'Expense',
    'insurance': 'Expense',
    'investment': 'Investment',
    'transfer': 'Transfer',
}


class FinanceAnalytics:
    """Analytics over a ledger frame from :func:`db.fetch_transactions`."""

    def __init__(self, data: pd.DataFrame):
        self.data = data.copy()
        self._prepare_data()

    def _prepare_data(self) -> None:
        if 'Transaction Date' not in self.data.columns:
            self.data['Transaction Date'] = pd.Series(dtype='datetime64[ns]')
        self.data['Transaction Date'] = pd.to_datetime(self.data['Transaction Date'])
        self.data['Amount'] = pd.to_numeric(
            self.data.get('Amount', pd.Series(0.0, index=self.data.index)), errors='coerce',
        ).fillna(0.0).abs()

        self.data['Category'] = (
            self.data.get('Category', pd.Series(UNCATEGORIZED_ID, index=self.data.index))
            .fillna(UNCATEGORIZED_ID)
            .astype(str)
        )
        self.data['Type'] = (
            self.data.get('Type', pd.Series('expense', index=self.data.index))
            .fillna('expense')
            .astype(str)
            .str.strip()
            .str.lower()
        )

        flow = self.data['Type'].map(TYPE_TO_FLOW).fillna('Expense')
        is_transfer = self.data['Category'].str.lower().str.contains(TRANSFER_ID, na=False)
        self.data['Flow Category'] = np.where(is_transfer, 'Transfer', flow)

        self.data['Year'] = self.data['Transaction Date'].dt.year
        self.data['Month'] = self.data['Transaction Date'].dt.month

    def _expense_rows(self, df: Optional[pd.DataFrame] = None) -> pd.DataFrame:
        source = df if df is not None else self.data
        return source[source['Flow Category'] == 'Expense'].copy()

    def _income_rows(self, df: Optional[pd.DataFrame] = None) -> pd.DataFrame:
        source = df if df is not None else self.data
        return source[source['Flow Category'] == 'Income'].copy()

    def _investment_rows(self, df: Optional[pd.DataFrame] = None) -> pd.DataFrame:
        source = df if df is not None else self.data
        return source[source['Flow Category'] == 'Investment'].copy()

    def _month_rows(self, year: int, month: int) -> pd.DataFrame:
        return self.data[(self.data['Year'] == year) & (self.data['Month'] == month)]

    def _summarize(self, rows: pd.DataFrame) -> Dict[str, float]:
        income = float(self._income_rows(rows)['Amount'].sum())
        expenses = float(self._expense_rows(rows)['Amount'].sum())
        investments = float(self._investment_rows(rows)['Amount'].sum())
        net_flow = income - expenses
        savings_rate = (net_flow / income * 100) if income > 0 else 0.0
        return {
            'income': income,
            'expenses': expenses,
            'investments': investments,
            'net_flow': net_flow,
            'savings_rate': savings_rate,
            'transaction_count': len(rows),
        }

    def calculate_monthly_summary(self, year: int = None, month: int = None) -> Dict[str, float]:
        """Income, expenses, investments and savings rate for one month."""
        today = datetime.now()
        year = year if year is not None else today.year
        month = month if month is not None else today.month
        return self._summarize(self._month_rows(year, month))

    def calculate_period_summary(self, start_date: str = None, end_date: str = None) -> Dict:
        filtered = self._filter_by_date_range(start_date, end_date)
        summary = self._summarize(filtered)
        largest = self._expense_rows(filtered).sort_values('Amount', ascending=False).head(10)
        summary['largest_expenses'] = largest
        return summary

    def calculate_monthly_breakdown(self, start_date: str = None, end_date: str = None) -> pd.DataFrame:
        """One row per month with income, expenses, investments and net."""
        filtered = self._filter_by_date_range(start_date, end_date)
        columns = ['Month_Label', 'Year', 'Month', 'Income', 'Expenses', 'Investments', 'Net', 'Transaction_Count']
        if filtered.empty:
            return pd.DataFrame(columns=columns)

        pivot = filtered.pivot_table(
            index=['Year', 'Month'], columns='Flow Category', values='Amount',
            aggfunc='sum', fill_value=0.0,
        )
        for flow in ('Income', 'Expense', 'Investment'):
            if flow not in pivot.columns:
                pivot[flow] = 0.0
        counts = filtered.groupby(['Year', 'Month']).size()

        breakdown = pd.DataFrame({
            'Income': pivot['Income'],
            'Expenses': pivot['Expense'],
            'Investments': pivot['Investment'],
            'Transaction_Count': counts,
        }).reset_index()
        breakdown['Net'] = breakdown['Income'] - breakdown['Expenses']
        breakdown['Month_Label'] = breakdown.apply(lambda row: f"{int(row['Year'])}-{int(row['Month']):02d}", axis=1)
        return breakdown[columns]

    def calculate_category_spending(self, start_date: str = None, end_date: str = None) -> pd.DataFrame:
        """Spending by category for a date range, largest first.

        Excludes income, investments and transfers.
        """
        expenses = self._expense_rows(self._filter_by_date_range(start_date, end_date))
        if expenses.empty:
            return pd.DataFrame(columns=['Total_Spent', 'Transaction_Count', 'Avg_Transaction',
                                         'First_Transaction', 'Last_Transaction'])

        category_spending = expenses.groupby('Category').agg({
            'Amount': ['sum', 'count', 'mean'],
            'Transaction Date': ['min', 'max'],
        }).round(2)
        category_spending.columns = ['Total_Spent', 'Transaction_Count', 'Avg_Transaction',
                                     'First_Transaction', 'Last_Transaction']
        return category_spending.sort_values('Total_Spent', ascending=False)

    def calculate_spending_trends(self, category: str = None, period: str = 'monthly') -> pd.DataFrame:
        data = self.data if category is None else self.data[self.data['Category'] == category]
        expenses = self._expense_rows(data)
        if period == 'monthly':
            expenses['Period'] = expenses['Transaction Date'].dt.to_period('M')
        elif period == 'weekly':
            expenses['Period'] = expenses['Transaction Date'].dt.to_period('W')
        elif period == 'daily':
            expenses['Period'] = expenses['Transaction Date'].dt.date
        else:
            raise ValueError(f"Unknown period: {period}")

        trends = expenses.groupby('Period')['Amount'].sum().reset_index()
        trends['Period'] = trends['Period'].astype(str)
        return trends

    def category_totals_by_month(self, year: int, month: int) -> Dict[str, float]:
        """Sum of every transaction per category for a month.

        Mirrors the stored category summaries, which count all types.
        """
        rows = self._month_rows(year, month)
        return {k: float(v) for k, v in rows.groupby('Category')['Amount'].sum().items()}

    def category_totals_by_year(self, year: int) -> Dict[str, float]:
        rows = self.data[self.data['Year'] == year]
        return {k: float(v) for k, v in rows.groupby('Category')['Amount'].sum().items()}

    def running_totals(self) -> pd.DataFrame:
        """Monthly net flow with its cumulative sum."""
        breakdown = self.calculate_monthly_breakdown()
        if breakdown.empty:
            return pd.DataFrame(columns=['Month_Label', 'Net', 'Cumulative_Net'])
        breakdown = breakdown.sort_values(['Year', 'Month'])
        breakdown['Cumulative_Net'] = breakdown['Net'].cumsum()
        return breakdown[['Month_Label', 'Net', 'Cumulative_Net']].reset_index(drop=True)

    def calculate_financial_health_metrics(self, today: Optional[date] = None) -> Dict[str, float]:
        """Twelve-month income, spending and consistency metrics."""
        end_date = pd.Timestamp(today or datetime.now().date())
        start_date = end_date - timedelta(days=365)

        recent_data = self.data[
            (self.data['Transaction Date'] >= start_date) &
            (self.data['Transaction Date'] <= end_date)
        ]
        if recent_data.empty:
            recent_data = self.data

        if recent_data.empty:
            return {
                'total_income_12m': 0.0,
                'total_expenses_12m': 0.0,
                'net_worth_change_12m': 0.0,
                'monthly_income_avg': 0.0,
                'monthly_expenses_avg': 0.0,
                'monthly_savings_avg': 0.0,
                'savings_rate': 0.0,
                'top_expense_category': 'N/A',
                'top_expense_amount': 0.0,
                'spending_consistency': 0.0,
            }

        total_income = float(self._income_rows(recent_data)['Amount'].sum())
        total_expenses = float(self._expense_rows(recent_data)['Amount'].sum())

        month_count = max(recent_data['Transaction Date'].dt.to_period('M').nunique(), 1)
        monthly_income = total_income / month_count
        monthly_expenses = total_expenses / month_count
        monthly_savings = monthly_income - monthly_expenses
        savings_rate = (monthly_savings / monthly_income * 100) if monthly_income > 0 else 0.0

        expense_data = self._expense_rows(recent_data)
        category_expenses = expense_data.groupby('Category')['Amount'].sum()
        top_expense_category = category_expenses.idxmax() if len(category_expenses) > 0 else 'N/A'
        top_expense_amount = float(category_expenses.max()) if len(category_expenses) > 0 else 0.0

        monthly_spending = expense_data.groupby(
            expense_data['Transaction Date'].dt.to_period('M')
        )['Amount'].sum()
        spending_consistency = 0.0
        if len(monthly_spending) > 1 and monthly_spending.mean() != 0:
            spending_consistency = float(monthly_spending.std() / monthly_spending.mean() * 100)

        return {
            'total_income_12m': total_income,
            'total_expenses_12m': total_expenses,
            'net_worth_change_12m': total_income - total_expenses,
            'monthly_income_avg': monthly_income,
            'monthly_expenses_avg': monthly_expenses,
            'monthly_savings_avg': monthly_savings,
            'savings_rate': savings_rate,
            'top_expense_category': top_expense_category,
            'top_expense_amount': top_expense_amount,
            'spending_consistency': spending_consistency,
        }

    def _filter_by_date_range(self, start_date: str = None, end_date: str = None) -> pd.DataFrame:
        data = self.data
        if start_date:
            data = data[data['Transaction Date'] >= pd.to_datetime(start_date)]
        if end_date:
            data = data[data['Transaction Date'] <= pd.to_datetime(end_date)]
        return data.copy()
