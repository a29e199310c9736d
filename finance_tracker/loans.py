"""Loan amortization for liabilities with a fixed EMI.

The first installment falls one month after the loan start date. Interest
for each month is charged on the outstanding balance at the monthly rate
``annual_rate / 12 / 100``.
"""

from __future__ import annotations

import math
from datetime import date
from typing import Dict, List, Optional

from dateutil.relativedelta import relativedelta

from . import db
from .models import Liability, parse_date

LIABILITY_COLLECTION = 'liabilities'
MAX_INSTALLMENTS = 1000
BALANCE_EPSILON = 0.01


def _installment(balance: float, monthly_rate: float, emi: float):
    interest = balance * monthly_rate
    payment = balance + interest if balance < emi else emi
    return payment, payment - interest, interest


def total_installments(principal: float, annual_rate: float, emi: float) -> int:
    """Number of EMIs needed to repay the loan, or 0 if the EMI never clears it."""
    monthly_rate = annual_rate / 12 / 100
    if monthly_rate > 0 and emi > principal * monthly_rate:
        return math.ceil(math.log(emi / (emi - principal * monthly_rate)) / math.log(1 + monthly_rate))
    if monthly_rate == 0 and emi > 0:
        return math.ceil(principal / emi)
    return 0


def calculate_amortization_details(
    principal: float,
    annual_rate: float,
    emi: float,
    start_date,
    today: Optional[date] = None,
) -> Dict[str, object]:
    """Where a loan stands as of ``today``.

    An EMI that does not cover the first month's interest gives back the
    principal as the balance with no installments.
    """
    start = parse_date(start_date)
    today = today or date.today()
    monthly_rate = annual_rate / 12 / 100

    total_months = total_installments(principal, annual_rate, emi)
    if total_months == 0:
        return {
            'projected_balance': principal,
            'paid_installments': 0,
            'remaining_installments': 0,
            'next_installment_date': start,
            'total_interest_paid': 0.0,
            'total_principal_paid': 0.0,
            'completion_date': start,
        }

    balance = principal
    interest_paid = 0.0
    principal_paid = 0.0
    paid = 0
    due = start + relativedelta(months=1)
    while due <= today and balance > 0:
        _, principal_part, interest = _installment(balance, monthly_rate, emi)
        interest_paid += interest
        principal_paid += principal_part
        balance -= principal_part
        paid += 1
        due = start + relativedelta(months=paid + 1)

    balance = max(0.0, balance)
    completion = start + relativedelta(months=total_months)
    return {
        'projected_balance': balance,
        'paid_installments': paid,
        'remaining_installments': max(0, total_months - paid),
        'next_installment_date': completion if balance <= 0 else due,
        'total_interest_paid': interest_paid,
        'total_principal_paid': principal_paid,
        'completion_date': completion,
    }


def generate_amortization_schedule(
    principal: float,
    annual_rate: float,
    emi: float,
    start_date,
) -> List[Dict[str, object]]:
    """Every installment until the balance is repaid.

    Stops after 1000 installments when the EMI is too small to repay the loan.
    """
    start = parse_date(start_date)
    monthly_rate = annual_rate / 12 / 100

    schedule = []
    balance = principal
    total_repaid = 0.0
    number = 1
    while balance > BALANCE_EPSILON:
        payment, principal_part, interest = _installment(balance, monthly_rate, emi)
        total_repaid += payment
        balance = max(0.0, balance - principal_part)
        schedule.append({
            'installment_number': number,
            'installment_date': start + relativedelta(months=number),
            'emi_amount': payment,
            'principal_paid': principal_part,
            'interest_paid': interest,
            'total_repaid': total_repaid,
            'remaining_balance': balance,
        })
        number += 1
        if number > MAX_INSTALLMENTS:
            break
    return schedule


def liability_status(liability: Liability, today: Optional[date] = None) -> Dict[str, object]:
    return calculate_amortization_details(
        liability.principal_amount, liability.interest_rate,
        liability.emi_amount, liability.start_date, today,
    )


def save_liability(liability: Liability) -> Liability:
    if not liability.name or not liability.name.strip():
        raise ValueError("A liability needs a name")
    if liability.principal_amount <= 0:
        raise ValueError("Loan principal must be positive")
    if liability.emi_amount < 0 or liability.interest_rate < 0:
        raise ValueError("EMI and interest rate cannot be negative")
    liability.start_date = parse_date(liability.start_date).isoformat()
    db.put_document(LIABILITY_COLLECTION, liability.id, liability.to_dict())
    return liability


def load_liabilities() -> List[Liability]:
    return [Liability.from_dict(d) for d in db.list_documents(LIABILITY_COLLECTION)]


def delete_liability(liability_id: str) -> bool:
    return db.delete_document(LIABILITY_COLLECTION, liability_id)
