"""Goal tracking: SIP linkage, contributions, health and persistence.

Goals carry a target amount and date. Their current amount either comes
from linked SIP assets (the sum of those assets' current values), from
manual contributions recorded through :class:`GoalTracker`, or from linked
recurring payments and investment transactions when
``auto_update_from_transactions`` is set.
"""

from __future__ import annotations

import dataclasses
import logging
import math
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Sequence

from dateutil.relativedelta import relativedelta

from . import db
from .models import (
    GOAL_CATEGORIES, Asset, Goal, GoalContribution, RecurringTransaction,
    Transaction, new_id, parse_date,
)

logger = logging.getLogger(__name__)

GOAL_COLLECTION = 'goals'
CONTRIBUTION_COLLECTION = 'goal_contributions'

ON_TRACK_TOLERANCE = 0.9
AHEAD_FACTOR = 1.1

RECURRING_KEYWORDS = {
    'retirement': ['retirement', 'pension', 'pf', 'ppf', 'nps'],
    'education': ['education', 'school', 'college', 'course'],
    'marriage': ['marriage', 'wedding'],
}


def months_between(start: date, end: date) -> int:
    """Calendar months from ``start`` to ``end``, ignoring the day of month."""
    return (end.year - start.year) * 12 + (end.month - start.month)


def _monthly_rate(annual_rate: float) -> float:
    return annual_rate / 100 / 12


# --- SIP linkage ----------------------------------------------------------

def update_goal_from_sips(goal: Goal, assets: Sequence[Asset]) -> Goal:
    """Set the goal's current amount to the value of its linked SIP assets."""
    if not goal.linked_sip_assets:
        return goal
    by_id = {asset.id: asset for asset in assets}
    total = sum(
        by_id[asset_id].current_value or 0.0
        for asset_id in goal.linked_sip_assets
        if asset_id in by_id and by_id[asset_id].is_sip
    )
    return dataclasses.replace(
        goal,
        current_amount=float(total),
        last_sip_update=datetime.now().isoformat(timespec='seconds'),
    )


def update_all_goals(goals: Sequence[Goal], assets: Sequence[Asset]) -> List[Goal]:
    return [update_goal_from_sips(goal, assets) for goal in goals]


def calculate_expected_amount(
    initial_amount: float,
    monthly_contribution: float,
    expected_return_rate: float,
    start_date: date,
    current_date: Optional[date] = None,
) -> float:
    """Value the goal should have reached by ``current_date``.

    Compounds the initial amount monthly and adds the future value of the
    monthly contributions as an ordinary annuity.
    """
    months = months_between(parse_date(start_date), parse_date(current_date or date.today()))
    if months <= 0:
        return float(initial_amount)
    rate = _monthly_rate(expected_return_rate)
    if rate == 0:
        return float(initial_amount + monthly_contribution * months)
    growth = (1 + rate) ** months
    return initial_amount * growth + monthly_contribution * ((growth - 1) / rate)


def calculate_required_contribution(
    current_amount: float,
    target_amount: float,
    expected_return_rate: float,
    months_remaining: int,
) -> float:
    """Monthly SIP needed to close the gap, rounded up to a whole unit."""
    if months_remaining <= 0 or current_amount >= target_amount:
        return 0.0
    rate = _monthly_rate(expected_return_rate)
    if rate == 0:
        return float(math.ceil((target_amount - current_amount) / months_remaining))
    growth = (1 + rate) ** months_remaining
    remaining = max(0.0, target_amount - current_amount * growth)
    if remaining == 0:
        return 0.0
    return float(math.ceil(remaining * rate / (growth - 1)))


def is_goal_behind_schedule(
    goal: Goal,
    start_date: date,
    tolerance: float = ON_TRACK_TOLERANCE,
    today: Optional[date] = None,
) -> bool:
    expected = calculate_expected_amount(
        0, goal.monthly_contribution, goal.expected_return_rate, start_date, today,
    )
    return goal.current_amount < expected * tolerance


def get_goal_status(goal: Goal, start_date: date, today: Optional[date] = None) -> Dict[str, Any]:
    """Ahead / on-track / behind against the contribution plan."""
    today = today or date.today()
    months_remaining = max(0, months_between(today, parse_date(goal.target_date)))
    expected = calculate_expected_amount(
        0, goal.monthly_contribution, goal.expected_return_rate, start_date, today,
    )
    required = calculate_required_contribution(
        goal.current_amount, goal.target_amount, goal.expected_return_rate, months_remaining,
    )

    if goal.current_amount >= expected * AHEAD_FACTOR:
        status = 'ahead'
    elif goal.current_amount >= expected * ON_TRACK_TOLERANCE:
        status = 'on-track'
    else:
        status = 'behind'

    return {
        'status': status,
        'expected_amount': expected,
        'difference': goal.current_amount - expected,
        'required_monthly': required,
        'additional_needed': max(0.0, required - goal.monthly_contribution),
    }


def get_total_monthly_sip(goal: Goal, assets: Sequence[Asset]) -> float:
    by_id = {asset.id: asset for asset in assets}
    return float(sum(
        by_id[asset_id].sip_amount
        for asset_id in goal.linked_sip_assets
        if asset_id in by_id and by_id[asset_id].is_sip and by_id[asset_id].sip_amount
    ))


# --- contributions --------------------------------------------------------

class GoalTracker:
    """Manual contributions toward goals.

    With ``persist=True`` every change is written to the document store.
    """

    def __init__(self, contributions: Optional[List[GoalContribution]] = None, persist: bool = False):
        self.contributions: List[GoalContribution] = list(contributions or [])
        self.persist = persist

    @classmethod
    def load(cls) -> 'GoalTracker':
        stored = [GoalContribution.from_dict(d) for d in db.list_documents(CONTRIBUTION_COLLECTION)]
        return cls(stored, persist=True)

    def add_contribution(
        self,
        goal: Goal,
        amount: float,
        contribution_date: Any,
        transaction_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> GoalContribution:
        if amount <= 0:
            raise ValueError("Contribution amount must be positive")
        contribution = GoalContribution(
            id=new_id('contrib'),
            goal_id=goal.id,
            goal_name=goal.name,
            amount=float(amount),
            date=parse_date(contribution_date).isoformat(),
            transaction_id=transaction_id,
            notes=notes,
        )
        self.contributions.append(contribution)
        if self.persist:
            db.put_document(CONTRIBUTION_COLLECTION, contribution.id, contribution.to_dict())
        return contribution

    def remove_contribution(self, contribution_id: str) -> bool:
        for index, contribution in enumerate(self.contributions):
            if contribution.id == contribution_id:
                del self.contributions[index]
                if self.persist:
                    db.delete_document(CONTRIBUTION_COLLECTION, contribution_id)
                return True
        return False

    def get_goal_contributions(self, goal_id: str) -> List[GoalContribution]:
        """Contributions for one goal, newest first."""
        return sorted(
            (c for c in self.contributions if c.goal_id == goal_id),
            key=lambda c: c.date,
            reverse=True,
        )

    def calculate_goal_progress(self, goal: Goal, today: Optional[date] = None) -> Dict[str, Any]:
        today = today or date.today()
        contributions = self.get_goal_contributions(goal.id)
        contributed = sum(c.amount for c in contributions)
        progress = min(goal.current_amount / goal.target_amount * 100, 100.0) if goal.target_amount > 0 else 0.0

        six_months_ago = today - relativedelta(months=6)
        recent_total = sum(c.amount for c in contributions if parse_date(c.date) >= six_months_ago)
        monthly_average = recent_total / 6

        estimated_completion = None
        if monthly_average > 0 and progress < 100:
            months_to_complete = (goal.target_amount - goal.current_amount) / monthly_average
            estimated_completion = (today + relativedelta(months=int(months_to_complete))).isoformat()

        return {
            'goal_id': goal.id,
            'goal_name': goal.name,
            'target_amount': goal.target_amount,
            'current_amount': goal.current_amount,
            'contributed_amount': contributed,
            'progress_percentage': progress,
            'monthly_average': monthly_average,
            'estimated_completion': estimated_completion,
            'recent_contributions': contributions[:5],
        }

    def get_all_goal_progress(self, goals: Sequence[Goal], today: Optional[date] = None) -> List[Dict[str, Any]]:
        return [self.calculate_goal_progress(goal, today) for goal in goals]

    def get_monthly_contribution_summary(self, year: int, month: int) -> Dict[str, Any]:
        in_month = [
            c for c in self.contributions
            if parse_date(c.date).year == year and parse_date(c.date).month == month
        ]
        total = sum(c.amount for c in in_month)
        per_goal: Dict[str, float] = {}
        for contribution in in_month:
            per_goal[contribution.goal_name] = per_goal.get(contribution.goal_name, 0.0) + contribution.amount
        return {
            'total_contributions': total,
            'goal_breakdown': [
                {
                    'goal_name': name,
                    'amount': amount,
                    'percentage': (amount / total * 100) if total > 0 else 0.0,
                }
                for name, amount in per_goal.items()
            ],
        }


def suggest_goal_for_transaction(transaction: Transaction, goals: Sequence[Goal]) -> Optional[Goal]:
    """First goal whose name or category words (3+ letters) appear in the description."""
    description = (transaction.description or '').lower()
    for goal in goals:
        keywords = goal.name.lower().split(' ') + goal.category.lower().split('_')
        if any(len(keyword) > 2 and keyword in description for keyword in keywords):
            return goal
    return None


# --- recurring / transaction integration ---------------------------------

def link_recurring_to_goal(goal: Goal, recurring_id: str) -> Goal:
    linked = list(goal.linked_recurring_transactions)
    if recurring_id not in linked:
        linked.append(recurring_id)
    return dataclasses.replace(goal, linked_recurring_transactions=linked)


def unlink_recurring_from_goal(goal: Goal, recurring_id: str) -> Goal:
    return dataclasses.replace(
        goal,
        linked_recurring_transactions=[r for r in goal.linked_recurring_transactions if r != recurring_id],
    )


def update_goal_from_recurring_payment(
    goal: Goal,
    recurring: RecurringTransaction,
    paid_amount: Optional[float] = None,
) -> Goal:
    if not goal.auto_update_from_transactions:
        return goal
    if recurring.id not in goal.linked_recurring_transactions:
        return goal
    contribution = paid_amount or recurring.amount
    return dataclasses.replace(goal, current_amount=goal.current_amount + contribution)


def update_goal_from_transaction(goal: Goal, transaction: Transaction) -> Goal:
    """Count investment transactions in linked categories toward the goal."""
    if not goal.auto_update_from_transactions:
        return goal
    if transaction.category not in goal.linked_transaction_categories:
        return goal
    is_investment = transaction.type == 'investment' or (
        transaction.type == 'expense' and 'investment' in transaction.category.lower()
    )
    if not is_investment:
        return goal
    return dataclasses.replace(goal, current_amount=goal.current_amount + transaction.amount)


def _required_monthly_sip(goal: Goal, days_remaining: int) -> float:
    months_remaining = max(1, math.ceil(days_remaining / 30))
    rate = _monthly_rate(goal.expected_return_rate)
    growth = (1 + rate) ** months_remaining
    remaining = max(0.0, goal.target_amount - goal.current_amount * growth)
    if remaining <= 0:
        return 0.0
    if rate == 0:
        return remaining / months_remaining
    return remaining * rate / (growth - 1)


def calculate_goal_health(
    goal: Goal,
    linked_recurring: Sequence[RecurringTransaction] = (),
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """Score a goal 0-100 from progress, timeline, contributions and automation."""
    today = today or date.today()
    factors: List[Dict[str, str]] = []
    score = 50

    progress = goal.current_amount / goal.target_amount * 100 if goal.target_amount > 0 else 0.0
    if progress >= 75:
        score += 20
        factors.append({'factor': 'Progress', 'impact': 'positive', 'description': 'Excellent progress towards target'})
    elif progress >= 50:
        score += 10
        factors.append({'factor': 'Progress', 'impact': 'positive', 'description': 'Good progress towards target'})
    elif progress < 25:
        score -= 15
        factors.append({'factor': 'Progress', 'impact': 'negative', 'description': 'Low progress towards target'})

    days_remaining = (parse_date(goal.target_date) - today).days
    if days_remaining < 0:
        score -= 30
        factors.append({'factor': 'Timeline', 'impact': 'negative', 'description': 'Goal is overdue'})
    elif days_remaining < 365:
        score -= 10
        factors.append({'factor': 'Timeline', 'impact': 'negative', 'description': 'Less than a year remaining'})

    required = _required_monthly_sip(goal, days_remaining)
    total_monthly = goal.monthly_contribution + sum(rt.amount for rt in linked_recurring)
    if total_monthly >= required * AHEAD_FACTOR:
        score += 15
        factors.append({'factor': 'Contributions', 'impact': 'positive', 'description': 'Contributing more than required'})
    elif total_monthly >= required * ON_TRACK_TOLERANCE:
        score += 10
        factors.append({'factor': 'Contributions', 'impact': 'positive', 'description': 'Contributing adequate amount'})
    else:
        score -= 20
        factors.append({'factor': 'Contributions', 'impact': 'negative', 'description': 'Contributing less than required'})

    if linked_recurring:
        score += 10
        factors.append({'factor': 'Automation', 'impact': 'positive', 'description': 'Automated contributions via SIPs'})
    else:
        factors.append({'factor': 'Automation', 'impact': 'neutral', 'description': 'No automated contributions set up'})

    if goal.priority == 'high':
        score += 5
        factors.append({'factor': 'Priority', 'impact': 'positive', 'description': 'High priority goal'})

    return {'score': max(0, min(100, score)), 'factors': factors}


def suggest_recurring_for_goal(
    goal: Goal,
    recurring: Sequence[RecurringTransaction],
) -> List[RecurringTransaction]:
    """Up to five unlinked investment recurrings whose text fits the goal category."""
    def is_investment(rt: RecurringTransaction) -> bool:
        category = rt.category.lower()
        description = rt.description.lower()
        return (
            rt.type == 'investment'
            or any(word in category for word in ('investment', 'sip', 'mutual'))
            or 'sip' in description
            or 'mutual fund' in description
        )

    keywords = RECURRING_KEYWORDS.get(goal.category, [])
    suggestions = []
    for rt in recurring:
        if rt.id in goal.linked_recurring_transactions or not is_investment(rt):
            continue
        text = (rt.description.lower(), rt.name.lower())
        if any(keyword in field_text for keyword in keywords for field_text in text):
            suggestions.append(rt)
    return suggestions[:5]


def generate_goal_recommendations(
    goal: Goal,
    linked_recurring: Sequence[RecurringTransaction] = (),
    today: Optional[date] = None,
) -> List[Dict[str, str]]:
    today = today or date.today()
    days_remaining = (parse_date(goal.target_date) - today).days
    required = _required_monthly_sip(goal, days_remaining)
    total_monthly = goal.monthly_contribution + sum(rt.amount for rt in linked_recurring)

    recommendations = []
    if total_monthly < required * ON_TRACK_TOLERANCE:
        if not linked_recurring:
            recommendations.append({
                'type': 'add_sip',
                'title': 'Set up automated SIP',
                'description': 'Start a systematic investment plan to automate your contributions',
                'impact': f"Achieve goal with {round(required):,} monthly SIP",
                'action_required': 'Link or create a recurring investment transaction',
            })
        else:
            recommendations.append({
                'type': 'increase_sip',
                'title': 'Increase monthly contributions',
                'description': f"You need {round(required - total_monthly):,} more per month to reach your goal on time",
                'impact': f"Increase total monthly contribution to {round(required):,}",
                'action_required': 'Increase existing SIP amount or add new SIP',
            })

    if days_remaining < 365 and goal.current_amount < goal.target_amount * 0.8:
        recommendations.append({
            'type': 'extend_timeline',
            'title': 'Consider extending timeline',
            'description': 'Your goal timeline might be too aggressive given current progress',
            'impact': 'Reduce monthly contribution requirement',
            'action_required': 'Extend target date by 1-2 years',
        })
    return recommendations


# --- persistence ----------------------------------------------------------

def validate_goal(goal: Goal) -> Goal:
    if not goal.name or not goal.name.strip():
        raise ValueError("A goal needs a name")
    if goal.target_amount <= 0:
        raise ValueError("Goal target amount must be positive")
    if goal.current_amount < 0:
        raise ValueError("Goal current amount cannot be negative")
    if goal.category not in GOAL_CATEGORIES:
        raise ValueError(f"Unknown goal category: {goal.category}")
    goal.target_date = parse_date(goal.target_date).isoformat()
    return goal


def save_goal(goal: Goal) -> Goal:
    validate_goal(goal)
    db.put_document(GOAL_COLLECTION, goal.id, goal.to_dict())
    return goal


def get_goal(goal_id: str) -> Goal:
    return Goal.from_dict(db.get_document(GOAL_COLLECTION, goal_id))


def load_goals() -> List[Goal]:
    return sorted(
        (Goal.from_dict(d) for d in db.list_documents(GOAL_COLLECTION)),
        key=lambda g: g.target_date,
    )


def delete_goal(goal_id: str) -> bool:
    removed = db.delete_document(GOAL_COLLECTION, goal_id)
    if removed:
        for data in db.list_documents(CONTRIBUTION_COLLECTION):
            if data.get('goal_id') == goal_id:
                db.delete_document(CONTRIBUTION_COLLECTION, data['id'])
        logger.info("Deleted goal %s and its contributions", goal_id)
    return removed


def sync_goals_with_assets(assets: Sequence[Asset]) -> List[Goal]:
    """Refresh every SIP-linked goal from current asset values and store it."""
    updated = []
    for goal in load_goals():
        if goal.linked_sip_assets:
            goal = save_goal(update_goal_from_sips(goal, assets))
        updated.append(goal)
    return updated
