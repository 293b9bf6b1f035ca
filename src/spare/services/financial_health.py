"""Spare Score: a 0-100 monthly financial health score.

The score starts at 100 and subtracts penalties for cash flow, emergency fund
coverage, monthly debt load ratio (MDLR) and savings rate. A month can never
drop more than ``MAX_MONTHLY_DROP`` points below the previous month's score.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Optional

from ..errors import AppError
from ..timeutils import add_months, month_bounds, month_start
from . import accounts as account_service
from . import taxes
from .auth import get_user

logger = logging.getLogger(__name__)

MAX_MONTHLY_DROP = 15
MDLR_MODERATE = 20.0
MDLR_HIGH = 36.0

CLASSIFICATIONS = (
    (85, "Excellent"),
    (70, "Good"),
    (55, "Fair"),
    (40, "Poor"),
)

MESSAGES = {
    "Excellent": "Your finances are in great shape. Keep it up!",
    "Good": "You're doing well. A few tweaks could make it even better.",
    "Fair": "You're getting by, but there is room to strengthen your finances.",
    "Poor": "Your finances need attention. Focus on spending less than you earn.",
    "Critical": "Your finances are under strain. Review expenses and debts right away.",
}


@dataclass(slots=True)
class MonthTotals:
    income: float = 0.0
    expenses: float = 0.0
    count: int = 0

    @property
    def net(self) -> float:
        return self.income - self.expenses

    @property
    def savings_rate(self) -> float:
        if self.income > 0:
            return self.net / self.income * 100
        return -100.0 if self.expenses > 0 else 0.0

    @property
    def is_empty(self) -> bool:
        return self.count == 0 or (self.income == 0 and self.expenses == 0)


@dataclass(slots=True)
class FinancialHealth:
    score: int
    classification: str
    message: str
    monthly_income: float
    monthly_expenses: float
    net_amount: float
    savings_rate: float
    spending_discipline: str
    debt_exposure: str
    emergency_fund_months: float
    last_month_score: Optional[int] = None
    income_is_after_tax: bool = False
    is_empty_state: bool = False
    alerts: list[dict[str, str]] = field(default_factory=list)
    suggestions: list[dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for key in ("monthly_income", "monthly_expenses", "net_amount", "savings_rate", "emergency_fund_months"):
            data[key] = round(data[key], 2)
        return data


# Penalties are zero or negative.


def penalty_cash_flow(income: float, expenses: float) -> int:
    if income <= 0:
        return -40 if expenses > 0 else 0
    ratio = expenses / income
    if ratio <= 0.8:
        return 0
    if ratio <= 0.9:
        return -5
    if ratio <= 1.0:
        return -10
    if ratio <= 1.1:
        return -20
    return -30


def penalty_emergency_fund(months: float) -> int:
    if months >= 6:
        return 0
    if months >= 3:
        return -5
    if months >= 1:
        return -10
    return -15


def penalty_debt(mdlr_pct: float) -> int:
    if mdlr_pct > MDLR_HIGH:
        return -20
    if mdlr_pct >= MDLR_MODERATE:
        return -8
    return 0


def penalty_savings(savings_rate: float) -> int:
    if savings_rate >= 20:
        return 0
    if savings_rate >= 10:
        return -5
    if savings_rate >= 0:
        return -10
    return -15


def clamp_score(raw: float) -> int:
    return max(0, min(100, round(raw)))


def classify(score: int) -> str:
    for threshold, label in CLASSIFICATIONS:
        if score >= threshold:
            return label
    return "Critical"


def spending_discipline(savings_rate: float) -> str:
    if savings_rate >= 30:
        return "Excellent"
    if savings_rate >= 20:
        return "Good"
    if savings_rate >= 10:
        return "Fair"
    if savings_rate >= 0:
        return "Poor"
    return "Critical"


def debt_exposure(mdlr_pct: float) -> str:
    if mdlr_pct > MDLR_HIGH:
        return "High"
    if mdlr_pct >= MDLR_MODERATE:
        return "Moderate"
    return "Low"


def smooth(raw: float, last_month_score: Optional[int]) -> float:
    if last_month_score is not None and raw < last_month_score:
        return max(raw, last_month_score - MAX_MONTHLY_DROP)
    return raw


def _month_totals(ctx, *, user_id: int, period: date) -> MonthTotals:
    start, end = month_bounds(period)
    totals = MonthTotals()
    for tx_type in ("income", "expense"):
        rows = ctx.transaction_repo.list_between(start, end, user_id=user_id, tx_type=tx_type)
        amount = sum(abs(tx.amount) for tx in rows)
        totals.count += len(rows)
        if tx_type == "income":
            totals.income = amount
        else:
            totals.expenses = amount
    return totals


def _after_tax(ctx, user, monthly_income: float) -> tuple[float, bool]:
    if user is None or not user.region or monthly_income <= 0:
        return monthly_income, False
    try:
        return taxes.monthly_after_tax_income(ctx, monthly_income * 12, user.country, user.region), True
    except AppError:
        logger.warning("After-tax conversion failed; using gross income", extra={"user_id": user.id})
        return monthly_income, False


def monthly_debt_payment(ctx, *, user_id: int) -> float:
    return sum(d.minimum_payment for d in ctx.debt_repo.list_open(user_id=user_id) if not d.is_paused)


def _emergency_fund_months(ctx, *, user_id: int, expenses: float) -> float:
    if expenses <= 0:
        return 0.0
    goal = ctx.goal_repo.get_emergency_fund(user_id=user_id)
    if goal is not None:
        reserve = goal.current_balance
    else:
        reserve = sum(row["balance"] for row in account_service.list_accounts_with_balances(ctx, user_id=user_id))
    return max(reserve, 0.0) / expenses


def _alerts(totals: MonthTotals, income: float, ef_months: float, exposure: str) -> list[dict[str, str]]:
    alerts = []
    if income > 0 and totals.expenses > income:
        excess = (totals.expenses / income - 1) * 100
        alerts.append({
            "id": "expenses_exceeding_income",
            "title": "Negative Cash Flow",
            "description": f"Your expenses are {excess:.1f}% higher than your income.",
            "severity": "critical",
            "action": "Review your expenses and identify where you can reduce costs.",
        })
    elif income == 0 and totals.expenses > 0:
        alerts.append({
            "id": "no_income",
            "title": "No Income Recorded",
            "description": "You have expenses this month but no income.",
            "severity": "critical",
            "action": "Record your income to get an accurate score.",
        })
    if ef_months < 3:
        alerts.append({
            "id": "low_emergency_fund",
            "title": "Low Emergency Fund",
            "description": f"Your reserves cover {ef_months:.1f} months of expenses.",
            "severity": "warning" if ef_months >= 1 else "critical",
            "action": "Aim for at least 6 months of expenses in your emergency fund.",
        })
    if exposure != "Low":
        alerts.append({
            "id": "debt_exposure",
            "title": f"{exposure} Debt Exposure",
            "description": "A large share of your income goes to debt payments.",
            "severity": "critical" if exposure == "High" else "warning",
            "action": "Consider a payoff strategy to reduce your monthly debt load.",
        })
    return alerts


def _suggestions(savings_rate: float, ef_months: float, exposure: str) -> list[dict[str, str]]:
    suggestions = []
    if savings_rate < 20:
        suggestions.append({
            "id": "increase_savings",
            "title": "Increase Your Savings Rate",
            "description": "Try to save at least 20% of your income each month.",
            "impact": "high" if savings_rate < 10 else "medium",
        })
    if ef_months < 6:
        suggestions.append({
            "id": "build_emergency_fund",
            "title": "Build Your Emergency Fund",
            "description": "Set aside a portion of every paycheck until you reach 6 months of expenses.",
            "impact": "high" if ef_months < 3 else "medium",
        })
    if exposure != "Low":
        suggestions.append({
            "id": "reduce_debt",
            "title": "Reduce Debt Payments",
            "description": "Pay down the highest interest debt first to free up monthly cash.",
            "impact": "high",
        })
    return suggestions


def _empty_state() -> FinancialHealth:
    """No data for the month: placeholders without penalties."""

    return FinancialHealth(
        score=100,
        classification="Excellent",
        message="Add income and expense transactions to calculate your Spare Score.",
        monthly_income=0.0,
        monthly_expenses=0.0,
        net_amount=0.0,
        savings_rate=0.0,
        spending_discipline="Unknown",
        debt_exposure="Low",
        emergency_fund_months=0.0,
        is_empty_state=True,
        alerts=[{
            "id": "no_transactions",
            "title": "No Transactions",
            "description": "You don't have any transactions for this month.",
            "severity": "info",
            "action": "Add transactions to see your Spare Score.",
        }],
        suggestions=[{
            "id": "add_transactions",
            "title": "Add Transactions",
            "description": "Start by adding this month's income and expenses.",
            "impact": "high",
        }],
    )


def calculate(ctx, *, user_id: int, period: Optional[date] = None) -> FinancialHealth:
    """Score the month containing ``period`` (default: current month)."""

    period = month_start(period or date.today())
    totals = _month_totals(ctx, user_id=user_id, period=period)
    if totals.is_empty:
        return _empty_state()

    user = get_user(user_id, ctx.session_factory)
    income, after_tax = _after_tax(ctx, user, totals.income)
    adjusted = MonthTotals(income=income, expenses=totals.expenses, count=totals.count)
    savings_rate = adjusted.savings_rate

    mdlr = monthly_debt_payment(ctx, user_id=user_id) / income * 100 if income > 0 else 0.0
    p_debt = penalty_debt(mdlr) if income > 0 else 0
    exposure = debt_exposure(mdlr)
    ef_months = _emergency_fund_months(ctx, user_id=user_id, expenses=adjusted.expenses)
    p_ef = penalty_emergency_fund(ef_months)

    raw = 100 + penalty_cash_flow(income, adjusted.expenses) + p_ef + p_debt + penalty_savings(savings_rate)

    # An empty previous month still scores, with zero income and expenses.
    previous = _month_totals(ctx, user_id=user_id, period=add_months(period, -1))
    prev_income, _ = _after_tax(ctx, user, previous.income)
    prev = MonthTotals(income=prev_income, expenses=previous.expenses, count=previous.count)
    last_month_score = clamp_score(
        100
        + penalty_cash_flow(prev.income, prev.expenses)
        + p_ef
        + p_debt
        + penalty_savings(prev.savings_rate)
    )

    score = clamp_score(smooth(raw, last_month_score))
    classification = classify(score)
    logger.debug(
        "Spare Score computed",
        extra={"user_id": user_id, "period": period.isoformat(), "raw": raw, "score": score},
    )
    return FinancialHealth(
        score=score,
        classification=classification,
        message=MESSAGES[classification],
        monthly_income=income,
        monthly_expenses=adjusted.expenses,
        net_amount=adjusted.net,
        savings_rate=savings_rate,
        spending_discipline=spending_discipline(savings_rate),
        debt_exposure=exposure,
        emergency_fund_months=ef_months,
        last_month_score=last_month_score,
        income_is_after_tax=after_tax,
        alerts=_alerts(adjusted, income, ef_months, exposure),
        suggestions=_suggestions(savings_rate, ef_months, exposure),
    )
