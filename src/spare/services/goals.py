"""Savings goals funded by a share of monthly income."""

from __future__ import annotations

import logging
import math
from datetime import date
from typing import Any, Optional

from ..errors import NotFound, ValidationError
from ..models import Goal
from ..timeutils import add_months, month_bounds, month_start, utcnow

logger = logging.getLogger(__name__)

MAX_ALLOCATION = 100.0
INCOME_LOOKBACK_MONTHS = 3
EMERGENCY_FUND_MONTHS = 6
EMERGENCY_FUND_HORIZON = 30
EMERGENCY_MIN_PCT = 5.0
EMERGENCY_MAX_PCT = 20.0
PRIORITIES = ("high", "medium", "low")


def _monthly_average(ctx, *, user_id: int, tx_type: str, today: Optional[date] = None) -> float:
    """Average monthly total over the last three full months plus the current one."""

    current = month_start(today or date.today())
    start = add_months(current, -INCOME_LOOKBACK_MONTHS)
    _, end = month_bounds(current)
    rows = ctx.transaction_repo.list_between(start, end, user_id=user_id, tx_type=tx_type)
    return sum(tx.amount for tx in rows) / (INCOME_LOOKBACK_MONTHS + 1)


def income_basis(
    ctx, *, user_id: int, expected_income: Optional[float] = None, today: Optional[date] = None
) -> float:
    if expected_income and expected_income > 0:
        return float(expected_income)
    return _monthly_average(ctx, user_id=user_id, tx_type="income", today=today)


def monthly_expenses(ctx, *, user_id: int, today: Optional[date] = None) -> float:
    return _monthly_average(ctx, user_id=user_id, tx_type="expense", today=today)


def income_percentage_for_months(
    target_amount: float, current_balance: float, target_months: int, basis: float
) -> float:
    """Share of income needed to reach the target in ``target_months``."""

    if target_months <= 0 or basis <= 0:
        return 0.0
    remaining = max(target_amount - current_balance, 0.0)
    return round(min(remaining / target_months / basis * 100, MAX_ALLOCATION), 2)


def goal_progress(goal: Goal, basis: float, *, today: Optional[date] = None) -> dict[str, Any]:
    """Progress percentage, monthly contribution, months left and ETA."""

    today = today or date.today()
    if goal.target_amount > 0:
        percentage = min(goal.current_balance / goal.target_amount * 100, 100.0)
    else:
        percentage = 100.0
    contribution = basis * goal.income_percentage / 100 if not goal.is_paused else 0.0
    remaining = max(goal.target_amount - goal.current_balance, 0.0)
    if remaining <= 0:
        months_to_goal: Optional[int] = 0
    elif contribution > 0:
        months_to_goal = math.ceil(remaining / contribution)
    else:
        months_to_goal = None
    eta = add_months(today, months_to_goal).isoformat() if months_to_goal is not None else None
    return {
        "progress_percentage": round(percentage, 2),
        "monthly_contribution": round(contribution, 2),
        "remaining": round(remaining, 2),
        "months_to_goal": months_to_goal,
        "eta": eta,
        "income_basis": round(basis, 2),
    }


def validate_allocation(
    ctx, *, user_id: int, income_percentage: float, exclude_goal_id: Optional[int] = None
) -> None:
    """Refuse allocations that push non-paused goals above 100% of income."""

    goals = ctx.goal_repo.list_all(user_id=user_id)
    allocated = sum(
        goal.income_percentage
        for goal in goals
        if not goal.is_paused and goal.id != exclude_goal_id
    )
    total = allocated + income_percentage
    if total > MAX_ALLOCATION + 1e-9:
        raise ValidationError(
            f"Total allocation would be {total:.1f}%. Maximum is 100%.",
            {"income_percentage": ["Total allocation exceeds 100%."]},
        )


def _serialize(ctx, goal: Goal, *, user_id: int, basis: Optional[float] = None) -> dict[str, Any]:
    if basis is None or (goal.expected_income and goal.expected_income > 0):
        basis = income_basis(ctx, user_id=user_id, expected_income=goal.expected_income)
    data = goal.model_dump(mode="json")
    data.update(goal_progress(goal, basis))
    return data


def list_goals(ctx, *, user_id: int) -> list[dict[str, Any]]:
    goals = ctx.goal_repo.list_all(user_id=user_id)
    if not goals:
        return []
    basis = income_basis(ctx, user_id=user_id)
    return [_serialize(ctx, goal, user_id=user_id, basis=basis) for goal in goals]


def get_goal(ctx, goal_id: int, *, user_id: int) -> Goal:
    goal = ctx.goal_repo.get_by_id(goal_id, user_id=user_id)
    if goal is None:
        raise NotFound("Goal not found")
    return goal


def goal_detail(ctx, goal_id: int, *, user_id: int) -> dict[str, Any]:
    return _serialize(ctx, get_goal(ctx, goal_id, user_id=user_id), user_id=user_id)


def _clean(ctx, data: dict[str, Any], *, user_id: int, partial: bool) -> dict[str, Any]:
    errors: dict[str, list[str]] = {}
    cleaned: dict[str, Any] = {}

    def number(key: str, *, minimum: float = 0.0, strict: bool = False) -> None:
        if key not in data or data.get(key) in (None, ""):
            return
        try:
            value = float(data[key])
        except (TypeError, ValueError):
            errors.setdefault(key, []).append("Enter a valid number.")
            return
        if value < minimum or (strict and value <= minimum):
            errors.setdefault(key, []).append(
                f"Must be greater than {minimum:g}." if strict else f"Must be at least {minimum:g}."
            )
        cleaned[key] = value

    if "name" in data or not partial:
        name = str(data.get("name") or "").strip()
        if not name:
            errors.setdefault("name", []).append("Name is required.")
        cleaned["name"] = name[:128]
    if not partial and data.get("target_amount") in (None, ""):
        errors.setdefault("target_amount", []).append("Target amount is required.")
    number("target_amount", strict=True)
    number("current_balance")
    number("income_percentage")
    number("expected_income")
    if cleaned.get("income_percentage", 0) > MAX_ALLOCATION:
        errors.setdefault("income_percentage", []).append("Must be at most 100.")
    if "target_months" in data:
        raw = data.get("target_months")
        if raw in (None, ""):
            cleaned["target_months"] = None
        else:
            try:
                months = int(raw)
            except (TypeError, ValueError):
                months = 0
            if months < 1:
                errors.setdefault("target_months", []).append("Must be at least 1 month.")
            cleaned["target_months"] = months
    if "priority" in data:
        priority = str(data.get("priority") or "medium").strip().lower()
        if priority not in PRIORITIES:
            errors.setdefault("priority", []).append("Priority must be high, medium or low.")
        cleaned["priority"] = priority
    if "is_paused" in data:
        cleaned["is_paused"] = bool(data.get("is_paused"))
    if "account_id" in data:
        raw = data.get("account_id")
        if raw in (None, ""):
            cleaned["account_id"] = None
        elif ctx.account_repo.get_by_id(int(raw), user_id=user_id) is None:
            errors.setdefault("account_id", []).append("Unknown account.")
        else:
            cleaned["account_id"] = int(raw)
    if errors:
        raise ValidationError("Invalid goal", errors)
    return cleaned


def _refresh_completion(goal: Goal) -> None:
    completed = goal.target_amount > 0 and goal.current_balance >= goal.target_amount
    if completed and not goal.is_completed:
        goal.completed_at = utcnow()
    elif not completed:
        goal.completed_at = None
    goal.is_completed = completed


def create_goal(ctx, *, user_id: int, data: dict[str, Any]) -> Goal:
    cleaned = _clean(ctx, data, user_id=user_id, partial=False)
    goal = Goal(user_id=user_id, **cleaned)
    if goal.target_months and not goal.income_percentage:
        basis = income_basis(ctx, user_id=user_id, expected_income=goal.expected_income)
        goal.income_percentage = income_percentage_for_months(
            goal.target_amount, goal.current_balance, goal.target_months, basis
        )
    if not goal.is_paused:
        validate_allocation(ctx, user_id=user_id, income_percentage=goal.income_percentage)
    _refresh_completion(goal)
    goal = ctx.goal_repo.create(goal)
    logger.info("Goal created", extra={"user_id": user_id, "goal_id": goal.id})
    return goal


def update_goal(ctx, goal_id: int, *, user_id: int, data: dict[str, Any]) -> Goal:
    goal = get_goal(ctx, goal_id, user_id=user_id)
    cleaned = _clean(ctx, data, user_id=user_id, partial=True)
    for key, value in cleaned.items():
        setattr(goal, key, value)
    if "target_months" in cleaned and goal.target_months and "income_percentage" not in cleaned:
        basis = income_basis(ctx, user_id=user_id, expected_income=goal.expected_income)
        goal.income_percentage = income_percentage_for_months(
            goal.target_amount, goal.current_balance, goal.target_months, basis
        )
    if not goal.is_paused:
        validate_allocation(
            ctx, user_id=user_id, income_percentage=goal.income_percentage, exclude_goal_id=goal.id
        )
    _refresh_completion(goal)
    return ctx.goal_repo.update(goal)


def delete_goal(ctx, goal_id: int, *, user_id: int) -> None:
    if not ctx.goal_repo.delete(goal_id, user_id=user_id):
        raise NotFound("Goal not found")


def top_up(ctx, goal_id: int, *, user_id: int, amount: float) -> Goal:
    if amount <= 0:
        raise ValidationError("Top-up amount must be positive")
    goal = get_goal(ctx, goal_id, user_id=user_id)
    goal.current_balance = round(goal.current_balance + amount, 2)
    _refresh_completion(goal)
    return ctx.goal_repo.update(goal)


def withdraw(ctx, goal_id: int, *, user_id: int, amount: float) -> Goal:
    if amount <= 0:
        raise ValidationError("Withdrawal amount must be positive")
    goal = get_goal(ctx, goal_id, user_id=user_id)
    goal.current_balance = round(max(goal.current_balance - amount, 0.0), 2)
    _refresh_completion(goal)
    return ctx.goal_repo.update(goal)


def emergency_fund_plan(
    *, monthly_income: float, monthly_expenses: float, current_balance: float
) -> Optional[dict[str, float]]:
    """Target and income share for the emergency fund, or None without data.

    Target is six months of expenses (80% of income when there are no
    expenses). The share aims to close the gap in 30 months, clamped to
    5-20% of income, and drops to 0 once the fund is 95% there.
    """

    if monthly_income <= 0 and monthly_expenses <= 0:
        return None
    monthly_need = monthly_expenses if monthly_expenses > 0 else monthly_income * 0.8
    target = round(monthly_need * EMERGENCY_FUND_MONTHS, 2)
    percentage = 0.0
    if monthly_income > 0:
        remaining = max(target - current_balance, 0.0)
        needed = remaining / EMERGENCY_FUND_HORIZON if remaining > 0 else 0.0
        percentage = max(EMERGENCY_MIN_PCT, min(EMERGENCY_MAX_PCT, needed / monthly_income * 100))
        if remaining <= 0 or current_balance >= target * 0.95:
            percentage = 0.0
    return {"target_amount": target, "income_percentage": round(percentage, 2)}


def update_emergency_fund(ctx, *, user_id: int, today: Optional[date] = None) -> Goal:
    """Create the emergency fund goal if missing and recompute its target and share."""

    goal = ctx.goal_repo.get_emergency_fund(user_id=user_id)
    if goal is None:
        goal = ctx.goal_repo.create(
            Goal(
                user_id=user_id,
                name="Emergency Fund",
                target_amount=0.0,
                priority="high",
                is_emergency_fund=True,
            )
        )
    plan = emergency_fund_plan(
        monthly_income=income_basis(ctx, user_id=user_id, today=today),
        monthly_expenses=monthly_expenses(ctx, user_id=user_id, today=today),
        current_balance=goal.current_balance,
    )
    if plan is None:
        return goal
    others = sum(
        g.income_percentage
        for g in ctx.goal_repo.list_all(user_id=user_id)
        if not g.is_paused and g.id != goal.id
    )
    goal.target_amount = plan["target_amount"]
    goal.income_percentage = round(min(plan["income_percentage"], max(MAX_ALLOCATION - others, 0.0)), 2)
    goal.target_months = EMERGENCY_FUND_MONTHS
    _refresh_completion(goal)
    goal = ctx.goal_repo.update(goal)
    logger.info(
        "Emergency fund updated",
        extra={"user_id": user_id, "target": goal.target_amount, "pct": goal.income_percentage},
    )
    return goal
