"""Budgeting domain services."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Iterable, Optional, Protocol

from sqlalchemy.exc import IntegrityError

from ..errors import Conflict, NotFound, ValidationError
from ..models import Budget
from ..models.transaction import Transaction
from ..timeutils import month_bounds, month_start, parse_period
from . import budget_rules

logger = logging.getLogger(__name__)

WARNING_THRESHOLD = 80.0
OVER_THRESHOLD = 100.0


class BudgetRepository(Protocol):
    """Abstraction for fetching budget lines and actuals."""

    def planned_amounts(
        self, *, period: date
    ) -> Iterable[tuple[int, float]]:  # pragma: no cover - interface
        """Return (category_id, planned_amount) pairs for the requested period."""
        ...

    def actual_spend(
        self, *, period: date
    ) -> Iterable[tuple[int, float]]:  # pragma: no cover - interface
        """Return (category_id, actual_amount) pairs for the requested period."""
        ...


@dataclass(slots=True)
class BudgetVariance:
    """Lightweight DTO for reporting variance."""

    category_id: int
    planned: float
    actual: float

    @property
    def delta(self) -> float:
        return self.actual - self.planned


class PeriodBudgetSource:
    """:class:`BudgetRepository` backed by the application repositories."""

    def __init__(self, ctx, *, user_id: int):
        self.ctx = ctx
        self.user_id = user_id

    def planned_amounts(self, *, period: date) -> Iterable[tuple[int, float]]:
        totals: dict[int, float] = {}
        for budget in self.ctx.budget_repo.list_for_period(month_start(period), user_id=self.user_id):
            totals[budget.category_id] = totals.get(budget.category_id, 0.0) + budget.amount
        return totals.items()

    def actual_spend(self, *, period: date) -> Iterable[tuple[int, float]]:
        first, last = month_bounds(period)
        totals: dict[int, float] = {}
        for tx in self.ctx.transaction_repo.list_between(first, last, user_id=self.user_id, tx_type="expense"):
            if tx.category_id is not None:
                totals[tx.category_id] = totals.get(tx.category_id, 0.0) + tx.amount
        return totals.items()


def compute_variances(*, repository: BudgetRepository, period: date) -> list[BudgetVariance]:
    """Compose budget vs actual variances for display."""

    planned_map = {cat_id: amount for cat_id, amount in repository.planned_amounts(period=period)}
    actual_map = {cat_id: amount for cat_id, amount in repository.actual_spend(period=period)}

    # Categories with spend but no budget still show up
    all_categories = set(planned_map.keys()) | set(actual_map.keys())

    variances = []
    for cat_id in sorted(all_categories):
        planned = round(planned_map.get(cat_id, 0.0), 2)
        actual = round(actual_map.get(cat_id, 0.0), 2)
        variances.append(BudgetVariance(category_id=cat_id, planned=planned, actual=actual))

    return variances


def rolling_cash_flow(*, transactions: Iterable[Transaction], window_days: int = 0) -> list[dict[str, Any]]:
    """Return running cash flow totals by day (cumulative net of income minus expenses).

    Transfers move money between the user's own accounts and are left out.
    ``window_days`` keeps only the trailing days when positive.
    """

    daily: dict[date, float] = {}
    for txn in transactions:
        if txn.tx_type == "income":
            daily[txn.occurred_on] = daily.get(txn.occurred_on, 0.0) + txn.amount
        elif txn.tx_type == "expense":
            daily[txn.occurred_on] = daily.get(txn.occurred_on, 0.0) - txn.amount
    if not daily:
        return []

    running_total = 0.0
    rolling_values: list[dict[str, Any]] = []
    for day in sorted(daily):
        running_total += daily[day]
        rolling_values.append({"date": day.isoformat(), "net": round(daily[day], 2), "balance": round(running_total, 2)})
    if window_days > 0:
        return rolling_values[-window_days:]
    return rolling_values


def budget_status(spent: float, amount: float) -> tuple[float, str]:
    """Return (percentage used, status) where status is ok, warning or over."""

    percentage = (spent / amount * 100) if amount > 0 else (100.0 if spent > 0 else 0.0)
    if percentage > OVER_THRESHOLD:
        status = "over"
    elif percentage >= WARNING_THRESHOLD:
        status = "warning"
    else:
        status = "ok"
    return round(percentage, 2), status


def _spent_for(budget: Budget, expenses: list[Transaction]) -> float:
    total = 0.0
    for tx in expenses:
        if tx.category_id != budget.category_id:
            continue
        if budget.subcategory_id is not None and tx.subcategory_id != budget.subcategory_id:
            continue
        total += tx.amount
    return round(total, 2)


def list_budgets(ctx, *, user_id: int, period: date) -> list[dict[str, Any]]:
    """Budgets for the month with actual spend, remaining amount and status."""

    first, last = month_bounds(period)
    expenses = ctx.transaction_repo.list_between(first, last, user_id=user_id, tx_type="expense")
    names = {c.id: c.name for c in ctx.category_repo.list_categories(user_id=user_id)}
    rows = []
    for budget in ctx.budget_repo.list_for_period(first, user_id=user_id):
        spent = _spent_for(budget, expenses)
        percentage, status = budget_status(spent, budget.amount)
        data = budget.model_dump(mode="json")
        data.update(
            {
                "category_name": names.get(budget.category_id, ""),
                "spent": spent,
                "remaining": round(budget.amount - spent, 2),
                "percentage": percentage,
                "status": status,
            }
        )
        rows.append(data)
    return rows


def _clean(ctx, data: dict[str, Any], *, user_id: int, partial: bool) -> dict[str, Any]:
    errors: dict[str, list[str]] = {}
    cleaned: dict[str, Any] = {}
    if "period" in data or not partial:
        try:
            cleaned["period"] = parse_period(str(data.get("period") or "")) if data.get("period") else month_start(date.today())
        except ValueError:
            errors.setdefault("period", []).append("Use YYYY-MM.")
    if "amount" in data or not partial:
        try:
            amount = float(data.get("amount"))
        except (TypeError, ValueError):
            errors.setdefault("amount", []).append("Enter a valid amount.")
        else:
            if amount <= 0:
                errors.setdefault("amount", []).append("Amount must be greater than 0.")
            cleaned["amount"] = round(amount, 2)
    if "category_id" in data or not partial:
        try:
            category_id = int(data.get("category_id"))
        except (TypeError, ValueError):
            errors.setdefault("category_id", []).append("Category is required.")
        else:
            if ctx.category_repo.get_category(category_id, user_id=user_id) is None:
                errors.setdefault("category_id", []).append("Unknown category.")
            cleaned["category_id"] = category_id
    if "subcategory_id" in data:
        raw = data.get("subcategory_id")
        if raw in (None, ""):
            cleaned["subcategory_id"] = None
        else:
            sub = ctx.category_repo.get_subcategory(int(raw), user_id=user_id)
            category_id = cleaned.get("category_id") or data.get("category_id")
            if sub is None or (category_id is not None and sub.category_id != int(category_id)):
                errors.setdefault("subcategory_id", []).append("Subcategory does not belong to the category.")
            cleaned["subcategory_id"] = int(raw)
    if "note" in data:
        cleaned["note"] = str(data.get("note") or "")[:255]
    if errors:
        raise ValidationError("Invalid budget", errors)
    return cleaned


def _save(ctx, budget: Budget, *, creating: bool) -> Budget:
    existing = ctx.budget_repo.find_scope(
        budget.period, budget.category_id, budget.subcategory_id, user_id=budget.user_id
    )
    if existing is not None and existing.id != budget.id:
        raise Conflict("A budget for this category and month already exists")
    try:
        return ctx.budget_repo.create(budget) if creating else ctx.budget_repo.update(budget)
    except IntegrityError as exc:
        raise Conflict("A budget for this category and month already exists") from exc


def create_budget(ctx, *, user_id: int, data: dict[str, Any]) -> Budget:
    cleaned = _clean(ctx, data, user_id=user_id, partial=False)
    return _save(ctx, Budget(user_id=user_id, **cleaned), creating=True)


def get_budget(ctx, budget_id: int, *, user_id: int) -> Budget:
    budget = ctx.budget_repo.get_by_id(budget_id, user_id=user_id)
    if budget is None:
        raise NotFound("Budget not found")
    return budget


def update_budget(ctx, budget_id: int, *, user_id: int, data: dict[str, Any]) -> Budget:
    budget = get_budget(ctx, budget_id, user_id=user_id)
    for key, value in _clean(ctx, data, user_id=user_id, partial=True).items():
        setattr(budget, key, value)
    return _save(ctx, budget, creating=False)


def delete_budget(ctx, budget_id: int, *, user_id: int) -> None:
    if not ctx.budget_repo.delete(budget_id, user_id=user_id):
        raise NotFound("Budget not found")


def copy_budgets(ctx, *, user_id: int, from_period: date, to_period: date) -> list[Budget]:
    """Copy every budget of ``from_period`` into ``to_period``, skipping ones already there."""

    source, target = month_start(from_period), month_start(to_period)
    if source == target:
        raise ValidationError("Source and target months must differ")
    created = []
    for budget in ctx.budget_repo.list_for_period(source, user_id=user_id):
        if ctx.budget_repo.find_scope(target, budget.category_id, budget.subcategory_id, user_id=user_id):
            continue
        created.append(
            ctx.budget_repo.create(
                Budget(
                    user_id=user_id,
                    period=target,
                    category_id=budget.category_id,
                    subcategory_id=budget.subcategory_id,
                    amount=budget.amount,
                    note=budget.note,
                )
            )
        )
    logger.info("Copied budgets", extra={"user_id": user_id, "count": len(created), "to": target.isoformat()})
    return created


def generate_from_rule(
    ctx,
    *,
    user_id: int,
    monthly_income: float,
    rule_id: Optional[str] = None,
    city_cost: Optional[str] = None,
    period: Optional[date] = None,
) -> dict[str, Any]:
    """Create first-month budgets from a budget rule.

    Each group's share is split evenly across the group's categories; scopes
    that already have a budget are left alone.
    """

    if monthly_income <= 0:
        raise ValidationError("Monthly income must be greater than 0")
    rule = budget_rules.get_rule(rule_id) if rule_id else budget_rules.RULES[
        budget_rules.suggest_rule(monthly_income, city_cost)["rule"]["id"]
    ]
    target = month_start(period or date.today())
    groups = ctx.category_repo.list_groups(user_id=user_id)
    mappings = budget_rules.map_groups(rule, groups)
    created = []
    for line in budget_rules.calculate_budget_amounts(rule, monthly_income, mappings):
        categories = ctx.category_repo.list_categories(user_id=user_id, group_id=line["group_id"])
        if not categories:
            continue
        share = round(line["amount"] / len(categories), 2)
        for category in categories:
            if ctx.budget_repo.find_scope(target, category.id, None, user_id=user_id):
                continue
            created.append(
                ctx.budget_repo.create(
                    Budget(
                        user_id=user_id,
                        period=target,
                        category_id=category.id,
                        amount=share,
                        note=f"{rule.name} ({line['rule_category'].replace('_', ' ')})",
                    )
                )
            )
    return {"rule": rule.to_dict(), "monthly_income": round(monthly_income, 2), "budgets": created}


def rule_check(ctx, *, user_id: int, rule_id: str, monthly_income: float, period: date) -> dict[str, Any]:
    """Validate the month's spending against ``rule_id``."""

    rule = budget_rules.get_rule(rule_id)
    first, last = month_bounds(period)
    group_of = {c.id: c.group_id for c in ctx.category_repo.list_categories(user_id=user_id)}
    by_group: dict[int, float] = {}
    for tx in ctx.transaction_repo.list_between(first, last, user_id=user_id, tx_type="expense"):
        group_id = group_of.get(tx.category_id) if tx.category_id else None
        if group_id is not None:
            by_group[group_id] = by_group.get(group_id, 0.0) + tx.amount
    mappings = budget_rules.map_groups(rule, ctx.category_repo.list_groups(user_id=user_id))
    return budget_rules.validate_against_rule(rule, monthly_income, by_group, mappings)
