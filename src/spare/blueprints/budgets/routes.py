"""Budget routes, including rule-based generation and variance reporting."""

from __future__ import annotations

from flask import current_app, g, request

from ...errors import ValidationError
from ...services import budget_rules
from ...services import budgeting
from ...services import taxes
from ...services.auth import get_user
from ...timeutils import month_bounds
from ..common import app_ctx, arg_float, arg_int, json_body, login_required, ok, period_value, to_float
from . import bp


@bp.get("")
@login_required
def list_budgets():
    period = period_value(request.args.get("period"))
    return ok({"period": period.isoformat(), "items": budgeting.list_budgets(app_ctx(), user_id=g.owner_id, period=period)})


@bp.post("")
@login_required
def create_budget():
    return ok(budgeting.create_budget(app_ctx(), user_id=g.owner_id, data=json_body()), 201)


@bp.get("/<int:budget_id>")
@login_required
def get_budget(budget_id: int):
    return ok(budgeting.get_budget(app_ctx(), budget_id, user_id=g.owner_id))


@bp.patch("/<int:budget_id>")
@login_required
def update_budget(budget_id: int):
    return ok(budgeting.update_budget(app_ctx(), budget_id, user_id=g.owner_id, data=json_body()))


@bp.delete("/<int:budget_id>")
@login_required
def delete_budget(budget_id: int):
    budgeting.delete_budget(app_ctx(), budget_id, user_id=g.owner_id)
    return ok()


@bp.post("/copy")
@login_required
def copy_budgets():
    data = json_body()
    created = budgeting.copy_budgets(
        app_ctx(),
        user_id=g.owner_id,
        from_period=period_value(data.get("from_period")),
        to_period=period_value(data.get("to_period")),
    )
    return ok({"created": created}, 201)


@bp.get("/variances")
@login_required
def variances():
    period = period_value(request.args.get("period"))
    rows = budgeting.compute_variances(
        repository=budgeting.PeriodBudgetSource(app_ctx(), user_id=g.owner_id), period=period
    )
    return ok(
        [
            {"category_id": row.category_id, "planned": row.planned, "actual": row.actual, "delta": round(row.delta, 2)}
            for row in rows
        ]
    )


@bp.get("/cash-flow")
@login_required
def cash_flow():
    first, last = month_bounds(period_value(request.args.get("period")))
    transactions = app_ctx().transaction_repo.list_between(first, last, user_id=g.owner_id)
    return ok(budgeting.rolling_cash_flow(transactions=transactions, window_days=arg_int("window_days", 0)))


@bp.get("/rules")
@login_required
def rules():
    payload = {"rules": [rule.to_dict() for rule in budget_rules.RULES.values()]}
    income = arg_float("monthly_income")
    if income is not None:
        payload["suggestion"] = budget_rules.suggest_rule(income, request.args.get("city_cost"))
    return ok(payload)


@bp.get("/rules/<rule_id>/check")
@login_required
def rule_check(rule_id: str):
    income = arg_float("monthly_income")
    if income is None or income <= 0:
        raise ValidationError("monthly_income is required", {"monthly_income": ["Must be greater than 0."]})
    result = budgeting.rule_check(
        app_ctx(),
        user_id=g.owner_id,
        rule_id=rule_id,
        monthly_income=income,
        period=period_value(request.args.get("period")),
    )
    return ok(result)


@bp.post("/generate")
@login_required
def generate():
    """Onboarding: first-month budgets from a budget rule."""

    ctx = app_ctx()
    data = json_body()
    income = to_float(data.get("monthly_income"), "monthly_income")
    if income is None:
        user = get_user(g.owner_id, ctx.session_factory)
        if user is None or not user.expected_income:
            raise ValidationError(
                "Monthly income is required",
                {"monthly_income": ["Provide a monthly income or set your expected income."]},
            )
        income = taxes.monthly_after_tax_income(ctx, user.expected_income, user.country, user.region)
    result = budgeting.generate_from_rule(
        ctx,
        user_id=g.owner_id,
        monthly_income=income,
        rule_id=data.get("rule_id"),
        city_cost=data.get("city_cost"),
        period=period_value(data.get("period")) if data.get("period") else None,
    )
    current_app.logger.info("Budgets generated", extra={"count": len(result["budgets"])})
    return ok(result, 201)
