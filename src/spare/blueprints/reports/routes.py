"""Reporting routes and the Spare Score."""

from __future__ import annotations

from flask import g, request

from ...services import financial_health
from ...services import reports as report_service
from ..common import app_ctx, arg_date, arg_int, login_required, ok, period_value
from . import bp


@bp.get("/categories")
@login_required
def categories():
    return ok(
        report_service.category_report(
            app_ctx(), user_id=g.owner_id, start=arg_date("start_date"), end=arg_date("end_date")
        )
    )


@bp.get("/income-expenses")
@login_required
def income_expenses():
    return ok(report_service.income_expense_report(app_ctx(), user_id=g.owner_id, months=arg_int("months", 6)))


@bp.get("/net-worth")
@login_required
def net_worth():
    return ok(report_service.net_worth(app_ctx(), user_id=g.owner_id))


@bp.get("/financial-health")
@login_required
def financial_health_score():
    period = period_value(request.args.get("period"))
    return ok(financial_health.calculate(app_ctx(), user_id=g.owner_id, period=period))
