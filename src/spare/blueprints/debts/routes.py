"""Debt routes."""

from __future__ import annotations

from dataclasses import asdict

from flask import g, request

from ...errors import ValidationError
from ...services import debts as debt_service
from ..common import app_ctx, arg_float, arg_int, json_body, login_required, ok, to_float
from . import bp


@bp.get("")
@login_required
def list_debts():
    return ok([debt_service.serialize(d) for d in debt_service.list_debts(app_ctx(), user_id=g.owner_id)])


@bp.post("")
@login_required
def create_debt():
    debt = debt_service.create_debt(app_ctx(), user_id=g.owner_id, data=json_body())
    return ok(debt_service.serialize(debt), 201)


@bp.get("/<int:debt_id>")
@login_required
def get_debt(debt_id: int):
    return ok(debt_service.serialize(debt_service.get_debt(app_ctx(), debt_id, user_id=g.owner_id)))


@bp.patch("/<int:debt_id>")
@login_required
def update_debt(debt_id: int):
    debt = debt_service.update_debt(app_ctx(), debt_id, user_id=g.owner_id, data=json_body())
    return ok(debt_service.serialize(debt))


@bp.delete("/<int:debt_id>")
@login_required
def delete_debt(debt_id: int):
    debt_service.delete_debt(app_ctx(), debt_id, user_id=g.owner_id)
    return ok()


@bp.post("/<int:debt_id>/payments")
@login_required
def add_payment(debt_id: int):
    amount = to_float(json_body().get("amount"), "amount")
    if amount is None:
        raise ValidationError("Amount is required", {"amount": ["This field is required."]})
    debt = debt_service.add_payment(app_ctx(), debt_id, user_id=g.owner_id, amount=amount)
    return ok(debt_service.serialize(debt))


@bp.get("/<int:debt_id>/schedule")
@login_required
def schedule(debt_id: int):
    debt = debt_service.get_debt(app_ctx(), debt_id, user_id=g.owner_id)
    rows = debt_service.payment_schedule(debt, months=arg_int("months"))
    return ok([asdict(row) for row in rows])


@bp.get("/payoff-plan")
@login_required
def payoff_plan():
    plan = debt_service.payoff_plan(
        app_ctx(),
        user_id=g.owner_id,
        strategy=(request.args.get("strategy") or "avalanche").lower(),
        surplus=arg_float("surplus", 0.0),
    )
    return ok(plan)


@bp.get("/<int:debt_id>/amortization")
@login_required
def amortization(debt_id: int):
    months = arg_int("months")
    if months is None:
        raise ValidationError("Term is required", {"months": ["This field is required."]})
    debt = debt_service.get_debt(app_ctx(), debt_id, user_id=g.owner_id)
    return ok(
        {
            "months": months,
            "monthly_payment": debt_service.amortized_payment(
                debt.current_balance, debt.interest_rate, months
            ),
            "payoff_months": debt_service.payoff_months(
                debt.current_balance, debt.interest_rate, debt.minimum_payment
            ),
        }
    )
