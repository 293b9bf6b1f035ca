"""Savings goal routes."""

from __future__ import annotations

from flask import g

from ...errors import ValidationError
from ...services import goals as goal_service
from ..common import app_ctx, json_body, login_required, ok, to_float
from . import bp


def _amount() -> float:
    amount = to_float(json_body().get("amount"), "amount")
    if amount is None:
        raise ValidationError("Amount is required", {"amount": ["This field is required."]})
    return amount


@bp.get("")
@login_required
def list_goals():
    return ok(goal_service.list_goals(app_ctx(), user_id=g.owner_id))


@bp.post("")
@login_required
def create_goal():
    ctx = app_ctx()
    goal = goal_service.create_goal(ctx, user_id=g.owner_id, data=json_body())
    return ok(goal_service.goal_detail(ctx, goal.id, user_id=g.owner_id), 201)


@bp.get("/<int:goal_id>")
@login_required
def get_goal(goal_id: int):
    return ok(goal_service.goal_detail(app_ctx(), goal_id, user_id=g.owner_id))


@bp.patch("/<int:goal_id>")
@login_required
def update_goal(goal_id: int):
    ctx = app_ctx()
    goal_service.update_goal(ctx, goal_id, user_id=g.owner_id, data=json_body())
    return ok(goal_service.goal_detail(ctx, goal_id, user_id=g.owner_id))


@bp.delete("/<int:goal_id>")
@login_required
def delete_goal(goal_id: int):
    goal_service.delete_goal(app_ctx(), goal_id, user_id=g.owner_id)
    return ok()


@bp.post("/<int:goal_id>/top-up")
@login_required
def top_up(goal_id: int):
    ctx = app_ctx()
    goal_service.top_up(ctx, goal_id, user_id=g.owner_id, amount=_amount())
    return ok(goal_service.goal_detail(ctx, goal_id, user_id=g.owner_id))


@bp.post("/<int:goal_id>/withdraw")
@login_required
def withdraw(goal_id: int):
    ctx = app_ctx()
    goal_service.withdraw(ctx, goal_id, user_id=g.owner_id, amount=_amount())
    return ok(goal_service.goal_detail(ctx, goal_id, user_id=g.owner_id))


@bp.post("/emergency-fund")
@login_required
def emergency_fund():
    ctx = app_ctx()
    goal = goal_service.update_emergency_fund(ctx, user_id=g.owner_id)
    return ok(goal_service.goal_detail(ctx, goal.id, user_id=g.owner_id))
