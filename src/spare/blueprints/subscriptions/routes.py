"""Recurring bill routes (Netflix, rent, gym...)."""

from __future__ import annotations

from flask import g

from ...services import service_subscriptions as sub_service
from ..common import app_ctx, json_body, login_required, ok
from . import bp


@bp.get("")
@login_required
def list_subscriptions():
    return ok(sub_service.list_subscriptions(app_ctx(), user_id=g.owner_id))


@bp.post("")
@login_required
def create_subscription():
    sub = sub_service.create_subscription(app_ctx(), user_id=g.owner_id, data=json_body())
    return ok(sub_service.serialize(sub), 201)


@bp.get("/<int:sub_id>")
@login_required
def get_subscription(sub_id: int):
    return ok(sub_service.serialize(sub_service.get_subscription(app_ctx(), sub_id, user_id=g.owner_id)))


@bp.patch("/<int:sub_id>")
@login_required
def update_subscription(sub_id: int):
    sub = sub_service.update_subscription(app_ctx(), sub_id, user_id=g.owner_id, data=json_body())
    return ok(sub_service.serialize(sub))


@bp.delete("/<int:sub_id>")
@login_required
def delete_subscription(sub_id: int):
    sub_service.delete_subscription(app_ctx(), sub_id, user_id=g.owner_id)
    return ok()


@bp.post("/<int:sub_id>/pause")
@login_required
def pause(sub_id: int):
    sub = sub_service.set_active(app_ctx(), sub_id, user_id=g.owner_id, active=False)
    return ok(sub_service.serialize(sub))


@bp.post("/<int:sub_id>/resume")
@login_required
def resume(sub_id: int):
    sub = sub_service.set_active(app_ctx(), sub_id, user_id=g.owner_id, active=True)
    return ok(sub_service.serialize(sub))
