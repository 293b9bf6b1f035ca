"""Planned payment routes: the calendar of upcoming income and bills."""

from __future__ import annotations

from flask import g, request

from ...errors import ValidationError
from ...infra.repositories.recurring import PlannedPaymentQuery
from ...services import planned_payments as planned_service
from ...timeutils import parse_date
from ..common import app_ctx, arg_date, arg_int, json_body, login_required, ok
from . import bp


@bp.get("")
@login_required
def list_planned():
    query = PlannedPaymentQuery(
        start_date=arg_date("start_date"),
        end_date=arg_date("end_date"),
        status=request.args.get("status") or None,
        source=request.args.get("source") or None,
        tx_type=request.args.get("type") or None,
    )
    return ok(planned_service.list_planned(app_ctx(), user_id=g.owner_id, query=query))


@bp.post("")
@login_required
def create_planned():
    return ok(planned_service.create_planned(app_ctx(), user_id=g.owner_id, data=json_body()), 201)


@bp.get("/<int:payment_id>")
@login_required
def get_planned(payment_id: int):
    return ok(planned_service.get_planned(app_ctx(), payment_id, user_id=g.owner_id))


@bp.patch("/<int:payment_id>")
@login_required
def update_planned(payment_id: int):
    return ok(planned_service.update_planned(app_ctx(), payment_id, user_id=g.owner_id, data=json_body()))


@bp.delete("/<int:payment_id>")
@login_required
def delete_planned(payment_id: int):
    planned_service.delete_planned(app_ctx(), payment_id, user_id=g.owner_id)
    return ok()


@bp.post("/<int:payment_id>/pay")
@login_required
def pay(payment_id: int):
    data = request.get_json(silent=True) or {}
    try:
        paid_on = parse_date(str(data.get("paid_on") or "") or None)
    except ValueError as exc:
        raise ValidationError("Invalid paid_on", {"paid_on": ["Enter a valid date (YYYY-MM-DD)."]}) from exc
    return ok(planned_service.mark_as_paid(app_ctx(), payment_id, user_id=g.owner_id, paid_on=paid_on))


@bp.post("/<int:payment_id>/skip")
@login_required
def skip(payment_id: int):
    return ok(planned_service.set_status(app_ctx(), payment_id, user_id=g.owner_id, status="skipped"))


@bp.post("/<int:payment_id>/cancel")
@login_required
def cancel(payment_id: int):
    return ok(planned_service.set_status(app_ctx(), payment_id, user_id=g.owner_id, status="cancelled"))


@bp.post("/generate")
@login_required
def generate():
    created = planned_service.generate_from_service_subscriptions(
        app_ctx(), user_id=g.owner_id, horizon_days=arg_int("horizon_days", planned_service.DEFAULT_HORIZON_DAYS)
    )
    return ok({"created": created})
