"""Household member routes."""

from __future__ import annotations

from flask import g

from ...errors import Forbidden, ValidationError
from ...services import members as member_service
from ..common import app_ctx, json_body, login_required, ok
from . import bp


def _require_owner() -> None:
    if g.owner_id != g.current_user.id:
        raise Forbidden("Only the household owner can manage members")


@bp.get("")
@login_required
def list_members():
    return ok(member_service.list_members(app_ctx(), owner_id=g.owner_id))


@bp.post("/invite")
@login_required
def invite():
    _require_owner()
    ctx = app_ctx()
    member = member_service.invite(ctx, owner=g.current_user, data=json_body())
    payload = member_service.serialize(member)
    payload["invitation_url"] = member_service.invitation_url(ctx, member)
    return ok(payload, 201)


@bp.post("/accept")
@login_required
def accept():
    token = json_body().get("token")
    if not token:
        raise ValidationError("Invitation token is required", {"token": ["This field is required."]})
    member = member_service.accept(app_ctx(), token=str(token), user=g.current_user)
    return ok(member_service.serialize(member))


@bp.patch("/<int:member_id>")
@login_required
def update_role(member_id: int):
    _require_owner()
    member = member_service.update_role(app_ctx(), member_id, owner_id=g.owner_id, role=json_body().get("role"))
    return ok(member_service.serialize(member))


@bp.delete("/<int:member_id>")
@login_required
def remove(member_id: int):
    _require_owner()
    member_service.remove(app_ctx(), member_id, owner_id=g.owner_id)
    return ok()


@bp.post("/leave")
@login_required
def leave():
    member_service.leave(app_ctx(), user_id=g.current_user.id)
    return ok()
