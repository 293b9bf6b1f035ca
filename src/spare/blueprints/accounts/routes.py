"""Account routes."""

from __future__ import annotations

from flask import current_app, g, request

from ...services import accounts as account_service
from ..common import app_ctx, json_body, login_required, ok, to_int
from . import bp


@bp.get("")
@login_required
def list_accounts():
    return ok(account_service.list_accounts_with_balances(app_ctx(), user_id=g.owner_id))


@bp.post("")
@login_required
def create_account():
    ctx = app_ctx()
    account = account_service.create_account(ctx, user_id=g.owner_id, data=json_body())
    data = account.model_dump(mode="json")
    data["balance"] = account_service.account_balance(ctx, account)
    return ok(data, 201)


@bp.get("/<int:account_id>")
@login_required
def get_account(account_id: int):
    ctx = app_ctx()
    account = account_service.get_account(ctx, account_id, user_id=g.owner_id)
    data = account.model_dump(mode="json")
    data["balance"] = account_service.account_balance(ctx, account)
    return ok(data)


@bp.patch("/<int:account_id>")
@login_required
def update_account(account_id: int):
    account = account_service.update_account(
        app_ctx(), account_id, user_id=g.owner_id, data=json_body()
    )
    return ok(account)


@bp.post("/<int:account_id>/default")
@login_required
def set_default(account_id: int):
    return ok(account_service.set_default_account(app_ctx(), account_id, user_id=g.owner_id))


@bp.delete("/<int:account_id>")
@login_required
def delete_account(account_id: int):
    data = json_body()
    destination = data.get("transfer_to_account_id") or request.args.get("transfer_to_account_id")
    result = account_service.delete_account(
        app_ctx(),
        account_id,
        user_id=g.owner_id,
        transfer_to_account_id=to_int(destination, "transfer_to_account_id"),
    )
    current_app.logger.info("Account removed", extra={"account_id": account_id})
    return ok(result)
