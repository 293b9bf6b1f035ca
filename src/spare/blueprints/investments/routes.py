"""Investment holdings, securities and investment transactions."""

from __future__ import annotations

from flask import g

from ...services import investments as investment_service
from ..common import app_ctx, arg_int, json_body, login_required, ok
from . import bp


@bp.get("/holdings")
@login_required
def holdings():
    rows = investment_service.holdings(app_ctx(), user_id=g.owner_id, account_id=arg_int("account_id"))
    return ok(rows)


@bp.get("/summary")
@login_required
def summary():
    return ok(investment_service.portfolio_summary(app_ctx(), user_id=g.owner_id))


@bp.get("/securities")
@login_required
def securities():
    return ok(investment_service.list_securities(app_ctx()))


@bp.post("/securities")
@login_required
def upsert_security():
    return ok(investment_service.upsert_security(app_ctx(), json_body()))


@bp.get("/transactions")
@login_required
def list_transactions():
    rows = investment_service.list_transactions(app_ctx(), user_id=g.owner_id, account_id=arg_int("account_id"))
    return ok(rows)


@bp.post("/transactions")
@login_required
def create_transaction():
    return ok(investment_service.create_transaction(app_ctx(), user_id=g.owner_id, data=json_body()), 201)


@bp.get("/transactions/<int:tx_id>")
@login_required
def get_transaction(tx_id: int):
    return ok(investment_service.get_transaction(app_ctx(), tx_id, user_id=g.owner_id))


@bp.patch("/transactions/<int:tx_id>")
@login_required
def update_transaction(tx_id: int):
    return ok(investment_service.update_transaction(app_ctx(), tx_id, user_id=g.owner_id, data=json_body()))


@bp.delete("/transactions/<int:tx_id>")
@login_required
def delete_transaction(tx_id: int):
    investment_service.delete_transaction(app_ctx(), tx_id, user_id=g.owner_id)
    return ok()
