"""Transaction routes."""

from __future__ import annotations

from flask import Response, current_app, g, request

from ...errors import ValidationError
from ...infra.repositories.transaction import TransactionQuery
from ...models.transaction import TRANSACTION_TYPES
from ...services import transactions as transaction_service
from ...services.export_csv import export_transactions_csv
from ..common import app_ctx, arg_date, arg_int, json_body, login_required, ok, period_value
from . import bp
from .forms import TransactionForm


def _query_from_args() -> TransactionQuery:
    tx_type = (request.args.get("type") or "").strip().lower() or None
    if tx_type and tx_type not in TRANSACTION_TYPES:
        raise ValidationError("Invalid type", {"type": ["Type must be expense, income or transfer."]})
    return TransactionQuery(
        start_date=arg_date("start_date"),
        end_date=arg_date("end_date"),
        account_id=arg_int("account_id"),
        category_id=arg_int("category_id"),
        tx_type=tx_type,
        text=(request.args.get("search") or "").strip() or None,
        uncategorized=request.args.get("uncategorized", "").lower() in {"1", "true", "yes"},
    )


def _validated_form() -> TransactionForm:
    form = TransactionForm.from_mapping(json_body())
    if not form.validate():
        raise ValidationError("Invalid transaction", form.errors)
    return form


@bp.get("")
@login_required
def list_transactions():
    result = transaction_service.search_transactions(
        app_ctx(),
        _query_from_args(),
        user_id=g.owner_id,
        page=arg_int("page", 1),
        per_page=arg_int("per_page", 50),
    )
    return ok(result)


@bp.post("")
@login_required
def create_transaction():
    form = _validated_form()
    created = transaction_service.create_transaction(
        app_ctx(),
        user_id=g.owner_id,
        occurred_on=form.occurred_on,
        amount=form.amount,
        account_id=form.account_id,
        tx_type=form.tx_type,
        to_account_id=form.to_account_id,
        description=form.description,
        category_id=form.category_id,
        subcategory_id=form.subcategory_id,
        is_recurring=form.is_recurring,
    )
    current_app.logger.info("Transaction created", extra={"transaction_ids": [tx.id for tx in created]})
    return ok({"transactions": created}, 201)


@bp.get("/<int:tx_id>")
@login_required
def get_transaction(tx_id: int):
    return ok(transaction_service.get_transaction(app_ctx(), tx_id, user_id=g.owner_id))


@bp.put("/<int:tx_id>")
@bp.patch("/<int:tx_id>")
@login_required
def update_transaction(tx_id: int):
    form = _validated_form()
    updated = transaction_service.update_transaction(
        app_ctx(),
        tx_id,
        user_id=g.owner_id,
        occurred_on=form.occurred_on,
        amount=form.amount,
        account_id=form.account_id,
        tx_type=form.tx_type,
        to_account_id=form.to_account_id,
        description=form.description,
        category_id=form.category_id,
        subcategory_id=form.subcategory_id,
        is_recurring=form.is_recurring,
    )
    return ok({"transactions": updated})


@bp.delete("/<int:tx_id>")
@login_required
def delete_transaction(tx_id: int):
    deleted = transaction_service.delete_transaction(app_ctx(), tx_id, user_id=g.owner_id)
    return ok({"deleted": deleted})


@bp.post("/<int:tx_id>/accept-suggestion")
@login_required
def accept_suggestion(tx_id: int):
    return ok(transaction_service.accept_suggestion(app_ctx(), tx_id, user_id=g.owner_id))


@bp.get("/summary")
@login_required
def summary():
    period = period_value(request.args.get("period"))
    return ok(transaction_service.monthly_summary(app_ctx(), user_id=g.owner_id, period=period))


@bp.get("/export")
@login_required
def export():
    ctx = app_ctx()
    query = _query_from_args()
    rows, _ = ctx.transaction_repo.search(query, user_id=g.owner_id, limit=None, offset=0)
    csv_text = export_transactions_csv(
        transactions=rows,
        account_names={a.id: a.name for a in ctx.account_repo.list_all(user_id=g.owner_id)},
        category_names={c.id: c.name for c in ctx.category_repo.list_categories(user_id=g.owner_id)},
        subcategory_names={
            s.id: s.name for s in ctx.category_repo.list_subcategories(user_id=g.owner_id)
        },
    )
    return Response(
        csv_text,
        mimetype="text/csv",
        headers={"Content-Disposition": "attachment; filename=transactions.csv"},
    )
