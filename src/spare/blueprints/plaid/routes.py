"""Bank connection routes."""

from __future__ import annotations

from flask import current_app, g

from ...errors import ValidationError
from ...services import bank_sync
from ...services.import_jobs import serialize_job
from ..common import app_ctx, json_body, login_required, ok
from . import bp


@bp.post("/link-token")
@login_required
def link_token():
    return ok({"link_token": bank_sync.create_link_token(app_ctx(), user_id=g.owner_id)})


@bp.post("/exchange")
@login_required
def exchange():
    data = json_body()
    metadata = data.get("metadata") or {}
    if not isinstance(metadata, dict):
        raise ValidationError("metadata must be an object")
    result = bank_sync.exchange_public_token(
        app_ctx(), user_id=g.owner_id, public_token=data.get("public_token") or "", metadata=metadata
    )
    item = result["item"]
    payload = {
        "item": item.model_dump(mode="json", exclude={"access_token", "transactions_cursor"}),
        "accounts": result["accounts"],
        "jobs": [serialize_job(job) for job in result["jobs"]],
    }
    return ok(payload, 201)


@bp.get("/items")
@login_required
def items():
    return ok(bank_sync.list_items(app_ctx(), user_id=g.owner_id))


@bp.post("/items/<int:item_id>/sync")
@login_required
def sync(item_id: int):
    queued = bank_sync.sync_item(app_ctx(), item_id, user_id=g.owner_id)
    return ok({"jobs": [serialize_job(job) for job in queued]}, 202)


@bp.delete("/items/<int:item_id>")
@login_required
def disconnect(item_id: int):
    return ok(bank_sync.disconnect_item(app_ctx(), item_id, user_id=g.owner_id))


@bp.delete("/items")
@login_required
def disconnect_all():
    return ok(bank_sync.disconnect_all(app_ctx(), user_id=g.owner_id))


@bp.post("/webhook")
def webhook():
    result = bank_sync.handle_webhook(app_ctx(), json_body())
    current_app.logger.info("Bank webhook received", extra={"handled": result["handled"]})
    return ok(result)
