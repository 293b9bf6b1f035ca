"""Import job status and the cron trigger that drains the queue."""

from __future__ import annotations

import hmac

from flask import current_app, g

from ...services import import_jobs as job_service
from ..common import app_ctx, arg_int, bearer_token, load_current_user, login_required, ok
from . import bp


def _is_cron_request() -> bool:
    secret = app_ctx().config.CRON_SECRET
    token = bearer_token()
    return bool(secret and token and hmac.compare_digest(token, secret))


@bp.post("/process")
def process():
    """Cron callers with the shared secret process every user's jobs."""

    ctx = app_ctx()
    if _is_cron_request():
        result = job_service.process_pending_jobs(ctx)
    else:
        load_current_user()
        result = job_service.process_pending_jobs(ctx, user_id=g.owner_id)
    current_app.logger.info("Import jobs processed", extra={"processed": result["processed"]})
    return ok(result)


@bp.get("")
@login_required
def list_jobs():
    return ok(job_service.list_jobs(app_ctx(), user_id=g.owner_id, limit=arg_int("limit", 20)))


@bp.get("/<int:job_id>")
@login_required
def get_job(job_id: int):
    return ok(job_service.get_job(app_ctx(), job_id, user_id=g.owner_id))
