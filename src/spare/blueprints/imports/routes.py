"""CSV import routes: preview a file with a column mapping, then import rows."""

from __future__ import annotations

from flask import current_app, g, request

from ...errors import ValidationError
from ...services import import_csv
from ...services.import_jobs import serialize_job
from ..common import app_ctx, json_body, login_required, ok, to_int
from . import bp


def _upload() -> tuple[bytes | str, dict]:
    """CSV content and options from a multipart upload or a JSON body."""

    upload = request.files.get("file")
    if upload is not None:
        options = request.form.to_dict()
        for key in ("mapping", "account_mapping"):
            if options.get(key):
                try:
                    options[key] = current_app.json.loads(options[key])
                except ValueError as exc:
                    raise ValidationError(f"Invalid {key}", {key: ["Must be a JSON object."]}) from exc
        return upload.read(), options
    data = json_body()
    content = data.get("content")
    if not content:
        raise ValidationError("A CSV file is required", {"file": ["Upload a CSV file."]})
    return str(content), data


@bp.post("/csv/preview")
@login_required
def preview():
    content, options = _upload()
    mapping = options.get("mapping")
    if mapping is not None and not isinstance(mapping, dict):
        raise ValidationError("Invalid mapping", {"mapping": ["Must be a JSON object."]})
    account_mapping = options.get("account_mapping") or {}
    if not isinstance(account_mapping, dict):
        raise ValidationError("Invalid account_mapping", {"account_mapping": ["Must be a JSON object."]})
    result = import_csv.preview(
        app_ctx(),
        user_id=g.owner_id,
        content=content,
        mapping=import_csv.ColumnMapping.from_mapping(mapping) if mapping else None,
        account_mapping={name: to_int(value, "account_mapping") for name, value in account_mapping.items()},
        default_account_id=to_int(options.get("default_account_id"), "default_account_id"),
    )
    return ok(result)


@bp.post("/csv")
@login_required
def import_rows():
    items = json_body().get("transactions")
    if not isinstance(items, list) or not all(isinstance(item, dict) for item in items):
        raise ValidationError("transactions must be a list of objects")
    outcome = import_csv.import_transactions(app_ctx(), user_id=g.owner_id, items=items)
    if outcome.job is not None:
        current_app.logger.info("CSV import queued", extra={"job_id": outcome.job.id})
        return ok({"job": serialize_job(outcome.job)}, 202)
    return ok({"imported": outcome.imported, "errors": outcome.errors})
