"""Public income tax estimate."""

from __future__ import annotations

from flask import request

from ...errors import ValidationError
from ...services import taxes as tax_service
from ..common import app_ctx, arg_float, arg_int, ok
from . import bp


@bp.get("/estimate")
def estimate():
    income = arg_float("income")
    if income is None:
        raise ValidationError("income is required", {"income": ["This field is required."]})
    result = tax_service.estimate(
        app_ctx(),
        annual_income=income,
        country=request.args.get("country") or "US",
        region=request.args.get("region") or None,
        year=arg_int("year"),
    )
    return ok(result)
