"""Plans, trials, checkout and the payments webhook."""

from __future__ import annotations

from flask import current_app, g, request

from ...errors import ValidationError
from ...services import billing as billing_service
from ...services import promo_codes
from ..common import app_ctx, json_body, login_required, ok
from . import bp


@bp.get("/plans")
def plans():
    return ok(billing_service.list_plans(app_ctx()))


@bp.get("/status")
@login_required
def status():
    return ok(billing_service.subscription_status(app_ctx(), user_id=g.owner_id))


@bp.get("/usage")
@login_required
def usage():
    return ok(billing_service.usage(app_ctx(), user_id=g.owner_id))


@bp.post("/trial")
@login_required
def start_trial():
    plan_slug = json_body().get("plan") or ""
    subscription = billing_service.start_trial(app_ctx(), user=g.current_user, plan_slug=plan_slug)
    return ok(subscription, 201)


@bp.post("/checkout")
@login_required
def checkout():
    data = json_body()
    if not data.get("plan"):
        raise ValidationError("Plan is required", {"plan": ["This field is required."]})
    session = billing_service.create_checkout(
        app_ctx(),
        user=g.current_user,
        plan_slug=data["plan"],
        interval=data.get("interval") or "month",
        promo_code=data.get("promo_code") or None,
    )
    return ok(session)


@bp.post("/portal")
@login_required
def portal():
    return ok({"url": billing_service.create_portal(app_ctx(), user=g.current_user)})


@bp.post("/sync")
@login_required
def sync():
    subscription = billing_service.sync_subscription(app_ctx(), user=g.current_user)
    return ok({"subscription": subscription})


@bp.post("/promo-codes/validate")
@login_required
def validate_promo_code():
    data = json_body()
    promo = promo_codes.validate_for_checkout(app_ctx(), code=data.get("code") or "", plan_slug=data.get("plan"))
    return ok({"valid": True, "promo_code": promo_codes.describe(promo)})


@bp.post("/webhook")
def webhook():
    """Signed payments-platform events; the raw body is needed for verification."""

    result = billing_service.handle_webhook(
        app_ctx(),
        payload=request.get_data(),
        signature=request.headers.get("Stripe-Signature", ""),
    )
    current_app.logger.info("Billing webhook processed", extra={"handled": result.get("handled")})
    return ok(result)
