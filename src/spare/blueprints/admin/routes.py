"""Back-office routes.

Admins see metrics, manage users, subscriptions, system categories and tax
tables. Plans and promo codes touch the payments platform and are limited to
super admins.
"""

from __future__ import annotations

from flask import current_app, g, request

from ...errors import ValidationError
from ...services import admin as admin_service
from ...services import auth as auth_service
from ...services import billing as billing_service
from ...services import categories as category_service
from ...services import promo_codes
from ...services import taxes as tax_service
from ..common import admin_required, app_ctx, json_body, ok, super_admin_required
from . import bp

_KIND_PATH = "<any(group, category, subcategory):kind>"


@bp.get("/dashboard")
@admin_required
def dashboard():
    return ok(admin_service.dashboard(app_ctx()))


# Users


@bp.get("/users")
@admin_required
def users():
    return ok(admin_service.user_rows(app_ctx(), search=request.args.get("search") or None))


@bp.patch("/users/<int:user_id>/role")
@admin_required
def set_role(user_id: int):
    role = json_body().get("role") or ""
    if role == "super_admin" and g.current_user.role != "super_admin":
        raise ValidationError("Only super admins can grant the super admin role")
    user = auth_service.set_role(user_id=user_id, role=role, session_factory=app_ctx().session_factory)
    current_app.logger.info("Role changed", extra={"user_id": user_id, "role": user.role, "by": g.current_user.id})
    return ok(user.model_dump(mode="json", exclude={"password_hash"}))


@bp.post("/users/<int:user_id>/reset-password")
@admin_required
def reset_password(user_id: int):
    password = json_body().get("password") or ""
    auth_service.reset_password(user_id=user_id, password=password, session_factory=app_ctx().session_factory)
    return ok()


# Subscriptions


@bp.post("/subscriptions/<int:subscription_id>/cancel")
@admin_required
def cancel_subscription(subscription_id: int):
    at_period_end = json_body().get("at_period_end", True) is not False
    return ok(billing_service.cancel_subscription(app_ctx(), subscription_id, at_period_end=at_period_end))


@bp.post("/subscriptions/<int:subscription_id>/end-trial")
@admin_required
def end_trial(subscription_id: int):
    return ok(billing_service.end_trial(app_ctx(), subscription_id))


# System categories


@bp.get("/categories")
@admin_required
def system_categories():
    return ok(category_service.category_tree(app_ctx(), user_id=None))


@bp.post(f"/categories/{_KIND_PATH}")
@admin_required
def create_category(kind: str):
    obj = category_service.create_entity(app_ctx(), kind, user_id=None, data=json_body(), system=True)
    return ok(obj, 201)


@bp.patch(f"/categories/{_KIND_PATH}/<int:obj_id>")
@admin_required
def update_category(kind: str, obj_id: int):
    obj = category_service.update_entity(app_ctx(), kind, obj_id, user_id=None, data=json_body(), system=True)
    return ok(obj)


@bp.delete(f"/categories/{_KIND_PATH}/<int:obj_id>")
@admin_required
def delete_category(kind: str, obj_id: int):
    category_service.delete_entity(app_ctx(), kind, obj_id, user_id=None, system=True)
    return ok()


# Tax tables


@bp.get("/tax-brackets")
@admin_required
def tax_brackets():
    return ok(tax_service.list_brackets(app_ctx(), request.args.get("country") or None))


@bp.post("/tax-brackets")
@admin_required
def create_tax_bracket():
    return ok(tax_service.create_bracket(app_ctx(), json_body()), 201)


@bp.patch("/tax-brackets/<int:bracket_id>")
@admin_required
def update_tax_bracket(bracket_id: int):
    return ok(tax_service.update_bracket(app_ctx(), bracket_id, json_body()))


@bp.delete("/tax-brackets/<int:bracket_id>")
@admin_required
def delete_tax_bracket(bracket_id: int):
    tax_service.delete_bracket(app_ctx(), bracket_id)
    return ok()


@bp.get("/regional-rates")
@admin_required
def regional_rates():
    return ok(tax_service.list_regional_rates(app_ctx(), request.args.get("country") or None))


@bp.put("/regional-rates")
@admin_required
def upsert_regional_rate():
    return ok(tax_service.upsert_regional_rate(app_ctx(), json_body()))


# Plans


@bp.get("/plans")
@super_admin_required
def plans():
    return ok(billing_service.list_plans(app_ctx()))


@bp.post("/plans")
@super_admin_required
def create_plan():
    return ok(billing_service.create_plan(app_ctx(), json_body()), 201)


@bp.patch("/plans/<int:plan_id>")
@super_admin_required
def update_plan(plan_id: int):
    return ok(billing_service.update_plan(app_ctx(), plan_id, json_body()))


@bp.delete("/plans/<int:plan_id>")
@super_admin_required
def delete_plan(plan_id: int):
    billing_service.delete_plan(app_ctx(), plan_id)
    return ok()


@bp.post("/plans/<int:plan_id>/sync-prices")
@super_admin_required
def sync_plan_prices(plan_id: int):
    return ok(billing_service.sync_plan_prices(app_ctx(), plan_id))


# Promo codes


@bp.get("/promo-codes")
@super_admin_required
def list_promo_codes():
    return ok(promo_codes.list_promo_codes(app_ctx()))


@bp.post("/promo-codes")
@super_admin_required
def create_promo_code():
    return ok(promo_codes.create_promo_code(app_ctx(), json_body()), 201)


@bp.get("/promo-codes/<int:promo_id>")
@super_admin_required
def get_promo_code(promo_id: int):
    return ok(promo_codes.get_promo_code(app_ctx(), promo_id))


@bp.patch("/promo-codes/<int:promo_id>")
@super_admin_required
def update_promo_code(promo_id: int):
    return ok(promo_codes.update_promo_code(app_ctx(), promo_id, json_body()))


@bp.delete("/promo-codes/<int:promo_id>")
@super_admin_required
def delete_promo_code(promo_id: int):
    promo_codes.delete_promo_code(app_ctx(), promo_id)
    return ok()
