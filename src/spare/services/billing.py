"""Plans, subscriptions and feature limits backed by the payments platform."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

from ..constants.plans import DEFAULT_LIMITS, DEFAULT_PLANS
from ..errors import Conflict, Forbidden, NotFound, ValidationError
from ..models import Plan, Subscription, User
from ..timeutils import month_bounds, utcnow

logger = logging.getLogger(__name__)

STATUS_MAP = {
    "active": "active",
    "canceled": "cancelled",
    "unpaid": "unpaid",
    "past_due": "past_due",
    "trialing": "trialing",
    "incomplete": "trialing",
    "incomplete_expired": "cancelled",
}
LIVE_STATUSES = ("active", "trialing")
INTERVALS = {"month": "price_monthly", "year": "price_yearly"}


def map_status(platform_status: Optional[str]) -> str:
    """Translate a payments-platform status into a local one (unknown -> active)."""

    return STATUS_MAP.get(platform_status or "", "active")


def _from_timestamp(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc).replace(tzinfo=None)


# Plans


def list_plans(ctx) -> list[Plan]:
    return ctx.billing_repo.list_plans()


def seed_plans(ctx) -> int:
    """Insert the default plans that do not exist yet."""

    created = 0
    for spec in DEFAULT_PLANS:
        if ctx.billing_repo.get_plan_by_slug(spec["slug"]) is not None:
            continue
        ctx.billing_repo.save_plan(Plan(**spec))
        created += 1
    return created


def _validate_plan_data(data: dict, *, partial: bool) -> dict:
    cleaned: dict[str, Any] = {}
    errors: dict[str, list[str]] = {}
    if "slug" in data or not partial:
        slug = str(data.get("slug") or "").strip().lower()
        if not slug:
            errors.setdefault("slug", []).append("Slug is required.")
        cleaned["slug"] = slug
    if "name" in data or not partial:
        name = str(data.get("name") or "").strip()
        if not name:
            errors.setdefault("name", []).append("Name is required.")
        cleaned["name"] = name
    for key in ("price_monthly", "price_yearly"):
        if key in data or not partial:
            try:
                value = float(data.get(key) or 0)
            except (TypeError, ValueError):
                errors.setdefault(key, []).append("Enter a valid price.")
                continue
            if value < 0:
                errors.setdefault(key, []).append("Price cannot be negative.")
            cleaned[key] = round(value, 2)
    for key in ("max_transactions", "max_accounts"):
        if key in data:
            raw = data.get(key)
            if raw in (None, ""):
                cleaned[key] = None
                continue
            try:
                cleaned[key] = int(raw)
            except (TypeError, ValueError):
                errors.setdefault(key, []).append("Enter a whole number.")
    if "features" in data:
        features = data.get("features") or []
        if not isinstance(features, list):
            errors.setdefault("features", []).append("Features must be a list.")
        else:
            cleaned["features"] = [str(item) for item in features]
    if errors:
        raise ValidationError("Invalid plan", errors)
    return cleaned


def create_plan(ctx, data: dict) -> Plan:
    cleaned = _validate_plan_data(data, partial=False)
    if ctx.billing_repo.get_plan_by_slug(cleaned["slug"]) is not None:
        raise Conflict("A plan with this slug already exists")
    plan = ctx.billing_repo.save_plan(Plan(**cleaned))
    if ctx.billing_gateway is not None:
        plan = sync_plan_prices(ctx, plan.id)
    return plan


def update_plan(ctx, plan_id: int, data: dict) -> Plan:
    plan = ctx.billing_repo.get_plan(plan_id)
    if plan is None:
        raise NotFound("Plan not found")
    cleaned = _validate_plan_data(data, partial=True)
    prices_changed = any(
        key in cleaned and cleaned[key] != getattr(plan, key) for key in ("price_monthly", "price_yearly")
    )
    for key, value in cleaned.items():
        setattr(plan, key, value)
    plan = ctx.billing_repo.save_plan(plan)
    if prices_changed and ctx.billing_gateway is not None:
        plan = sync_plan_prices(ctx, plan.id)
    return plan


def delete_plan(ctx, plan_id: int) -> None:
    if ctx.billing_repo.get_plan(plan_id) is None:
        raise NotFound("Plan not found")
    if ctx.billing_repo.plan_in_use(plan_id):
        raise ValidationError("Plan has live subscriptions and cannot be deleted")
    ctx.billing_repo.delete_plan(plan_id)


def sync_plan_prices(ctx, plan_id: int) -> Plan:
    """Create platform prices matching the plan and deactivate the previous ones.

    Prices are immutable on the platform, so a price change always means a new
    price object.
    """

    gateway = ctx.require_billing()
    plan = ctx.billing_repo.get_plan(plan_id)
    if plan is None:
        raise NotFound("Plan not found")
    currency = ctx.config.BILLING_CURRENCY
    if not plan.stripe_product_id:
        plan.stripe_product_id = gateway.create_product(
            name=plan.name, metadata={"plan_slug": plan.slug}
        )
    for interval, price_attr in INTERVALS.items():
        id_attr = f"stripe_price_id_{'monthly' if interval == 'month' else 'yearly'}"
        amount = getattr(plan, price_attr)
        old_price_id = getattr(plan, id_attr)
        if amount <= 0:
            continue
        new_price_id = gateway.create_price(
            product_id=plan.stripe_product_id, amount=amount, interval=interval, currency=currency
        )
        setattr(plan, id_attr, new_price_id)
        if old_price_id:
            gateway.deactivate_price(old_price_id)
    logger.info("Plan prices synced", extra={"plan": plan.slug})
    return ctx.billing_repo.save_plan(plan)


# Limits


def current_limits(ctx, *, user_id: int) -> dict[str, Optional[int]]:
    """Limits from the user's live subscription, else the free defaults."""

    subscription = ctx.billing_repo.current_subscription(user_id=user_id)
    if subscription is not None and subscription.status in LIVE_STATUSES:
        plan = ctx.billing_repo.get_plan(subscription.plan_id)
        if plan is not None:
            return {"max_transactions": plan.max_transactions, "max_accounts": plan.max_accounts}
    return dict(DEFAULT_LIMITS)


def _is_unlimited(limit: Optional[int]) -> bool:
    return limit is None or limit < 0


def check_transaction_limit(
    ctx, *, user_id: int, adding: int = 1, on: Optional[date] = None
) -> None:
    """Raise :class:`Forbidden` when ``adding`` more rows would exceed the monthly cap."""

    limit = current_limits(ctx, user_id=user_id)["max_transactions"]
    if _is_unlimited(limit):
        return
    first, last = month_bounds(on or date.today())
    used = ctx.transaction_repo.count_between(first, last, user_id=user_id)
    if used + adding > limit:
        raise Forbidden(
            f"You've reached your monthly transaction limit ({limit}).", upgrade_required=True
        )


def check_account_limit(ctx, *, user_id: int) -> None:
    limit = current_limits(ctx, user_id=user_id)["max_accounts"]
    if _is_unlimited(limit):
        return
    if ctx.account_repo.count(user_id=user_id) >= limit:
        raise Forbidden(f"You've reached your account limit ({limit}).", upgrade_required=True)


def usage(ctx, *, user_id: int) -> dict[str, Any]:
    limits = current_limits(ctx, user_id=user_id)
    first, last = month_bounds(date.today())
    return {
        "limits": limits,
        "transactions_this_month": ctx.transaction_repo.count_between(first, last, user_id=user_id),
        "accounts": ctx.account_repo.count(user_id=user_id),
    }


# Subscriptions


def subscription_status(ctx, *, user_id: int) -> dict[str, Any]:
    subscription = ctx.billing_repo.current_subscription(user_id=user_id)
    plan = ctx.billing_repo.get_plan(subscription.plan_id) if subscription else None
    return {
        "subscription": subscription,
        "plan": plan,
        "has_used_trial": ctx.billing_repo.has_used_trial(user_id=user_id),
        "limits": current_limits(ctx, user_id=user_id),
    }


def start_trial(ctx, *, user: User, plan_slug: str) -> Subscription:
    """Start the one-time free trial on ``plan_slug``."""

    plan = ctx.billing_repo.get_plan_by_slug(plan_slug)
    if plan is None:
        raise NotFound("Plan not found")
    existing = ctx.billing_repo.current_subscription(user_id=user.id)
    if existing is not None and existing.status in LIVE_STATUSES:
        raise ValidationError("User already has an active subscription or trial")
    if ctx.billing_repo.has_used_trial(user_id=user.id):
        raise ValidationError("You have already used your trial period. Please subscribe to a plan.")

    now = utcnow()
    subscription = Subscription(
        user_id=user.id,
        plan_id=plan.id,
        status="trialing",
        trial_start=now,
        trial_end=now + timedelta(days=ctx.config.TRIAL_DAYS),
        current_period_end=now + timedelta(days=ctx.config.TRIAL_DAYS),
    )
    subscription = ctx.billing_repo.save_subscription(subscription)
    logger.info("Trial started", extra={"user_id": user.id, "plan": plan.slug})
    return subscription


def _ensure_customer(ctx, user: User) -> str:
    if user.stripe_customer_id:
        return user.stripe_customer_id
    gateway = ctx.require_billing()
    customer_id = gateway.create_customer(email=user.email, name=user.name, user_id=user.id)
    with ctx.session_factory() as session:
        row = session.get(User, user.id)
        if row is not None:
            row.stripe_customer_id = customer_id
            session.add(row)
            session.commit()
    user.stripe_customer_id = customer_id
    return customer_id


def create_checkout(
    ctx,
    *,
    user: User,
    plan_slug: str,
    interval: str = "month",
    promo_code: Optional[str] = None,
) -> dict[str, Any]:
    """Open a hosted checkout session for ``plan_slug``; returns ``{"id", "url"}``."""

    from . import promo_codes

    if interval not in INTERVALS:
        raise ValidationError("Interval must be month or year")
    plan = ctx.billing_repo.get_plan_by_slug(plan_slug)
    if plan is None:
        raise NotFound("Plan not found")
    price_id = plan.stripe_price_id_monthly if interval == "month" else plan.stripe_price_id_yearly
    if not price_id:
        raise ValidationError("Plan is not available for purchase")

    coupon_id = None
    if promo_code:
        promo = promo_codes.validate_for_checkout(ctx, code=promo_code, plan_slug=plan.slug)
        coupon_id = promo.stripe_coupon_id

    gateway = ctx.require_billing()
    customer_id = _ensure_customer(ctx, user)
    base_url = ctx.config.APP_URL.rstrip("/")
    return gateway.create_checkout_session(
        customer_id=customer_id,
        price_id=price_id,
        success_url=f"{base_url}/billing/success?session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=f"{base_url}/billing",
        coupon_id=coupon_id,
        metadata={"user_id": str(user.id), "plan_id": str(plan.id), "interval": interval},
    )


def create_portal(ctx, *, user: User) -> str:
    if not user.stripe_customer_id:
        raise ValidationError("No billing account found for this user")
    gateway = ctx.require_billing()
    return gateway.create_portal_session(
        customer_id=user.stripe_customer_id, return_url=f"{ctx.config.APP_URL.rstrip('/')}/billing"
    )


def _user_for_customer(ctx, customer_id: Optional[str]) -> Optional[User]:
    from sqlmodel import select

    if not customer_id:
        return None
    with ctx.session_factory() as session:
        user = session.exec(select(User).where(User.stripe_customer_id == customer_id)).first()
        if user:
            session.expunge(user)
        return user


def _price_id(platform_sub: dict[str, Any]) -> Optional[str]:
    items = (platform_sub.get("items") or {}).get("data") or []
    if not items:
        return None
    price = items[0].get("price") or {}
    return price.get("id")


def upsert_from_platform(
    ctx, platform_sub: dict[str, Any], *, user_id: Optional[int] = None
) -> Optional[Subscription]:
    """Create or update the local mirror of a platform subscription object."""

    stripe_id = platform_sub.get("id")
    if not stripe_id:
        return None
    metadata = platform_sub.get("metadata") or {}
    if user_id is None and metadata.get("user_id"):
        user_id = int(metadata["user_id"])
    if user_id is None:
        user = _user_for_customer(ctx, platform_sub.get("customer"))
        user_id = user.id if user else None

    local = ctx.billing_repo.get_subscription_by_stripe_id(stripe_id)
    if local is None and user_id is None:
        logger.warning("Subscription %s has no matching user", stripe_id)
        return None

    plan = None
    price_id = _price_id(platform_sub)
    if price_id:
        plan = ctx.billing_repo.get_plan_by_price_id(price_id)
    if plan is None and metadata.get("plan_id"):
        plan = ctx.billing_repo.get_plan(int(metadata["plan_id"]))

    if local is None:
        if plan is None:
            logger.warning("Subscription %s references an unknown price", stripe_id)
            return None
        # Replace the trial row when the user converts to a paid plan.
        current = ctx.billing_repo.current_subscription(user_id=user_id)
        if current is not None and current.stripe_subscription_id is None and current.status == "trialing":
            local = current
        else:
            local = Subscription(user_id=user_id, plan_id=plan.id)
        local.stripe_subscription_id = stripe_id

    if plan is not None:
        local.plan_id = plan.id
    local.status = map_status(platform_sub.get("status"))
    local.cancel_at_period_end = bool(platform_sub.get("cancel_at_period_end"))
    period_end = _from_timestamp(platform_sub.get("current_period_end"))
    if period_end is None:
        items = (platform_sub.get("items") or {}).get("data") or []
        if items:
            period_end = _from_timestamp(items[0].get("current_period_end"))
    if period_end is not None:
        local.current_period_end = period_end
    trial_start = _from_timestamp(platform_sub.get("trial_start"))
    if trial_start is not None:
        local.trial_start = trial_start
        local.trial_end = _from_timestamp(platform_sub.get("trial_end"))
    recurring = None
    items = (platform_sub.get("items") or {}).get("data") or []
    if items:
        recurring = ((items[0].get("price") or {}).get("recurring") or {}).get("interval")
    if recurring in INTERVALS:
        local.billing_interval = recurring
    return ctx.billing_repo.save_subscription(local)


HANDLED_EVENTS = (
    "checkout.session.completed",
    "customer.subscription.created",
    "customer.subscription.updated",
    "customer.subscription.deleted",
    "invoice.payment_succeeded",
    "invoice.payment_failed",
)


def handle_webhook(ctx, *, payload: bytes, signature: str) -> dict[str, Any]:
    """Verify and apply a platform webhook; returns ``{"received", "handled"}``."""

    gateway = ctx.require_billing()
    event = gateway.construct_event(payload, signature)
    event_type = event.get("type", "")
    obj = (event.get("data") or {}).get("object") or {}
    handled = event_type in HANDLED_EVENTS
    logger.info("Billing webhook received", extra={"event": event_type})

    if event_type == "checkout.session.completed":
        subscription_id = obj.get("subscription")
        metadata = obj.get("metadata") or {}
        user_id = int(metadata["user_id"]) if metadata.get("user_id") else None
        if subscription_id:
            upsert_from_platform(
                ctx, gateway.retrieve_subscription(subscription_id), user_id=user_id
            )
    elif event_type.startswith("customer.subscription."):
        if event_type == "customer.subscription.deleted":
            obj = dict(obj, status="canceled")
        upsert_from_platform(ctx, obj)
    elif event_type in ("invoice.payment_succeeded", "invoice.payment_failed"):
        subscription_id = obj.get("subscription")
        if subscription_id:
            local = ctx.billing_repo.get_subscription_by_stripe_id(subscription_id)
            if local is not None:
                local.status = "active" if event_type == "invoice.payment_succeeded" else "past_due"
                ctx.billing_repo.save_subscription(local)
    return {"received": True, "handled": handled}


def sync_subscription(ctx, *, user: User) -> Optional[Subscription]:
    """Pull the user's subscriptions from the platform and mirror the newest."""

    if not user.stripe_customer_id:
        return ctx.billing_repo.current_subscription(user_id=user.id)
    gateway = ctx.require_billing()
    platform_subs = gateway.list_customer_subscriptions(user.stripe_customer_id)
    if not platform_subs:
        return ctx.billing_repo.current_subscription(user_id=user.id)
    newest = max(platform_subs, key=lambda item: item.get("created") or 0)
    return upsert_from_platform(ctx, newest, user_id=user.id)


def cancel_subscription(ctx, subscription_id: int, *, at_period_end: bool = True) -> Subscription:
    subscription = ctx.billing_repo.get_subscription(subscription_id)
    if subscription is None:
        raise NotFound("Subscription not found")
    if subscription.stripe_subscription_id:
        platform_sub = ctx.require_billing().cancel_subscription(
            subscription.stripe_subscription_id, at_period_end=at_period_end
        )
        if platform_sub:
            updated = upsert_from_platform(ctx, platform_sub, user_id=subscription.user_id)
            if updated is not None:
                subscription = updated
    if at_period_end:
        subscription.cancel_at_period_end = True
    else:
        subscription.status = "cancelled"
    return ctx.billing_repo.save_subscription(subscription)


def end_trial(ctx, subscription_id: int) -> Subscription:
    subscription = ctx.billing_repo.get_subscription(subscription_id)
    if subscription is None:
        raise NotFound("Subscription not found")
    if subscription.status != "trialing":
        raise ValidationError("Subscription is not in trial")
    if subscription.stripe_subscription_id:
        platform_sub = ctx.require_billing().end_trial(subscription.stripe_subscription_id)
        updated = upsert_from_platform(ctx, platform_sub, user_id=subscription.user_id)
        if updated is not None:
            return updated
    now = utcnow()
    subscription.trial_end = now
    subscription.status = "cancelled"
    return ctx.billing_repo.save_subscription(subscription)

