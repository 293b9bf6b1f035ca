"""Recurring bills (streaming, phone, gym...) and their billing calendar."""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any, Optional

from ..errors import NotFound, ValidationError
from ..models import ServiceSubscription
from ..models.recurring import BILLING_FREQUENCIES
from ..timeutils import add_months

logger = logging.getLogger(__name__)

MONTHLY_FACTORS = {
    "weekly": 52 / 12,
    "biweekly": 26 / 12,
    "monthly": 1.0,
    "quarterly": 1 / 3,
    "yearly": 1 / 12,
}


def monthly_equivalent(amount: float, frequency: str) -> float:
    return round(amount * MONTHLY_FACTORS[frequency], 2)


def advance_date(value: date, frequency: str) -> date:
    """Next billing date after ``value`` for ``frequency``."""

    if frequency == "weekly":
        return value + timedelta(days=7)
    if frequency == "biweekly":
        return value + timedelta(days=14)
    if frequency == "monthly":
        return add_months(value, 1)
    if frequency == "quarterly":
        return add_months(value, 3)
    if frequency == "yearly":
        return add_months(value, 12)
    raise ValueError(f"Unknown billing frequency: {frequency}")


def roll_forward(value: date, frequency: str, *, today: date) -> date:
    while value < today:
        value = advance_date(value, frequency)
    return value


def _clean(ctx, data: dict[str, Any], *, user_id: int, partial: bool) -> dict[str, Any]:
    errors: dict[str, list[str]] = {}
    cleaned: dict[str, Any] = {}
    if "service_name" in data or not partial:
        name = str(data.get("service_name") or "").strip()
        if not name:
            errors.setdefault("service_name", []).append("Service name is required.")
        cleaned["service_name"] = name[:128]
    if "amount" in data or not partial:
        try:
            amount = float(data.get("amount"))
        except (TypeError, ValueError):
            errors.setdefault("amount", []).append("Enter a valid amount.")
        else:
            if amount <= 0:
                errors.setdefault("amount", []).append("Amount must be greater than 0.")
            cleaned["amount"] = round(amount, 2)
    if "billing_frequency" in data or not partial:
        frequency = str(data.get("billing_frequency") or "monthly").strip().lower()
        if frequency not in BILLING_FREQUENCIES:
            errors.setdefault("billing_frequency", []).append("Unknown billing frequency.")
        cleaned["billing_frequency"] = frequency
    if "next_billing_date" in data or not partial:
        raw = data.get("next_billing_date")
        try:
            cleaned["next_billing_date"] = date.fromisoformat(str(raw)[:10]) if raw else date.today()
        except ValueError:
            errors.setdefault("next_billing_date", []).append("Enter a valid date.")
    for key, lookup in (
        ("account_id", lambda pk: ctx.account_repo.get_by_id(pk, user_id=user_id)),
        ("category_id", lambda pk: ctx.category_repo.get_category(pk, user_id=user_id)),
        ("subcategory_id", lambda pk: ctx.category_repo.get_subcategory(pk, user_id=user_id)),
    ):
        if key not in data:
            continue
        raw = data.get(key)
        if raw in (None, ""):
            cleaned[key] = None
            continue
        try:
            pk = int(raw)
        except (TypeError, ValueError):
            errors.setdefault(key, []).append("Invalid id.")
            continue
        if lookup(pk) is None:
            errors.setdefault(key, []).append("Not found.")
        cleaned[key] = pk
    if errors:
        raise ValidationError("Invalid subscription", errors)
    return cleaned


def serialize(sub: ServiceSubscription) -> dict[str, Any]:
    data = sub.model_dump(mode="json")
    data["monthly_amount"] = monthly_equivalent(sub.amount, sub.billing_frequency)
    return data


def list_subscriptions(ctx, *, user_id: int) -> dict[str, Any]:
    rows = ctx.service_subscription_repo.list_all(user_id=user_id)
    return {
        "items": [serialize(sub) for sub in rows],
        "monthly_total": round(
            sum(monthly_equivalent(s.amount, s.billing_frequency) for s in rows if s.is_active), 2
        ),
    }


def get_subscription(ctx, sub_id: int, *, user_id: int) -> ServiceSubscription:
    sub = ctx.service_subscription_repo.get_by_id(sub_id, user_id=user_id)
    if sub is None:
        raise NotFound("Subscription not found")
    return sub


def create_subscription(ctx, *, user_id: int, data: dict[str, Any]) -> ServiceSubscription:
    cleaned = _clean(ctx, data, user_id=user_id, partial=False)
    sub = ctx.service_subscription_repo.create(ServiceSubscription(user_id=user_id, **cleaned))
    logger.info("Service subscription created", extra={"user_id": user_id, "subscription_id": sub.id})
    return sub


def update_subscription(ctx, sub_id: int, *, user_id: int, data: dict[str, Any]) -> ServiceSubscription:
    sub = get_subscription(ctx, sub_id, user_id=user_id)
    for key, value in _clean(ctx, data, user_id=user_id, partial=True).items():
        setattr(sub, key, value)
    return ctx.service_subscription_repo.update(sub)


def delete_subscription(ctx, sub_id: int, *, user_id: int) -> None:
    if not ctx.service_subscription_repo.delete(sub_id, user_id=user_id):
        raise NotFound("Subscription not found")


def set_active(
    ctx, sub_id: int, *, user_id: int, active: bool, today: Optional[date] = None
) -> ServiceSubscription:
    """Pause or resume; resuming moves a past billing date forward to today or later."""

    sub = get_subscription(ctx, sub_id, user_id=user_id)
    sub.is_active = active
    if active:
        sub.next_billing_date = roll_forward(
            sub.next_billing_date, sub.billing_frequency, today=today or date.today()
        )
    return ctx.service_subscription_repo.update(sub)


def advance_billing_dates(ctx, *, today: Optional[date] = None) -> int:
    """Move every active subscription whose billing date has passed to its next date."""

    today = today or date.today()
    updated = 0
    for sub in ctx.service_subscription_repo.list_due(today - timedelta(days=1)):
        sub.next_billing_date = roll_forward(sub.next_billing_date, sub.billing_frequency, today=today)
        ctx.service_subscription_repo.update(sub)
        updated += 1
    if updated:
        logger.info("Advanced %s subscription billing dates", updated)
    return updated
