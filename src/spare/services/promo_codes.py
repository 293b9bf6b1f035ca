"""Promo codes backed by coupons at the payments platform."""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..errors import AppError, NotFound, ValidationError
from ..models import PromoCode
from ..timeutils import utcnow

logger = logging.getLogger(__name__)

CODE_PATTERN = re.compile(r"^[A-Z0-9_-]{3,32}$")
DISCOUNT_TYPES = ("percent", "fixed")
DURATIONS = ("once", "forever", "repeating")
TRUE_VALUES = {"1", "true", "yes", "on"}
FALSE_VALUES = {"0", "false", "no", "off", ""}


def _parse_datetime(raw: Any) -> Optional[datetime]:
    if raw in (None, ""):
        return None
    if isinstance(raw, datetime):
        parsed = raw
    else:
        try:
            parsed = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _parse_bool(raw: Any) -> Optional[bool]:
    if isinstance(raw, bool):
        return raw
    if raw is None:
        return False
    if isinstance(raw, (int, float)):
        return raw != 0
    value = str(raw).strip().lower()
    if value in TRUE_VALUES:
        return True
    if value in FALSE_VALUES:
        return False
    return None


def validate_promo_data(
    data: dict[str, Any], *, partial: bool = False, now: Optional[datetime] = None
) -> dict[str, Any]:
    """Return cleaned promo fields or raise :class:`ValidationError` with field errors."""

    now = now or utcnow()
    errors: dict[str, list[str]] = {}
    cleaned: dict[str, Any] = {}

    def add(field: str, message: str) -> None:
        errors.setdefault(field, []).append(message)

    if "code" in data or not partial:
        code = str(data.get("code") or "").strip().upper()
        if not code:
            add("code", "Code is required.")
        elif not CODE_PATTERN.match(code):
            add("code", "Use 3-32 letters, digits, dashes or underscores.")
        cleaned["code"] = code

    if "discount_type" in data or not partial:
        discount_type = str(data.get("discount_type") or "").strip().lower()
        if discount_type not in DISCOUNT_TYPES:
            add("discount_type", "Discount type must be percent or fixed.")
        cleaned["discount_type"] = discount_type

    if "discount_value" in data or not partial:
        try:
            value = float(data.get("discount_value"))
        except (TypeError, ValueError):
            add("discount_value", "Discount value must be a number.")
        else:
            discount_type = cleaned.get("discount_type") or data.get("discount_type")
            if discount_type == "percent" and not 0 < value <= 100:
                add("discount_value", "Percent discount must be between 0 and 100.")
            elif discount_type != "percent" and value <= 0:
                add("discount_value", "Fixed discount must be greater than 0.")
            cleaned["discount_value"] = value

    if "duration" in data or not partial:
        duration = str(data.get("duration") or "once").strip().lower()
        if duration not in DURATIONS:
            add("duration", "Duration must be once, forever or repeating.")
        cleaned["duration"] = duration
        months = data.get("duration_in_months")
        if duration == "repeating":
            try:
                months = int(months)
            except (TypeError, ValueError):
                months = 0
            if months < 1:
                add("duration_in_months", "Repeating coupons need at least 1 month.")
            cleaned["duration_in_months"] = months
        else:
            cleaned["duration_in_months"] = None

    if "max_redemptions" in data:
        raw = data.get("max_redemptions")
        if raw in (None, ""):
            cleaned["max_redemptions"] = None
        else:
            try:
                redemptions = int(raw)
            except (TypeError, ValueError):
                redemptions = 0
            if redemptions < 1:
                add("max_redemptions", "Max redemptions must be at least 1.")
            cleaned["max_redemptions"] = redemptions

    if "expires_at" in data:
        raw = data.get("expires_at")
        expires_at = _parse_datetime(raw)
        if raw not in (None, "") and expires_at is None:
            add("expires_at", "Enter a valid date.")
        elif expires_at is not None and expires_at <= now:
            add("expires_at", "Expiry must be in the future.")
        cleaned["expires_at"] = expires_at

    if "plan_slugs" in data:
        slugs = data.get("plan_slugs") or []
        if isinstance(slugs, str):
            slugs = [part for part in slugs.split(",")]
        cleaned["plan_slugs"] = [str(slug).strip() for slug in slugs if str(slug).strip()]

    if "is_active" in data:
        is_active = _parse_bool(data.get("is_active"))
        if is_active is None:
            add("is_active", "Enter true or false.")
        cleaned["is_active"] = is_active

    if errors:
        raise ValidationError("Invalid promo code", errors)
    return cleaned


def list_promo_codes(ctx) -> list[PromoCode]:
    return ctx.billing_repo.list_promo_codes()


def get_promo_code(ctx, promo_id: int) -> PromoCode:
    promo = ctx.billing_repo.get_promo_code(promo_id)
    if promo is None:
        raise NotFound("Promo code not found")
    return promo


def create_promo_code(ctx, data: dict[str, Any]) -> PromoCode:
    """Create the coupon first, then the row; the coupon is removed if the insert fails."""

    cleaned = validate_promo_data(data)
    if ctx.billing_repo.get_promo_code_by_code(cleaned["code"]) is not None:
        raise ValidationError("Promo code already exists", {"code": ["Code already exists."]})

    gateway = ctx.require_billing()
    expires_at = cleaned.get("expires_at")
    coupon_id = gateway.create_coupon(
        code=cleaned["code"],
        discount_type=cleaned["discount_type"],
        discount_value=cleaned["discount_value"],
        duration=cleaned["duration"],
        duration_in_months=cleaned.get("duration_in_months"),
        max_redemptions=cleaned.get("max_redemptions"),
        redeem_by=int(expires_at.timestamp()) if expires_at else None,
        currency=ctx.config.BILLING_CURRENCY,
    )
    try:
        promo = ctx.billing_repo.save_promo_code(PromoCode(stripe_coupon_id=coupon_id, **cleaned))
    except SQLAlchemyError as exc:
        logger.error("Promo code insert failed; removing coupon %s", coupon_id)
        gateway.delete_coupon(coupon_id)
        raise AppError("Failed to save promo code", 500) from exc
    logger.info("Promo code created", extra={"code": promo.code})
    return promo


def update_promo_code(ctx, promo_id: int, data: dict[str, Any]) -> PromoCode:
    """Update a promo code; deactivating or expiring it removes the coupon."""

    promo = get_promo_code(ctx, promo_id)
    editable = {key: data[key] for key in ("is_active", "expires_at", "plan_slugs", "max_redemptions") if key in data}
    cleaned = validate_promo_data(editable, partial=True)
    for key, value in cleaned.items():
        setattr(promo, key, value)

    retire = not promo.is_active or (promo.expires_at is not None and promo.expires_at <= utcnow())
    if retire and promo.stripe_coupon_id:
        ctx.require_billing().delete_coupon(promo.stripe_coupon_id)
        promo.stripe_coupon_id = None
    return ctx.billing_repo.save_promo_code(promo)


def delete_promo_code(ctx, promo_id: int) -> None:
    promo = get_promo_code(ctx, promo_id)
    if promo.stripe_coupon_id:
        ctx.require_billing().delete_coupon(promo.stripe_coupon_id)
    ctx.billing_repo.delete_promo_code(promo.id)
    logger.info("Promo code deleted", extra={"code": promo.code})


def validate_for_checkout(
    ctx, *, code: str, plan_slug: Optional[str] = None, now: Optional[datetime] = None
) -> PromoCode:
    """Return the usable promo code or raise a 400 explaining why it cannot be used."""

    normalized = (code or "").strip().upper()
    if not normalized:
        raise ValidationError("Promo code is required")
    promo = ctx.billing_repo.get_promo_code_by_code(normalized)
    if promo is None or not promo.is_active or not promo.stripe_coupon_id:
        raise ValidationError("Invalid promo code")
    if promo.expires_at is not None and promo.expires_at <= (now or utcnow()):
        raise ValidationError("This promo code has expired")
    if plan_slug and promo.plan_slugs and plan_slug not in promo.plan_slugs:
        raise ValidationError("This promo code is not valid for the selected plan")
    return promo


def describe(promo: PromoCode) -> dict[str, Any]:
    """Public view used by the checkout form."""

    if promo.discount_type == "percent":
        label = f"{promo.discount_value:g}% off"
    else:
        label = f"${promo.discount_value:.2f} off"
    if promo.duration == "repeating":
        label += f" for {promo.duration_in_months} months"
    elif promo.duration == "forever":
        label += " forever"
    return {
        "code": promo.code,
        "discount_type": promo.discount_type,
        "discount_value": promo.discount_value,
        "duration": promo.duration,
        "duration_in_months": promo.duration_in_months,
        "label": label,
    }
