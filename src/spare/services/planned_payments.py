"""Scheduled future money movements that become real transactions when paid."""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Any, Optional

from ..errors import NotFound, ValidationError
from ..infra.repositories.recurring import PlannedPaymentQuery
from ..models import PlannedPayment
from ..models.recurring import PLANNED_SOURCES, PLANNED_STATUSES
from ..models.transaction import TRANSACTION_TYPES
from . import debts as debt_service
from . import transactions as transaction_service
from .service_subscriptions import advance_date

logger = logging.getLogger(__name__)

DEFAULT_HORIZON_DAYS = 30
_REF_FIELDS = ("account_id", "to_account_id", "category_id", "subcategory_id", "debt_id", "service_subscription_id", "goal_id")


def _optional_int(raw: Any) -> Optional[int]:
    if raw in (None, ""):
        return None
    return int(raw)


def _clean(ctx, data: dict[str, Any], *, user_id: int, partial: bool) -> dict[str, Any]:
    errors: dict[str, list[str]] = {}
    cleaned: dict[str, Any] = {}

    if "occurs_on" in data or not partial:
        raw = data.get("occurs_on")
        try:
            cleaned["occurs_on"] = date.fromisoformat(str(raw)[:10])
        except (TypeError, ValueError):
            errors.setdefault("occurs_on", []).append("Enter a valid date.")
    if "tx_type" in data or not partial:
        tx_type = str(data.get("tx_type") or "expense").strip().lower()
        if tx_type not in TRANSACTION_TYPES:
            errors.setdefault("tx_type", []).append("Type must be expense, income or transfer.")
        cleaned["tx_type"] = tx_type
    if "amount" in data or not partial:
        try:
            amount = abs(float(data.get("amount")))
        except (TypeError, ValueError):
            amount = 0.0
        if amount == 0:
            errors.setdefault("amount", []).append("Amount must be a non-zero number.")
        cleaned["amount"] = round(amount, 2)
    if "description" in data:
        cleaned["description"] = str(data.get("description") or "").strip()[:255]
    if "source" in data:
        source = str(data.get("source") or "manual").strip().lower()
        if source not in PLANNED_SOURCES:
            errors.setdefault("source", []).append("Unknown source.")
        cleaned["source"] = source
    for key in _REF_FIELDS:
        if key in data or (key == "account_id" and not partial):
            try:
                cleaned[key] = _optional_int(data.get(key))
            except (TypeError, ValueError):
                errors.setdefault(key, []).append("Invalid id.")
    if not partial and cleaned.get("account_id") is None and "account_id" not in errors:
        errors.setdefault("account_id", []).append("Account is required.")

    if cleaned.get("account_id") and ctx.account_repo.get_by_id(cleaned["account_id"], user_id=user_id) is None:
        errors.setdefault("account_id", []).append("Account not found.")
    if cleaned.get("to_account_id") and ctx.account_repo.get_by_id(cleaned["to_account_id"], user_id=user_id) is None:
        errors.setdefault("to_account_id", []).append("Destination account not found.")
    if cleaned.get("debt_id") and ctx.debt_repo.get_by_id(cleaned["debt_id"], user_id=user_id) is None:
        errors.setdefault("debt_id", []).append("Debt not found.")
    if cleaned.get("goal_id") and ctx.goal_repo.get_by_id(cleaned["goal_id"], user_id=user_id) is None:
        errors.setdefault("goal_id", []).append("Goal not found.")
    if errors:
        raise ValidationError("Invalid planned payment", errors)
    return cleaned


def _check_transfer(payment: PlannedPayment) -> None:
    if payment.tx_type == "transfer":
        if not payment.to_account_id:
            raise ValidationError("Transfers need a destination account.")
        if payment.to_account_id == payment.account_id:
            raise ValidationError("Destination account must differ from the source account.")
    else:
        payment.to_account_id = None


def list_planned(ctx, *, user_id: int, query: PlannedPaymentQuery) -> dict[str, Any]:
    if query.status and query.status not in PLANNED_STATUSES:
        raise ValidationError(f"Unknown status: {query.status}")
    items = ctx.planned_payment_repo.search(query, user_id=user_id)
    counts = ctx.planned_payment_repo.counts_by_type(query, user_id=user_id)
    return {
        "items": items,
        "counts": {tx_type: counts.get(tx_type, 0) for tx_type in TRANSACTION_TYPES},
        "total": len(items),
    }


def get_planned(ctx, payment_id: int, *, user_id: int) -> PlannedPayment:
    payment = ctx.planned_payment_repo.get_by_id(payment_id, user_id=user_id)
    if payment is None:
        raise NotFound("Planned payment not found")
    return payment


def create_planned(ctx, *, user_id: int, data: dict[str, Any]) -> PlannedPayment:
    payment = PlannedPayment(user_id=user_id, **_clean(ctx, data, user_id=user_id, partial=False))
    _check_transfer(payment)
    return ctx.planned_payment_repo.create(payment)


def _require_scheduled(payment: PlannedPayment, action: str) -> None:
    if payment.status != "scheduled":
        raise ValidationError(f"Only scheduled payments can be {action}")


def update_planned(ctx, payment_id: int, *, user_id: int, data: dict[str, Any]) -> PlannedPayment:
    payment = get_planned(ctx, payment_id, user_id=user_id)
    _require_scheduled(payment, "edited")
    for key, value in _clean(ctx, data, user_id=user_id, partial=True).items():
        setattr(payment, key, value)
    _check_transfer(payment)
    return ctx.planned_payment_repo.update(payment)


def delete_planned(ctx, payment_id: int, *, user_id: int) -> None:
    if not ctx.planned_payment_repo.delete(payment_id, user_id=user_id):
        raise NotFound("Planned payment not found")


def mark_as_paid(
    ctx, payment_id: int, *, user_id: int, paid_on: Optional[date] = None
) -> PlannedPayment:
    """Create the real transaction (a transfer pair for transfers) and link it."""

    payment = get_planned(ctx, payment_id, user_id=user_id)
    _require_scheduled(payment, "paid")
    created = transaction_service.create_transaction(
        ctx,
        user_id=user_id,
        occurred_on=paid_on or payment.occurs_on,
        amount=payment.amount,
        account_id=payment.account_id,
        tx_type=payment.tx_type,
        to_account_id=payment.to_account_id,
        description=payment.description,
        category_id=payment.category_id,
        subcategory_id=payment.subcategory_id,
        is_recurring=payment.source in ("recurring", "subscription"),
    )
    payment.linked_transaction_id = created[0].id
    payment.status = "paid"
    payment = ctx.planned_payment_repo.update(payment)

    if payment.debt_id:
        debt = ctx.debt_repo.get_by_id(payment.debt_id, user_id=user_id)
        if debt is not None and not debt.is_paid_off:
            debt_service.add_payment(ctx, debt.id, user_id=user_id, amount=payment.amount)
    logger.info(
        "Planned payment paid",
        extra={"user_id": user_id, "planned_payment_id": payment.id, "transaction_id": created[0].id},
    )
    return payment


def set_status(ctx, payment_id: int, *, user_id: int, status: str) -> PlannedPayment:
    """Skip or cancel a scheduled payment."""

    if status not in ("skipped", "cancelled"):
        raise ValidationError("Status must be skipped or cancelled")
    payment = get_planned(ctx, payment_id, user_id=user_id)
    _require_scheduled(payment, "skipped" if status == "skipped" else "cancelled")
    payment.status = status
    return ctx.planned_payment_repo.update(payment)


def generate_from_service_subscriptions(
    ctx,
    *,
    user_id: Optional[int] = None,
    horizon_days: int = DEFAULT_HORIZON_DAYS,
    today: Optional[date] = None,
) -> int:
    """Schedule rows for active recurring bills due within the horizon.

    Idempotent per (subscription, date). Bills without an account are skipped.
    """

    today = today or date.today()
    until = today + timedelta(days=horizon_days)
    created = 0
    for sub in ctx.service_subscription_repo.list_due(until, user_id=user_id):
        if sub.account_id is None:
            logger.debug("Subscription %s has no account; not scheduled", sub.id)
            continue
        occurs_on = sub.next_billing_date
        while occurs_on <= until:
            if occurs_on >= today and not ctx.planned_payment_repo.exists_for_subscription(sub.id, occurs_on):
                ctx.planned_payment_repo.create(
                    PlannedPayment(
                        user_id=sub.user_id,
                        occurs_on=occurs_on,
                        tx_type="expense",
                        amount=sub.amount,
                        account_id=sub.account_id,
                        category_id=sub.category_id,
                        subcategory_id=sub.subcategory_id,
                        description=sub.service_name,
                        source="subscription",
                        service_subscription_id=sub.id,
                    )
                )
                created += 1
            occurs_on = advance_date(occurs_on, sub.billing_frequency)
    if created:
        logger.info("Generated %s planned payments from subscriptions", created)
    return created
