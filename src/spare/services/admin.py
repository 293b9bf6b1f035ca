"""Back-office metrics for administrators."""

from __future__ import annotations

from datetime import timedelta
from typing import Any, Iterable

from sqlalchemy import func
from sqlmodel import select

from ..models import Plan, Subscription, User
from ..timeutils import utcnow
from .auth import list_users

NEW_USER_WINDOW_DAYS = 30


def monthly_recurring_revenue(subscriptions: Iterable[Subscription], plans: dict[int, Plan]) -> float:
    """Monthly price of every active subscription; yearly plans count as price / 12."""

    total = 0.0
    for sub in subscriptions:
        if sub.status != "active":
            continue
        plan = plans.get(sub.plan_id)
        if plan is None:
            continue
        if sub.billing_interval == "year":
            total += plan.price_yearly / 12
        else:
            total += plan.price_monthly
    return round(total, 2)


def dashboard(ctx) -> dict[str, Any]:
    since = utcnow() - timedelta(days=NEW_USER_WINDOW_DAYS)
    with ctx.session_factory() as session:
        total_users = session.exec(select(func.count()).select_from(User)).one()
        new_users = session.exec(
            select(func.count()).select_from(User).where(User.created_at >= since)
        ).one()

    plans = {plan.id: plan for plan in ctx.billing_repo.list_plans()}
    by_status = ctx.billing_repo.count_subscriptions_by_status()
    promos = ctx.billing_repo.list_promo_codes()
    now = utcnow()
    active_promos = [p for p in promos if p.is_active and (p.expires_at is None or p.expires_at > now)]
    jobs = ctx.import_job_repo.count_by_status()
    return {
        "users": {"total": total_users, "new_last_30_days": new_users},
        "subscriptions": {
            "active": by_status.get("active", 0),
            "trialing": by_status.get("trialing", 0),
            "cancelled": by_status.get("cancelled", 0),
            "past_due": by_status.get("past_due", 0),
        },
        "mrr": monthly_recurring_revenue(ctx.billing_repo.list_subscriptions(status="active"), plans),
        "promo_codes": {"total": len(promos), "active": len(active_promos)},
        "import_jobs": {"pending": jobs.get("pending", 0), "failed": jobs.get("failed", 0)},
    }


def user_rows(ctx, *, search: str | None = None) -> list[dict[str, Any]]:
    """Users with their current plan and subscription status."""

    plans = {plan.id: plan for plan in ctx.billing_repo.list_plans()}
    rows = []
    for user in list_users(ctx.session_factory, search=search):
        sub = ctx.billing_repo.current_subscription(user_id=user.id)
        plan = plans.get(sub.plan_id) if sub else None
        data = user.model_dump(mode="json", exclude={"password_hash"})
        data["plan"] = plan.slug if plan else None
        data["subscription_status"] = sub.status if sub else None
        data["subscription_id"] = sub.id if sub else None
        rows.append(data)
    return rows
