"""Repositories for plans, user subscriptions and promo codes."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import func
from sqlmodel import select

from ...models.billing import Plan, PromoCode, Subscription
from ...timeutils import utcnow
from ..database import SessionFactory


class SQLModelBillingRepository:
    """Billing rows are global (plans, promo codes) or keyed by user (subscriptions)."""

    def __init__(self, session_factory: SessionFactory):
        """Initialize with a session factory."""
        self.session_factory = session_factory

    def _save(self, obj):
        with self.session_factory() as session:
            merged = session.merge(obj)
            session.commit()
            session.refresh(merged)
            session.expunge(merged)
            return merged

    def _delete(self, model, obj_id: int) -> bool:
        with self.session_factory() as session:
            obj = session.get(model, obj_id)
            if obj is None:
                return False
            session.delete(obj)
            session.commit()
            return True

    # Plans

    def list_plans(self) -> list[Plan]:
        with self.session_factory() as session:
            rows = list(session.exec(select(Plan).order_by(Plan.price_monthly)).all())
            session.expunge_all()
            return rows

    def get_plan(self, plan_id: int) -> Optional[Plan]:
        with self.session_factory() as session:
            obj = session.get(Plan, plan_id)
            if obj:
                session.expunge(obj)
            return obj

    def get_plan_by_slug(self, slug: str) -> Optional[Plan]:
        with self.session_factory() as session:
            obj = session.exec(select(Plan).where(Plan.slug == slug)).first()
            if obj:
                session.expunge(obj)
            return obj

    def get_plan_by_price_id(self, price_id: str) -> Optional[Plan]:
        with self.session_factory() as session:
            obj = session.exec(
                select(Plan).where(
                    (Plan.stripe_price_id_monthly == price_id)
                    | (Plan.stripe_price_id_yearly == price_id)
                )
            ).first()
            if obj:
                session.expunge(obj)
            return obj

    def save_plan(self, plan: Plan) -> Plan:
        return self._save(plan)

    def delete_plan(self, plan_id: int) -> bool:
        return self._delete(Plan, plan_id)

    def plan_in_use(self, plan_id: int) -> bool:
        with self.session_factory() as session:
            return (
                session.exec(
                    select(Subscription.id)
                    .where(Subscription.plan_id == plan_id)
                    .where(Subscription.status.in_(("active", "trialing", "past_due")))  # type: ignore[attr-defined]
                ).first()
                is not None
            )

    # Subscriptions

    def current_subscription(self, *, user_id: int) -> Optional[Subscription]:
        """Most recent subscription row for the user, whatever its status."""
        with self.session_factory() as session:
            obj = session.exec(
                select(Subscription)
                .where(Subscription.user_id == user_id)
                .order_by(Subscription.created_at.desc(), Subscription.id.desc())  # type: ignore
            ).first()
            if obj:
                session.expunge(obj)
            return obj

    def get_subscription(self, subscription_id: int) -> Optional[Subscription]:
        with self.session_factory() as session:
            obj = session.get(Subscription, subscription_id)
            if obj:
                session.expunge(obj)
            return obj

    def get_subscription_by_stripe_id(self, stripe_subscription_id: str) -> Optional[Subscription]:
        with self.session_factory() as session:
            obj = session.exec(
                select(Subscription).where(
                    Subscription.stripe_subscription_id == stripe_subscription_id
                )
            ).first()
            if obj:
                session.expunge(obj)
            return obj

    def has_used_trial(self, *, user_id: int) -> bool:
        with self.session_factory() as session:
            return (
                session.exec(
                    select(Subscription.id)
                    .where(Subscription.user_id == user_id)
                    .where(Subscription.trial_start.is_not(None))  # type: ignore[union-attr]
                ).first()
                is not None
            )

    def list_subscriptions(self, *, status: Optional[str] = None) -> list[Subscription]:
        with self.session_factory() as session:
            statement = select(Subscription)
            if status:
                statement = statement.where(Subscription.status == status)
            rows = list(session.exec(statement.order_by(Subscription.created_at.desc())).all())  # type: ignore
            session.expunge_all()
            return rows

    def count_subscriptions_by_status(self) -> dict[str, int]:
        with self.session_factory() as session:
            rows = session.exec(
                select(Subscription.status, func.count()).group_by(Subscription.status)
            ).all()
            return {status: count for status, count in rows}

    def save_subscription(self, subscription: Subscription) -> Subscription:
        subscription.updated_at = utcnow()
        return self._save(subscription)

    # Promo codes

    def list_promo_codes(self) -> list[PromoCode]:
        with self.session_factory() as session:
            rows = list(session.exec(select(PromoCode).order_by(PromoCode.created_at.desc())).all())  # type: ignore
            session.expunge_all()
            return rows

    def get_promo_code(self, promo_id: int) -> Optional[PromoCode]:
        with self.session_factory() as session:
            obj = session.get(PromoCode, promo_id)
            if obj:
                session.expunge(obj)
            return obj

    def get_promo_code_by_code(self, code: str) -> Optional[PromoCode]:
        with self.session_factory() as session:
            obj = session.exec(select(PromoCode).where(PromoCode.code == code.upper())).first()
            if obj:
                session.expunge(obj)
            return obj

    def save_promo_code(self, promo: PromoCode) -> PromoCode:
        return self._save(promo)

    def delete_promo_code(self, promo_id: int) -> bool:
        return self._delete(PromoCode, promo_id)
