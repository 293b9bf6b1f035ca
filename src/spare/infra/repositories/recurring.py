"""Repositories for recurring bills and planned payments."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional

from sqlalchemy import func
from sqlmodel import select

from ...models.recurring import PlannedPayment, ServiceSubscription
from .base import OwnedRepository


class SQLModelServiceSubscriptionRepository(OwnedRepository[ServiceSubscription]):
    model = ServiceSubscription
    default_order = ("next_billing_date", "service_name")

    def list_due(self, until: date, *, user_id: Optional[int] = None) -> list[ServiceSubscription]:
        """Active subscriptions billing on or before ``until`` (all users when None)."""
        with self.session_factory() as session:
            statement = (
                select(ServiceSubscription)
                .where(ServiceSubscription.is_active == True)  # noqa: E712
                .where(ServiceSubscription.next_billing_date <= until)
            )
            if user_id is not None:
                statement = statement.where(ServiceSubscription.user_id == user_id)
            rows = list(session.exec(statement).all())
            session.expunge_all()
            return rows


@dataclass
class PlannedPaymentQuery:
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: Optional[str] = None
    source: Optional[str] = None
    tx_type: Optional[str] = None


class SQLModelPlannedPaymentRepository(OwnedRepository[PlannedPayment]):
    model = PlannedPayment
    default_order = ("occurs_on", "id")

    def _filtered(self, statement, query: PlannedPaymentQuery, *, user_id: int):
        statement = statement.where(PlannedPayment.user_id == user_id)
        if query.start_date:
            statement = statement.where(PlannedPayment.occurs_on >= query.start_date)
        if query.end_date:
            statement = statement.where(PlannedPayment.occurs_on <= query.end_date)
        if query.status:
            statement = statement.where(PlannedPayment.status == query.status)
        if query.source:
            statement = statement.where(PlannedPayment.source == query.source)
        if query.tx_type:
            statement = statement.where(PlannedPayment.tx_type == query.tx_type)
        return statement

    def search(self, query: PlannedPaymentQuery, *, user_id: int) -> list[PlannedPayment]:
        with self.session_factory() as session:
            rows = list(
                session.exec(
                    self._filtered(select(PlannedPayment), query, user_id=user_id).order_by(
                        PlannedPayment.occurs_on, PlannedPayment.id
                    )
                ).all()
            )
            session.expunge_all()
            return rows

    def counts_by_type(self, query: PlannedPaymentQuery, *, user_id: int) -> dict[str, int]:
        with self.session_factory() as session:
            rows = session.exec(
                self._filtered(
                    select(PlannedPayment.tx_type, func.count()), query, user_id=user_id
                ).group_by(PlannedPayment.tx_type)
            ).all()
            return {tx_type: count for tx_type, count in rows}

    def exists_for_subscription(self, service_subscription_id: int, occurs_on: date) -> bool:
        with self.session_factory() as session:
            return (
                session.exec(
                    select(PlannedPayment.id)
                    .where(PlannedPayment.service_subscription_id == service_subscription_id)
                    .where(PlannedPayment.occurs_on == occurs_on)
                ).first()
                is not None
            )
