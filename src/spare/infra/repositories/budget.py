"""SQLModel implementation of Budget repository."""

from __future__ import annotations

from datetime import date
from typing import Optional

from sqlmodel import select

from ...models.budget import Budget
from .base import OwnedRepository


class SQLModelBudgetRepository(OwnedRepository[Budget]):
    """SQLModel-based budget repository implementation."""

    model = Budget
    default_order = ("period", "category_id")

    def list_for_period(self, period: date, *, user_id: int) -> list[Budget]:
        with self.session_factory() as session:
            rows = list(
                session.exec(
                    select(Budget)
                    .where(Budget.user_id == user_id)
                    .where(Budget.period == period)
                    .order_by(Budget.category_id)
                ).all()
            )
            session.expunge_all()
            return rows

    def find_scope(
        self,
        period: date,
        category_id: int,
        subcategory_id: Optional[int],
        *,
        user_id: int,
    ) -> Optional[Budget]:
        """Return the budget for exactly this (period, category, subcategory)."""
        with self.session_factory() as session:
            statement = (
                select(Budget)
                .where(Budget.user_id == user_id)
                .where(Budget.period == period)
                .where(Budget.category_id == category_id)
            )
            if subcategory_id is None:
                statement = statement.where(Budget.subcategory_id.is_(None))  # type: ignore[union-attr]
            else:
                statement = statement.where(Budget.subcategory_id == subcategory_id)
            obj = session.exec(statement).first()
            if obj:
                session.expunge(obj)
            return obj
