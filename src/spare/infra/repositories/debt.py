"""SQLModel implementation of Debt repository."""

from __future__ import annotations

from sqlmodel import select

from ...models.debt import Debt
from .base import OwnedRepository


class SQLModelDebtRepository(OwnedRepository[Debt]):
    model = Debt
    default_order = ("is_paid_off", "name")

    def list_open(self, *, user_id: int) -> list[Debt]:
        """Debts that still carry a balance."""
        with self.session_factory() as session:
            rows = list(
                session.exec(
                    select(Debt)
                    .where(Debt.user_id == user_id)
                    .where(Debt.is_paid_off == False)  # noqa: E712
                    .order_by(Debt.current_balance)
                ).all()
            )
            session.expunge_all()
            return rows
