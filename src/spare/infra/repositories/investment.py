"""SQLModel implementation of securities and investment transactions."""

from __future__ import annotations

from typing import Optional

from sqlmodel import select

from ...models.investment import InvestmentTransaction, Security
from .base import OwnedRepository


class SQLModelInvestmentRepository(OwnedRepository[InvestmentTransaction]):
    model = InvestmentTransaction
    default_order = ("occurred_on", "id")

    def list_for_account(self, account_id: int, *, user_id: int) -> list[InvestmentTransaction]:
        with self.session_factory() as session:
            rows = list(
                session.exec(
                    select(InvestmentTransaction)
                    .where(InvestmentTransaction.user_id == user_id)
                    .where(InvestmentTransaction.account_id == account_id)
                    .order_by(InvestmentTransaction.occurred_on, InvestmentTransaction.id)
                ).all()
            )
            session.expunge_all()
            return rows

    def get_security(self, security_id: int) -> Optional[Security]:
        with self.session_factory() as session:
            obj = session.get(Security, security_id)
            if obj:
                session.expunge(obj)
            return obj

    def get_security_by_symbol(self, symbol: str) -> Optional[Security]:
        with self.session_factory() as session:
            obj = session.exec(select(Security).where(Security.symbol == symbol.upper())).first()
            if obj:
                session.expunge(obj)
            return obj

    def list_securities(self, ids: Optional[list[int]] = None) -> list[Security]:
        with self.session_factory() as session:
            statement = select(Security)
            if ids is not None:
                statement = statement.where(Security.id.in_(ids))  # type: ignore[union-attr]
            rows = list(session.exec(statement.order_by(Security.symbol)).all())
            session.expunge_all()
            return rows

    def save_security(self, security: Security) -> Security:
        with self.session_factory() as session:
            merged = session.merge(security)
            session.commit()
            session.refresh(merged)
            session.expunge(merged)
            return merged
