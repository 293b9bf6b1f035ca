"""SQLModel implementation of Account repository."""

from __future__ import annotations

from typing import Optional

from sqlmodel import select

from ...models.account import Account
from .base import OwnedRepository


class SQLModelAccountRepository(OwnedRepository[Account]):
    """SQLModel-based account repository implementation."""

    model = Account
    default_order = ("name",)

    def get_by_plaid_account_id(self, plaid_account_id: str) -> Optional[Account]:
        with self.session_factory() as session:
            obj = session.exec(
                select(Account).where(Account.plaid_account_id == plaid_account_id)
            ).first()
            if obj:
                session.expunge(obj)
            return obj

    def list_by_item(self, plaid_item_id: int, *, user_id: int) -> list[Account]:
        """Accounts linked through one aggregator connection."""
        with self.session_factory() as session:
            rows = list(
                session.exec(
                    select(Account)
                    .where(Account.user_id == user_id)
                    .where(Account.plaid_item_id == plaid_item_id)
                ).all()
            )
            session.expunge_all()
            return rows

    def set_default(self, account_id: int, *, user_id: int) -> Optional[Account]:
        """Flag one account as default and clear the flag on the others."""
        with self.session_factory() as session:
            accounts = session.exec(select(Account).where(Account.user_id == user_id)).all()
            chosen: Optional[Account] = None
            for account in accounts:
                account.is_default = account.id == account_id
                if account.is_default:
                    chosen = account
                session.add(account)
            if chosen is None:
                session.rollback()
                return None
            session.commit()
            session.refresh(chosen)
            session.expunge(chosen)
            return chosen

    def unlink_item(self, plaid_item_id: int, *, user_id: int) -> int:
        """Turn linked accounts back into manual ones; returns how many changed."""
        with self.session_factory() as session:
            accounts = session.exec(
                select(Account)
                .where(Account.user_id == user_id)
                .where(Account.plaid_item_id == plaid_item_id)
            ).all()
            for account in accounts:
                account.plaid_item_id = None
                account.plaid_account_id = None
                session.add(account)
            session.commit()
            return len(accounts)

    def detach_references(self, account_id: int, *, user_id: int) -> None:
        """Clear optional links to an account and drop its planned payments and sync markers."""
        from ...models import Debt, Goal, ImportJob, PlannedPayment, ServiceSubscription, TransactionSync

        with self.session_factory() as session:
            for model in (Goal, Debt, ServiceSubscription, ImportJob):
                for row in session.exec(
                    select(model).where(model.user_id == user_id).where(model.account_id == account_id)
                ).all():
                    row.account_id = None
                    session.add(row)
            for row in session.exec(
                select(PlannedPayment)
                .where(PlannedPayment.user_id == user_id)
                .where(
                    (PlannedPayment.account_id == account_id)
                    | (PlannedPayment.to_account_id == account_id)
                )
            ).all():
                session.delete(row)
            for row in session.exec(
                select(TransactionSync).where(TransactionSync.account_id == account_id)
            ).all():
                session.delete(row)
            session.commit()
