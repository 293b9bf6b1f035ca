"""SQLModel implementation of Transaction repository."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional

from sqlalchemy import func, or_
from sqlmodel import select

from ...models.transaction import Transaction, TransactionSync
from .base import LIKE_ESCAPE, OwnedRepository, contains_pattern


@dataclass
class TransactionQuery:
    """Filters accepted by :meth:`SQLModelTransactionRepository.search`."""

    start_date: Optional[date] = None
    end_date: Optional[date] = None
    account_id: Optional[int] = None
    category_id: Optional[int] = None
    tx_type: Optional[str] = None
    text: Optional[str] = None
    uncategorized: bool = False


class SQLModelTransactionRepository(OwnedRepository[Transaction]):
    """SQLModel-based transaction repository implementation."""

    model = Transaction

    def _filtered(self, statement, query: TransactionQuery, *, user_id: int):
        statement = statement.where(Transaction.user_id == user_id)
        if query.start_date:
            statement = statement.where(Transaction.occurred_on >= query.start_date)
        if query.end_date:
            statement = statement.where(Transaction.occurred_on <= query.end_date)
        if query.account_id:
            statement = statement.where(Transaction.account_id == query.account_id)
        if query.category_id:
            statement = statement.where(Transaction.category_id == query.category_id)
        if query.tx_type:
            statement = statement.where(Transaction.tx_type == query.tx_type)
        if query.text:
            pattern = contains_pattern(query.text)
            statement = statement.where(
                Transaction.description.ilike(pattern, escape=LIKE_ESCAPE)  # type: ignore[attr-defined]
            )
        if query.uncategorized:
            statement = statement.where(Transaction.category_id.is_(None))  # type: ignore[union-attr]
        return statement

    def search(
        self, query: TransactionQuery, *, user_id: int, limit: Optional[int] = 50, offset: int = 0
    ) -> tuple[list[Transaction], int]:
        """Return one page of matching transactions plus the total match count."""
        with self.session_factory() as session:
            total = session.exec(
                self._filtered(select(func.count()).select_from(Transaction), query, user_id=user_id)
            ).one()
            statement = (
                self._filtered(select(Transaction), query, user_id=user_id)
                .order_by(Transaction.occurred_on.desc(), Transaction.id.desc())  # type: ignore
                .offset(offset)
                .limit(limit)
            )
            rows = list(session.exec(statement).all())
            session.expunge_all()
            return rows, total

    def list_between(
        self, start_date: date, end_date: date, *, user_id: int, tx_type: Optional[str] = None
    ) -> list[Transaction]:
        """Get transactions within an inclusive date range."""
        rows, _ = self.search(
            TransactionQuery(start_date=start_date, end_date=end_date, tx_type=tx_type),
            user_id=user_id,
            limit=1_000_000,
        )
        return rows

    def list_for_account(
        self, account_id: int, *, user_id: int, until: Optional[date] = None
    ) -> list[Transaction]:
        rows, _ = self.search(
            TransactionQuery(account_id=account_id, end_date=until), user_id=user_id, limit=1_000_000
        )
        return rows

    def count_between(self, start_date: date, end_date: date, *, user_id: int) -> int:
        with self.session_factory() as session:
            return session.exec(
                self._filtered(
                    select(func.count()).select_from(Transaction),
                    TransactionQuery(start_date=start_date, end_date=end_date),
                    user_id=user_id,
                )
            ).one()

    def categorized_since(self, since: date, *, user_id: int, tx_type: str) -> list[Transaction]:
        """History used to learn category suggestions."""
        with self.session_factory() as session:
            rows = list(
                session.exec(
                    select(Transaction)
                    .where(Transaction.user_id == user_id)
                    .where(Transaction.tx_type == tx_type)
                    .where(Transaction.occurred_on >= since)
                    .where(Transaction.category_id.is_not(None))  # type: ignore[union-attr]
                ).all()
            )
            session.expunge_all()
            return rows

    def create_transfer(
        self, outgoing: Transaction, incoming: Transaction
    ) -> tuple[Transaction, Transaction]:
        """Insert both legs of a transfer and link them to each other."""
        with self.session_factory() as session:
            session.add(outgoing)
            session.add(incoming)
            session.flush()
            outgoing.transfer_to_id = incoming.id
            incoming.transfer_from_id = outgoing.id
            session.add(outgoing)
            session.add(incoming)
            session.commit()
            session.refresh(outgoing)
            session.refresh(incoming)
            session.expunge_all()
            return outgoing, incoming

    def delete_with_counterpart(self, transaction_id: int, *, user_id: int) -> list[int]:
        """Delete a transaction and, for transfers, the linked leg."""
        with self.session_factory() as session:
            tx = session.exec(
                select(Transaction)
                .where(Transaction.id == transaction_id)
                .where(Transaction.user_id == user_id)
            ).first()
            if tx is None:
                return []
            deleted = [transaction_id]
            counterpart_id = tx.counterpart_id
            if counterpart_id is not None:
                other = session.exec(
                    select(Transaction)
                    .where(Transaction.id == counterpart_id)
                    .where(Transaction.user_id == user_id)
                ).first()
                if other is not None:
                    session.delete(other)
                    deleted.append(counterpart_id)
            self._detach_sync_rows(session, deleted)
            session.delete(tx)
            session.commit()
            return deleted

    def reassign_account(self, from_account_id: int, to_account_id: int, *, user_id: int) -> int:
        """Move every transaction of one account to another; returns the row count."""
        with self.session_factory() as session:
            rows = session.exec(
                select(Transaction)
                .where(Transaction.user_id == user_id)
                .where(Transaction.account_id == from_account_id)
            ).all()
            for row in rows:
                row.account_id = to_account_id
                session.add(row)
            session.commit()
            return len(rows)

    @staticmethod
    def _detach_sync_rows(session, transaction_ids: list[int]) -> None:
        if not transaction_ids:
            return
        syncs = session.exec(
            select(TransactionSync).where(TransactionSync.transaction_id.in_(transaction_ids))  # type: ignore[union-attr]
        ).all()
        for sync in syncs:
            sync.transaction_id = None
            session.add(sync)
        session.flush()

    # Aggregator bookkeeping

    def synced_ids(self, plaid_transaction_ids: Iterable[str]) -> set[str]:
        """Return which aggregator transaction ids were already imported."""
        ids = [value for value in plaid_transaction_ids if value]
        if not ids:
            return set()
        with self.session_factory() as session:
            return set(
                session.exec(
                    select(TransactionSync.plaid_transaction_id).where(
                        TransactionSync.plaid_transaction_id.in_(ids)  # type: ignore[attr-defined]
                    )
                ).all()
            )

    def create_synced(self, transaction: Transaction, *, plaid_transaction_id: str) -> Transaction:
        """Insert an aggregator transaction together with its sync marker."""
        with self.session_factory() as session:
            session.add(transaction)
            session.flush()
            session.add(
                TransactionSync(
                    account_id=transaction.account_id,
                    plaid_transaction_id=plaid_transaction_id,
                    transaction_id=transaction.id,
                )
            )
            session.commit()
            session.refresh(transaction)
            session.expunge(transaction)
            return transaction

    def delete_by_external_ids(self, external_ids: Iterable[str], *, user_id: int) -> int:
        ids = [value for value in external_ids if value]
        if not ids:
            return 0
        with self.session_factory() as session:
            rows = session.exec(
                select(Transaction)
                .where(Transaction.user_id == user_id)
                .where(Transaction.external_id.in_(ids))  # type: ignore[union-attr]
            ).all()
            self._detach_sync_rows(session, [row.id for row in rows if row.id is not None])
            for row in rows:
                session.delete(row)
            session.commit()
            return len(rows)
