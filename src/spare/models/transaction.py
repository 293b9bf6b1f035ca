"""SQLModel definitions for ledger transactions."""

from __future__ import annotations

from datetime import date, datetime
from typing import ClassVar, Optional

from sqlmodel import Field, SQLModel

from ..timeutils import utcnow

TRANSACTION_TYPES = ("expense", "income", "transfer")


class Transaction(SQLModel, table=True):
    """A single ledger transaction imported, synced or hand-entered.

    Amounts are always positive; ``tx_type`` carries the direction. A transfer
    is stored as two rows: the outgoing row points at its counterpart through
    ``transfer_to_id`` and the incoming row through ``transfer_from_id``.
    """

    __tablename__: ClassVar[str] = "transaction"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", nullable=False, index=True)
    account_id: int = Field(foreign_key="account.id", nullable=False, index=True)
    occurred_on: date = Field(nullable=False, index=True)
    tx_type: str = Field(default="expense", nullable=False, max_length=16, index=True)
    amount: float = Field(nullable=False)
    description: str = Field(default="", max_length=255)
    category_id: Optional[int] = Field(default=None, foreign_key="category.id", index=True)
    subcategory_id: Optional[int] = Field(default=None, foreign_key="subcategory.id")
    suggested_category_id: Optional[int] = Field(default=None, foreign_key="category.id")
    suggested_subcategory_id: Optional[int] = Field(default=None, foreign_key="subcategory.id")
    transfer_to_id: Optional[int] = Field(default=None, index=True)
    transfer_from_id: Optional[int] = Field(default=None, index=True)
    external_id: Optional[str] = Field(default=None, index=True, max_length=128)
    is_recurring: bool = Field(default=False, nullable=False)
    created_at: datetime = Field(default_factory=utcnow, nullable=False)

    @property
    def is_transfer_out(self) -> bool:
        return self.tx_type == "transfer" and self.transfer_to_id is not None

    @property
    def is_transfer_in(self) -> bool:
        return self.tx_type == "transfer" and self.transfer_from_id is not None

    @property
    def counterpart_id(self) -> Optional[int]:
        return self.transfer_to_id or self.transfer_from_id


class TransactionSync(SQLModel, table=True):
    """Marks an aggregator transaction id as already imported."""

    __tablename__: ClassVar[str] = "transaction_sync"

    id: Optional[int] = Field(default=None, primary_key=True)
    account_id: int = Field(foreign_key="account.id", nullable=False, index=True)
    plaid_transaction_id: str = Field(nullable=False, unique=True, max_length=128)
    transaction_id: Optional[int] = Field(default=None, foreign_key="transaction.id")
    synced_at: datetime = Field(default_factory=utcnow, nullable=False)
