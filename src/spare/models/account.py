"""Account model for transaction linkage."""

from __future__ import annotations

from datetime import datetime
from typing import ClassVar, Optional

from sqlmodel import Field, SQLModel

from ..timeutils import utcnow

ACCOUNT_TYPES = ("checking", "savings", "credit", "investment", "cash", "other")


class Account(SQLModel, table=True):
    """A manual or bank-linked money account."""

    __tablename__: ClassVar[str] = "account"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", nullable=False, index=True)
    name: str = Field(nullable=False, max_length=128)
    account_type: str = Field(default="checking", nullable=False, max_length=32)
    initial_balance: float = Field(default=0.0, nullable=False)
    currency: str = Field(default="USD", max_length=3)
    is_default: bool = Field(default=False, nullable=False)
    credit_limit: Optional[float] = Field(default=None)
    plaid_item_id: Optional[int] = Field(default=None, foreign_key="plaid_item.id", index=True)
    plaid_account_id: Optional[str] = Field(default=None, index=True, max_length=128)
    created_at: datetime = Field(default_factory=utcnow, nullable=False)

    @property
    def is_linked(self) -> bool:
        return self.plaid_account_id is not None
