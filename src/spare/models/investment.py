"""Portfolio models."""

from __future__ import annotations

from datetime import date, datetime
from typing import ClassVar, Optional

from sqlmodel import Field, SQLModel

from ..timeutils import utcnow

INVESTMENT_TX_TYPES = ("buy", "sell", "dividend", "interest", "fee", "transfer")


class Security(SQLModel, table=True):
    """Tradable instrument referenced by investment transactions."""

    __tablename__: ClassVar[str] = "security"

    id: Optional[int] = Field(default=None, primary_key=True)
    symbol: str = Field(index=True, unique=True, nullable=False, max_length=32)
    name: str = Field(default="", max_length=128)
    security_type: str = Field(default="stock", max_length=32)
    currency: str = Field(default="USD", max_length=3)
    last_price: Optional[float] = Field(default=None)
    price_updated_at: Optional[datetime] = Field(default=None)


class InvestmentTransaction(SQLModel, table=True):
    __tablename__: ClassVar[str] = "investment_transaction"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", nullable=False, index=True)
    account_id: int = Field(foreign_key="account.id", nullable=False, index=True)
    security_id: Optional[int] = Field(default=None, foreign_key="security.id", index=True)
    occurred_on: date = Field(nullable=False, index=True)
    tx_type: str = Field(nullable=False, max_length=16)
    quantity: float = Field(default=0.0, nullable=False)
    price: float = Field(default=0.0, nullable=False)
    fees: float = Field(default=0.0, nullable=False)
    notes: str = Field(default="", max_length=255)
    created_at: datetime = Field(default_factory=utcnow, nullable=False)
