"""Debt and liability entities."""

from __future__ import annotations

from datetime import date, datetime
from typing import ClassVar, Optional

from sqlmodel import Field, SQLModel

from ..timeutils import utcnow

DEBT_TYPES = ("credit_card", "mortgage", "car_loan", "student_loan", "personal_loan", "line_of_credit", "other")


class Debt(SQLModel, table=True):
    """Installment or revolving debt."""

    __tablename__: ClassVar[str] = "debt"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", nullable=False, index=True)
    name: str = Field(nullable=False, max_length=80, index=True)
    debt_type: str = Field(default="other", max_length=32)
    initial_amount: float = Field(nullable=False)
    current_balance: float = Field(nullable=False)
    interest_rate: float = Field(default=0.0, nullable=False, description="APR in percent")
    minimum_payment: float = Field(default=0.0, nullable=False)
    principal_paid: float = Field(default=0.0, nullable=False)
    interest_paid: float = Field(default=0.0, nullable=False)
    is_paid_off: bool = Field(default=False, nullable=False)
    paid_off_at: Optional[datetime] = Field(default=None)
    is_paused: bool = Field(default=False, nullable=False)
    start_date: Optional[date] = Field(default=None)
    payment_day: int = Field(default=1, ge=1, le=28)
    account_id: Optional[int] = Field(default=None, foreign_key="account.id")
    created_at: datetime = Field(default_factory=utcnow, nullable=False)
