"""Recurring bills and planned payments."""

from __future__ import annotations

from datetime import date, datetime
from typing import ClassVar, Optional

from sqlmodel import Field, SQLModel

from ..timeutils import utcnow

BILLING_FREQUENCIES = ("weekly", "biweekly", "monthly", "quarterly", "yearly")
PLANNED_STATUSES = ("scheduled", "paid", "skipped", "cancelled")
PLANNED_SOURCES = ("manual", "recurring", "debt", "subscription", "goal")


class ServiceSubscription(SQLModel, table=True):
    """A recurring service charge (streaming, phone, gym...)."""

    __tablename__: ClassVar[str] = "service_subscription"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", nullable=False, index=True)
    service_name: str = Field(nullable=False, max_length=128)
    amount: float = Field(nullable=False)
    billing_frequency: str = Field(default="monthly", max_length=16)
    next_billing_date: date = Field(nullable=False, index=True)
    account_id: Optional[int] = Field(default=None, foreign_key="account.id")
    category_id: Optional[int] = Field(default=None, foreign_key="category.id")
    subcategory_id: Optional[int] = Field(default=None, foreign_key="subcategory.id")
    is_active: bool = Field(default=True, nullable=False)
    created_at: datetime = Field(default_factory=utcnow, nullable=False)


class PlannedPayment(SQLModel, table=True):
    """A scheduled future money movement that becomes a transaction when paid."""

    __tablename__: ClassVar[str] = "planned_payment"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", nullable=False, index=True)
    occurs_on: date = Field(nullable=False, index=True)
    tx_type: str = Field(default="expense", max_length=16)
    amount: float = Field(nullable=False)
    account_id: int = Field(foreign_key="account.id", nullable=False)
    to_account_id: Optional[int] = Field(default=None, foreign_key="account.id")
    category_id: Optional[int] = Field(default=None, foreign_key="category.id")
    subcategory_id: Optional[int] = Field(default=None, foreign_key="subcategory.id")
    description: str = Field(default="", max_length=255)
    source: str = Field(default="manual", max_length=16, index=True)
    status: str = Field(default="scheduled", max_length=16, index=True)
    linked_transaction_id: Optional[int] = Field(default=None, foreign_key="transaction.id")
    debt_id: Optional[int] = Field(default=None, foreign_key="debt.id")
    service_subscription_id: Optional[int] = Field(
        default=None, foreign_key="service_subscription.id", index=True
    )
    goal_id: Optional[int] = Field(default=None, foreign_key="goal.id")
    created_at: datetime = Field(default_factory=utcnow, nullable=False)
