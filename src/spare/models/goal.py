"""Savings goals."""

from __future__ import annotations

from datetime import datetime
from typing import ClassVar, Optional

from sqlmodel import Field, SQLModel

from ..timeutils import utcnow


class Goal(SQLModel, table=True):
    """A savings target funded by a percentage of monthly income."""

    __tablename__: ClassVar[str] = "goal"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", nullable=False, index=True)
    name: str = Field(nullable=False, max_length=128)
    target_amount: float = Field(nullable=False)
    current_balance: float = Field(default=0.0, nullable=False)
    income_percentage: float = Field(default=0.0, nullable=False)
    target_months: Optional[int] = Field(default=None)
    expected_income: Optional[float] = Field(default=None)
    priority: str = Field(default="medium", max_length=16)
    is_paused: bool = Field(default=False, nullable=False)
    is_completed: bool = Field(default=False, nullable=False)
    completed_at: Optional[datetime] = Field(default=None)
    is_emergency_fund: bool = Field(default=False, nullable=False)
    account_id: Optional[int] = Field(default=None, foreign_key="account.id")
    created_at: datetime = Field(default_factory=utcnow, nullable=False)
