"""Budgeting tables."""

from __future__ import annotations

from datetime import date
from typing import ClassVar, Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


class Budget(SQLModel, table=True):
    """Monthly allocation to a category (optionally narrowed to a subcategory)."""

    __tablename__: ClassVar[str] = "budget"
    __table_args__ = (
        UniqueConstraint("user_id", "period", "category_id", "subcategory_id", name="uq_budget_scope"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", nullable=False, index=True)
    period: date = Field(index=True, nullable=False)
    category_id: int = Field(foreign_key="category.id", nullable=False)
    subcategory_id: Optional[int] = Field(default=None, foreign_key="subcategory.id")
    amount: float = Field(nullable=False)
    note: str = Field(default="", max_length=255)
