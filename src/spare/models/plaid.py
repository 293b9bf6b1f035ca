"""Aggregator connection (one per linked institution login)."""

from __future__ import annotations

from datetime import datetime
from typing import ClassVar, Optional

from sqlmodel import Field, SQLModel

from ..timeutils import utcnow


class PlaidItem(SQLModel, table=True):
    __tablename__: ClassVar[str] = "plaid_item"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", nullable=False, index=True)
    item_id: str = Field(nullable=False, unique=True, max_length=128)
    access_token: str = Field(nullable=False, max_length=255)
    institution_id: Optional[str] = Field(default=None, max_length=64)
    institution_name: str = Field(default="", max_length=128)
    transactions_cursor: Optional[str] = Field(default=None)
    status: str = Field(default="good", max_length=32)
    error_code: Optional[str] = Field(default=None, max_length=64)
    last_synced_at: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow, nullable=False)
