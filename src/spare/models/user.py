"""User model supporting authentication and roles."""

from __future__ import annotations

from datetime import datetime
from typing import ClassVar, Optional

from sqlmodel import Field, SQLModel

from ..timeutils import utcnow

ROLES = ("user", "admin", "super_admin")


class User(SQLModel, table=True):
    """Application user with role, credentials and profile data."""

    __tablename__: ClassVar[str] = "user"

    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(nullable=False, unique=True, index=True, max_length=255)
    name: str = Field(default="", max_length=128)
    password_hash: str = Field(nullable=False, max_length=255)
    role: str = Field(default="user", nullable=False, max_length=16, index=True)
    stripe_customer_id: Optional[str] = Field(default=None, index=True, max_length=64)
    country: str = Field(default="US", max_length=2)
    region: Optional[str] = Field(default=None, max_length=8)
    expected_income: Optional[float] = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow, nullable=False)
    last_login: Optional[datetime] = Field(default=None)

    @property
    def is_admin(self) -> bool:
        return self.role in {"admin", "super_admin"}
