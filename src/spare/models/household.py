"""Household sharing tables."""

from __future__ import annotations

from datetime import datetime
from typing import ClassVar, Optional

from sqlmodel import Field, SQLModel

from ..timeutils import utcnow


class Household(SQLModel, table=True):
    """A shared budget space owned by one user."""

    __tablename__: ClassVar[str] = "household"

    id: Optional[int] = Field(default=None, primary_key=True)
    owner_id: int = Field(foreign_key="user.id", nullable=False, unique=True, index=True)
    name: str = Field(default="My household", max_length=128)
    created_at: datetime = Field(default_factory=utcnow, nullable=False)


class HouseholdMember(SQLModel, table=True):
    """Invitation and membership row; ``member_user_id`` is set on acceptance."""

    __tablename__: ClassVar[str] = "household_member"

    id: Optional[int] = Field(default=None, primary_key=True)
    household_id: int = Field(foreign_key="household.id", nullable=False, index=True)
    owner_id: int = Field(foreign_key="user.id", nullable=False, index=True)
    member_user_id: Optional[int] = Field(default=None, foreign_key="user.id", index=True)
    email: str = Field(nullable=False, max_length=255, index=True)
    name: str = Field(default="", max_length=128)
    role: str = Field(default="member", max_length=16)
    status: str = Field(default="pending", max_length=16, index=True)
    invitation_token: Optional[str] = Field(default=None, max_length=255)
    invited_at: datetime = Field(default_factory=utcnow, nullable=False)
    accepted_at: Optional[datetime] = Field(default=None)
