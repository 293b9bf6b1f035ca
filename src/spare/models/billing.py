"""Plans, user subscriptions and promo codes mirrored from the payments platform."""

from __future__ import annotations

from datetime import datetime
from typing import ClassVar, Optional

from sqlalchemy import JSON, Column
from sqlalchemy.orm import relationship
from sqlmodel import Field, Relationship, SQLModel

from ..timeutils import utcnow

SUBSCRIPTION_STATUSES = ("active", "trialing", "past_due", "cancelled", "unpaid")


class Plan(SQLModel, table=True):
    """Sellable plan. ``None`` limits mean unlimited."""

    __tablename__: ClassVar[str] = "plan"

    id: Optional[int] = Field(default=None, primary_key=True)
    slug: str = Field(nullable=False, unique=True, index=True, max_length=32)
    name: str = Field(nullable=False, max_length=64)
    price_monthly: float = Field(default=0.0, nullable=False)
    price_yearly: float = Field(default=0.0, nullable=False)
    features: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    max_transactions: Optional[int] = Field(default=None)
    max_accounts: Optional[int] = Field(default=None)
    stripe_product_id: Optional[str] = Field(default=None, max_length=64)
    stripe_price_id_monthly: Optional[str] = Field(default=None, max_length=64)
    stripe_price_id_yearly: Optional[str] = Field(default=None, max_length=64)

    subscriptions: list["Subscription"] = Relationship(
        back_populates="plan",
        sa_relationship=relationship("Subscription", back_populates="plan"),
    )


class Subscription(SQLModel, table=True):
    __tablename__: ClassVar[str] = "subscription"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", nullable=False, index=True)
    plan_id: int = Field(foreign_key="plan.id", nullable=False)
    status: str = Field(default="active", nullable=False, max_length=16, index=True)
    billing_interval: str = Field(default="month", max_length=8)
    stripe_subscription_id: Optional[str] = Field(default=None, unique=True, max_length=64)
    trial_start: Optional[datetime] = Field(default=None)
    trial_end: Optional[datetime] = Field(default=None)
    current_period_end: Optional[datetime] = Field(default=None)
    cancel_at_period_end: bool = Field(default=False, nullable=False)
    created_at: datetime = Field(default_factory=utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=utcnow, nullable=False)

    plan: "Plan" = Relationship(
        back_populates="subscriptions",
        sa_relationship=relationship("Plan", back_populates="subscriptions"),
    )


class PromoCode(SQLModel, table=True):
    """Discount code backed by a coupon at the payments platform."""

    __tablename__: ClassVar[str] = "promo_code"

    id: Optional[int] = Field(default=None, primary_key=True)
    code: str = Field(nullable=False, unique=True, index=True, max_length=32)
    discount_type: str = Field(nullable=False, max_length=8)
    discount_value: float = Field(nullable=False)
    duration: str = Field(default="once", max_length=16)
    duration_in_months: Optional[int] = Field(default=None)
    max_redemptions: Optional[int] = Field(default=None)
    expires_at: Optional[datetime] = Field(default=None)
    is_active: bool = Field(default=True, nullable=False)
    stripe_coupon_id: Optional[str] = Field(default=None, max_length=64)
    plan_slugs: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(default_factory=utcnow, nullable=False)
