"""Category taxonomy: groups, categories and subcategories.

Rows with ``user_id`` NULL are system defaults visible to everyone.
"""

from __future__ import annotations

from typing import ClassVar, Optional

from sqlalchemy.orm import relationship
from sqlmodel import Field, Relationship, SQLModel


class CategoryGroup(SQLModel, table=True):
    """Top level bucket (Housing, Food, Income...)."""

    __tablename__: ClassVar[str] = "category_group"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: Optional[int] = Field(default=None, foreign_key="user.id", index=True)
    name: str = Field(nullable=False, max_length=64, index=True)
    group_type: str = Field(default="expense", nullable=False, max_length=16)

    categories: list["Category"] = Relationship(
        back_populates="group",
        sa_relationship=relationship("Category", back_populates="group"),
    )

    @property
    def is_system(self) -> bool:
        return self.user_id is None


class Category(SQLModel, table=True):
    """Transaction category used for budgeting and reporting."""

    __tablename__: ClassVar[str] = "category"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: Optional[int] = Field(default=None, foreign_key="user.id", index=True)
    group_id: int = Field(foreign_key="category_group.id", nullable=False, index=True)
    name: str = Field(nullable=False, max_length=64, index=True)

    group: "CategoryGroup" = Relationship(
        back_populates="categories",
        sa_relationship=relationship("CategoryGroup", back_populates="categories"),
    )
    subcategories: list["Subcategory"] = Relationship(
        back_populates="category",
        sa_relationship=relationship("Subcategory", back_populates="category"),
    )

    @property
    def is_system(self) -> bool:
        return self.user_id is None


class Subcategory(SQLModel, table=True):
    __tablename__: ClassVar[str] = "subcategory"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: Optional[int] = Field(default=None, foreign_key="user.id", index=True)
    category_id: int = Field(foreign_key="category.id", nullable=False, index=True)
    name: str = Field(nullable=False, max_length=64)

    category: "Category" = Relationship(
        back_populates="subcategories",
        sa_relationship=relationship("Category", back_populates="subcategories"),
    )

    @property
    def is_system(self) -> bool:
        return self.user_id is None
