"""Tax reference data used by the after-tax income calculator."""

from __future__ import annotations

from typing import ClassVar, Optional

from sqlmodel import Field, SQLModel


class FederalTaxBracket(SQLModel, table=True):
    """One progressive bracket; ``max_income`` NULL marks the top bracket."""

    __tablename__: ClassVar[str] = "federal_tax_bracket"

    id: Optional[int] = Field(default=None, primary_key=True)
    country_code: str = Field(nullable=False, max_length=2, index=True)
    tax_year: int = Field(nullable=False, index=True)
    bracket_order: int = Field(nullable=False)
    min_income: float = Field(nullable=False)
    max_income: Optional[float] = Field(default=None)
    tax_rate: float = Field(nullable=False, description="Fraction, e.g. 0.22")
    is_active: bool = Field(default=True, nullable=False)


class RegionalTaxRate(SQLModel, table=True):
    """Flat effective state/provincial rate."""

    __tablename__: ClassVar[str] = "regional_tax_rate"

    id: Optional[int] = Field(default=None, primary_key=True)
    country_code: str = Field(nullable=False, max_length=2, index=True)
    region_code: str = Field(nullable=False, max_length=8, index=True)
    region_name: str = Field(default="", max_length=64)
    tax_rate: float = Field(nullable=False)
    is_active: bool = Field(default=True, nullable=False)
