"""SQLModel implementation of tax reference data."""

from __future__ import annotations

from typing import Iterable, Optional

from sqlalchemy import func
from sqlmodel import select

from ...models.tax import FederalTaxBracket, RegionalTaxRate
from ..database import SessionFactory


class SQLModelTaxRepository:
    def __init__(self, session_factory: SessionFactory):
        """Initialize with a session factory."""
        self.session_factory = session_factory

    def latest_year(self, country_code: str) -> Optional[int]:
        """Most recent tax year with active brackets for ``country_code``."""
        with self.session_factory() as session:
            return session.exec(
                select(func.max(FederalTaxBracket.tax_year))
                .where(FederalTaxBracket.country_code == country_code)
                .where(FederalTaxBracket.is_active == True)  # noqa: E712
            ).one()

    def brackets(
        self, country_code: str, tax_year: int, *, include_inactive: bool = False
    ) -> list[FederalTaxBracket]:
        with self.session_factory() as session:
            statement = (
                select(FederalTaxBracket)
                .where(FederalTaxBracket.country_code == country_code)
                .where(FederalTaxBracket.tax_year == tax_year)
            )
            if not include_inactive:
                statement = statement.where(FederalTaxBracket.is_active == True)  # noqa: E712
            rows = list(session.exec(statement.order_by(FederalTaxBracket.bracket_order)).all())
            session.expunge_all()
            return rows

    def list_brackets(self, country_code: Optional[str] = None) -> list[FederalTaxBracket]:
        with self.session_factory() as session:
            statement = select(FederalTaxBracket)
            if country_code:
                statement = statement.where(FederalTaxBracket.country_code == country_code)
            rows = list(
                session.exec(
                    statement.order_by(
                        FederalTaxBracket.country_code,
                        FederalTaxBracket.tax_year.desc(),  # type: ignore[attr-defined]
                        FederalTaxBracket.bracket_order,
                    )
                ).all()
            )
            session.expunge_all()
            return rows

    def get_bracket(self, bracket_id: int) -> Optional[FederalTaxBracket]:
        with self.session_factory() as session:
            obj = session.get(FederalTaxBracket, bracket_id)
            if obj:
                session.expunge(obj)
            return obj

    def regional_rate(self, country_code: str, region_code: str) -> Optional[RegionalTaxRate]:
        with self.session_factory() as session:
            obj = session.exec(
                select(RegionalTaxRate)
                .where(RegionalTaxRate.country_code == country_code)
                .where(RegionalTaxRate.region_code == region_code)
                .where(RegionalTaxRate.is_active == True)  # noqa: E712
            ).first()
            if obj:
                session.expunge(obj)
            return obj

    def list_regional_rates(self, country_code: Optional[str] = None) -> list[RegionalTaxRate]:
        with self.session_factory() as session:
            statement = select(RegionalTaxRate)
            if country_code:
                statement = statement.where(RegionalTaxRate.country_code == country_code)
            rows = list(
                session.exec(
                    statement.order_by(RegionalTaxRate.country_code, RegionalTaxRate.region_code)
                ).all()
            )
            session.expunge_all()
            return rows

    def save(self, obj):
        with self.session_factory() as session:
            merged = session.merge(obj)
            session.commit()
            session.refresh(merged)
            session.expunge(merged)
            return merged

    def delete_bracket(self, bracket_id: int) -> bool:
        with self.session_factory() as session:
            obj = session.get(FederalTaxBracket, bracket_id)
            if obj is None:
                return False
            session.delete(obj)
            session.commit()
            return True

    def seed(
        self,
        brackets: Iterable[FederalTaxBracket],
        rates: Iterable[RegionalTaxRate],
    ) -> int:
        """Insert reference rows whose natural key is missing. Returns rows added."""
        created = 0
        with self.session_factory() as session:
            for bracket in brackets:
                exists = session.exec(
                    select(FederalTaxBracket.id)
                    .where(FederalTaxBracket.country_code == bracket.country_code)
                    .where(FederalTaxBracket.tax_year == bracket.tax_year)
                    .where(FederalTaxBracket.bracket_order == bracket.bracket_order)
                ).first()
                if exists is None:
                    session.add(bracket)
                    created += 1
            for rate in rates:
                exists = session.exec(
                    select(RegionalTaxRate.id)
                    .where(RegionalTaxRate.country_code == rate.country_code)
                    .where(RegionalTaxRate.region_code == rate.region_code)
                ).first()
                if exists is None:
                    session.add(rate)
                    created += 1
            session.commit()
        return created
