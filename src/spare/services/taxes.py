"""Progressive federal tax plus flat regional rates."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from ..constants.tax_brackets import FEDERAL_BRACKETS, REGIONAL_RATES
from ..errors import NotFound, ValidationError
from ..models import FederalTaxBracket, RegionalTaxRate

logger = logging.getLogger(__name__)

COUNTRIES = ("US", "CA")


@dataclass(slots=True)
class Bracket:
    min_income: float
    max_income: Optional[float]
    tax_rate: float


def progressive_tax(income: float, brackets: Sequence[Bracket]) -> tuple[float, float]:
    """Return (tax, marginal rate); each bracket taxes income in ``[min, max)``."""

    if income <= 0:
        return 0.0, 0.0
    tax = 0.0
    marginal = 0.0
    for bracket in sorted(brackets, key=lambda b: b.min_income):
        if income <= bracket.min_income:
            break
        upper = income if bracket.max_income is None else min(income, bracket.max_income)
        tax += (upper - bracket.min_income) * bracket.tax_rate
        marginal = bracket.tax_rate
    return round(tax, 2), marginal


def _country(code: Optional[str]) -> str:
    country = (code or "US").strip().upper()
    if country not in COUNTRIES:
        raise ValidationError(f"Unsupported country: {code}")
    return country


def federal_brackets(ctx, country: str, year: Optional[int] = None) -> tuple[int, list[Bracket]]:
    """Active brackets from the database, falling back to the bundled reference data."""

    year = year or ctx.tax_repo.latest_year(country)
    if year:
        rows = ctx.tax_repo.brackets(country, year)
        if rows:
            return year, [Bracket(r.min_income, r.max_income, r.tax_rate) for r in rows]
    years = sorted(y for c, y in FEDERAL_BRACKETS if c == country)
    if not years:
        raise NotFound(f"No tax brackets for {country}")
    fallback_year = year if year in years else years[-1]
    return fallback_year, [Bracket(*row) for row in FEDERAL_BRACKETS[(country, fallback_year)]]


def regional_rate(ctx, country: str, region: Optional[str]) -> float:
    if not region:
        return 0.0
    region = region.strip().upper()
    row = ctx.tax_repo.regional_rate(country, region)
    if row is not None:
        return row.tax_rate
    return REGIONAL_RATES.get(country, {}).get(region, ("", 0.0))[1]


def estimate(
    ctx,
    *,
    annual_income: float,
    country: Optional[str] = "US",
    region: Optional[str] = None,
    year: Optional[int] = None,
) -> dict[str, Any]:
    if annual_income < 0:
        raise ValidationError("Income cannot be negative")
    country = _country(country)
    tax_year, brackets = federal_brackets(ctx, country, year)
    federal_tax, marginal = progressive_tax(annual_income, brackets)
    region_pct = regional_rate(ctx, country, region)
    regional_tax = round(annual_income * region_pct, 2)
    total = round(federal_tax + regional_tax, 2)
    after_tax = round(annual_income - total, 2)
    return {
        "country": country,
        "region": region.upper() if region else None,
        "tax_year": tax_year,
        "annual_income": round(annual_income, 2),
        "federal_tax": federal_tax,
        "regional_tax": regional_tax,
        "total_tax": total,
        "effective_rate": round(total / annual_income * 100, 2) if annual_income > 0 else 0.0,
        "marginal_rate": round((marginal + region_pct) * 100, 2),
        "annual_after_tax": after_tax,
        "monthly_after_tax": round(after_tax / 12, 2),
    }


def monthly_after_tax_income(
    ctx, annual_gross: float, country: Optional[str] = "US", region: Optional[str] = None
) -> float:
    return estimate(ctx, annual_income=annual_gross, country=country, region=region)["monthly_after_tax"]


# Reference data


def _seed_rows() -> tuple[list[FederalTaxBracket], list[RegionalTaxRate]]:
    brackets = [
        FederalTaxBracket(
            country_code=country,
            tax_year=year,
            bracket_order=order,
            min_income=low,
            max_income=high,
            tax_rate=rate,
        )
        for (country, year), rows in FEDERAL_BRACKETS.items()
        for order, (low, high, rate) in enumerate(rows, start=1)
    ]
    rates = [
        RegionalTaxRate(country_code=country, region_code=code, region_name=name, tax_rate=rate)
        for country, regions in REGIONAL_RATES.items()
        for code, (name, rate) in regions.items()
    ]
    return brackets, rates


def seed_tax_data(ctx) -> int:
    brackets, rates = _seed_rows()
    created = ctx.tax_repo.seed(brackets, rates)
    if created:
        logger.info("Seeded %s tax reference rows", created)
    return created


def _clean_bracket(data: dict[str, Any], *, partial: bool) -> dict[str, Any]:
    errors: dict[str, list[str]] = {}
    cleaned: dict[str, Any] = {}
    if "country_code" in data or not partial:
        try:
            cleaned["country_code"] = _country(data.get("country_code"))
        except ValidationError:
            errors.setdefault("country_code", []).append("Country must be US or CA.")
    for key, cast in (("tax_year", int), ("bracket_order", int), ("min_income", float), ("tax_rate", float)):
        if key in data or not partial:
            try:
                cleaned[key] = cast(data.get(key))
            except (TypeError, ValueError):
                errors.setdefault(key, []).append("This field is required.")
    if "max_income" in data:
        raw = data.get("max_income")
        try:
            cleaned["max_income"] = float(raw) if raw not in (None, "") else None
        except (TypeError, ValueError):
            errors.setdefault("max_income", []).append("Enter a valid number.")
    if "is_active" in data:
        cleaned["is_active"] = bool(data.get("is_active"))
    rate = cleaned.get("tax_rate")
    if rate is not None and not 0 <= rate < 1:
        errors.setdefault("tax_rate", []).append("Rate is a fraction between 0 and 1.")
    low, high = cleaned.get("min_income"), cleaned.get("max_income")
    if low is not None and high is not None and high <= low:
        errors.setdefault("max_income", []).append("Maximum must be above the minimum.")
    if errors:
        raise ValidationError("Invalid tax bracket", errors)
    return cleaned


def list_brackets(ctx, country: Optional[str] = None) -> list[FederalTaxBracket]:
    return ctx.tax_repo.list_brackets(country.upper() if country else None)


def create_bracket(ctx, data: dict[str, Any]) -> FederalTaxBracket:
    return ctx.tax_repo.save(FederalTaxBracket(**_clean_bracket(data, partial=False)))


def update_bracket(ctx, bracket_id: int, data: dict[str, Any]) -> FederalTaxBracket:
    bracket = ctx.tax_repo.get_bracket(bracket_id)
    if bracket is None:
        raise NotFound("Tax bracket not found")
    for key, value in _clean_bracket(data, partial=True).items():
        setattr(bracket, key, value)
    return ctx.tax_repo.save(bracket)


def delete_bracket(ctx, bracket_id: int) -> None:
    if not ctx.tax_repo.delete_bracket(bracket_id):
        raise NotFound("Tax bracket not found")


def list_regional_rates(ctx, country: Optional[str] = None) -> list[RegionalTaxRate]:
    return ctx.tax_repo.list_regional_rates(country.upper() if country else None)


def upsert_regional_rate(ctx, data: dict[str, Any]) -> RegionalTaxRate:
    country = _country(data.get("country_code"))
    region = str(data.get("region_code") or "").strip().upper()
    if not region:
        raise ValidationError("Region is required", {"region_code": ["Region is required."]})
    try:
        rate = float(data.get("tax_rate"))
    except (TypeError, ValueError) as exc:
        raise ValidationError("Invalid rate", {"tax_rate": ["Enter a valid rate."]}) from exc
    if not 0 <= rate < 1:
        raise ValidationError("Invalid rate", {"tax_rate": ["Rate is a fraction between 0 and 1."]})
    row = next(
        (r for r in ctx.tax_repo.list_regional_rates(country) if r.region_code == region), None
    ) or RegionalTaxRate(country_code=country, region_code=region)
    row.tax_rate = rate
    row.region_name = str(data.get("region_name") or row.region_name or region)[:64]
    if "is_active" in data:
        row.is_active = bool(data.get("is_active"))
    return ctx.tax_repo.save(row)
