"""Debt tracking, payments and payoff calculators."""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Optional

from ..errors import NotFound, ValidationError
from ..models import Debt
from ..models.debt import DEBT_TYPES
from ..timeutils import add_months, utcnow

logger = logging.getLogger(__name__)

STRATEGIES = ("snowball", "avalanche")
MAX_SCHEDULE_MONTHS = 600


@dataclass(slots=True)
class DebtAccount:
    """Represents a liability input for payoff projections."""

    id: int
    balance: float
    apr: float
    minimum_payment: float
    name: str = ""

    @classmethod
    def from_debt(cls, debt: Debt) -> DebtAccount:
        return cls(
            id=debt.id,
            balance=debt.current_balance,
            apr=debt.interest_rate,
            minimum_payment=debt.minimum_payment,
            name=debt.name,
        )


@dataclass(slots=True)
class PaymentProjection:
    """Represents a single projected payment for one debt."""

    due_date: date
    payment: float
    principal: float
    interest: float
    remaining_balance: float


def _normalize_currency(amount: float) -> float:
    return round(amount + 1e-9, 2)


def _monthly_interest(balance: float, apr: float) -> float:
    interest = Decimal(balance) * Decimal(apr) / Decimal(1200)
    return float(interest.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def amortized_payment(principal: float, apr: float, months: int) -> float:
    """Fixed monthly payment that clears ``principal`` in ``months``."""

    if months <= 0:
        raise ValidationError("Term must be at least 1 month")
    if principal <= 0:
        return 0.0
    rate = apr / 1200
    if rate == 0:
        return _normalize_currency(principal / months)
    return _normalize_currency(principal * rate / (1 - (1 + rate) ** -months))


def payoff_months(balance: float, apr: float, payment: float) -> Optional[int]:
    """Months until ``balance`` is cleared at ``payment``; None when it never is."""

    if balance <= 0:
        return 0
    if payment <= 0:
        return None
    rate = apr / 1200
    if rate == 0:
        return math.ceil(balance / payment)
    if payment <= balance * rate:
        return None
    return math.ceil(-math.log(1 - rate * balance / payment) / math.log(1 + rate))


def payment_schedule(
    debt: Debt, *, months: Optional[int] = None, today: Optional[date] = None
) -> list[PaymentProjection]:
    """Amortization rows for one debt paying its minimum every month.

    Every row reduces the balance even when the minimum payment is below the
    interest. When ``months`` is given the schedule is a preview of that
    many rows (at most ``MAX_SCHEDULE_MONTHS``); a full schedule that does
    not clear the debt within ``MAX_SCHEDULE_MONTHS`` raises ValidationError.
    """

    if debt.current_balance is None or debt.current_balance <= 0:
        return []
    if months is not None and months <= 0:
        return []

    balance = float(debt.current_balance)
    minimum_payment = max(float(debt.minimum_payment or 0.0), 0.0)
    start = today or date.today()
    next_due = start.replace(day=min(debt.payment_day or 1, 28))
    if next_due < start:
        next_due = add_months(next_due, 1)

    limit = min(months, MAX_SCHEDULE_MONTHS) if months is not None else MAX_SCHEDULE_MONTHS
    schedule: list[PaymentProjection] = []
    while balance > 0 and len(schedule) < limit:
        interest = _monthly_interest(balance, debt.interest_rate or 0.0)
        suggested_payment = max(minimum_payment, interest + 1.0)
        payment = _normalize_currency(min(suggested_payment, balance + interest))
        principal = _normalize_currency(payment - interest)
        balance = _normalize_currency(balance + interest - payment)
        if balance < 0.01:
            balance = 0.0
        schedule.append(
            PaymentProjection(
                due_date=next_due,
                payment=payment,
                principal=principal,
                interest=interest,
                remaining_balance=balance,
            )
        )
        next_due = add_months(next_due, 1)
    if balance > 0 and months is None:
        raise ValidationError(
            f"Debt is not paid off within {MAX_SCHEDULE_MONTHS} months; minimum payment too low"
        )
    return schedule


def _calculate_schedule(
    *, debts: Iterable[DebtAccount], surplus: float, start: Optional[date] = None
) -> list[dict]:
    """Month-by-month simulation; the surplus goes to the first open debt in order."""

    debt_dicts: list[dict[str, Any]] = [asdict(d) for d in debts]
    payoff_schedule: list[dict] = []
    current_date = (start or date.today()).replace(day=1)
    rolled_minimums = 0.0  # freed minimum payments from debts already cleared

    previous_total_balance = sum(d["balance"] for d in debt_dicts)
    stagnant_periods = 0

    while any(d["balance"] > 0 for d in debt_dicts):
        extra_pool = surplus + rolled_minimums
        row: dict[str, Any] = {"date": current_date.isoformat(), "payments": {}}

        for debt in debt_dicts:
            if debt["balance"] <= 0:
                continue

            monthly_interest = _monthly_interest(debt["balance"], debt["apr"])

            payment = debt["minimum_payment"]
            if extra_pool > 0:
                payment += extra_pool
                extra_pool = 0.0

            # Payment always covers interest plus a dollar of principal.
            minimum_progress = monthly_interest + 1.0
            if payment < minimum_progress:
                payment = minimum_progress

            new_balance = debt["balance"] + monthly_interest - payment

            if new_balance <= 0:
                payment_to_apply = debt["balance"] + monthly_interest
                leftover = payment - payment_to_apply
                payment = payment_to_apply
                debt["balance"] = 0.0
                extra_pool += max(leftover, 0.0)
                rolled_minimums += debt["minimum_payment"]
            else:
                debt["balance"] = new_balance

            row["payments"][f"debt_{debt['id']}"] = {
                "payment_amount": _normalize_currency(payment),
                "interest_paid": monthly_interest,
                "remaining_balance": _normalize_currency(debt["balance"]),
            }

        payoff_schedule.append(row)

        total_balance = sum(d["balance"] for d in debt_dicts if d["balance"] > 0)
        if total_balance >= previous_total_balance - 0.01:
            stagnant_periods += 1
        else:
            stagnant_periods = 0
        if stagnant_periods >= 3 or (total_balance > 0 and len(payoff_schedule) >= MAX_SCHEDULE_MONTHS):
            raise ValidationError("Payoff schedule did not converge; payments too low")
        previous_total_balance = total_balance
        current_date = add_months(current_date, 1)

    return payoff_schedule


def schedule_summary(schedule: list[dict]) -> tuple[str | None, float, int]:
    """Return (payoff_date_iso, total_interest, months)."""

    if not schedule:
        return None, 0.0, 0
    payoff_date = schedule[-1].get("date")
    total_interest = 0.0
    for entry in schedule:
        for payment in entry.get("payments", {}).values():
            total_interest += float(payment.get("interest_paid") or 0.0)
    return str(payoff_date) if payoff_date else None, round(total_interest, 2), len(schedule)


def snowball_schedule(
    *, debts: Iterable[DebtAccount], surplus: float, start: Optional[date] = None
) -> list[dict]:
    """Return payoff schedule prioritizing smallest balances first."""
    sorted_debts = sorted(debts, key=lambda d: d.balance)
    return _calculate_schedule(debts=sorted_debts, surplus=surplus, start=start)


def avalanche_schedule(
    *, debts: Iterable[DebtAccount], surplus: float, start: Optional[date] = None
) -> list[dict]:
    """Return payoff schedule prioritizing highest APR first."""
    sorted_debts = sorted(debts, key=lambda d: d.apr, reverse=True)
    return _calculate_schedule(debts=sorted_debts, surplus=surplus, start=start)


def payoff_plan(ctx, *, user_id: int, strategy: str, surplus: float = 0.0) -> dict[str, Any]:
    """Schedule and summary for the user's open, unpaused debts."""

    if strategy not in STRATEGIES:
        raise ValidationError("Invalid debt payoff strategy.")
    if surplus < 0:
        raise ValidationError("Extra payment cannot be negative")
    accounts = [
        DebtAccount.from_debt(debt)
        for debt in ctx.debt_repo.list_open(user_id=user_id)
        if not debt.is_paused and debt.current_balance > 0
    ]
    builder = snowball_schedule if strategy == "snowball" else avalanche_schedule
    schedule = builder(debts=accounts, surplus=surplus)
    payoff_date, total_interest, months = schedule_summary(schedule)
    return {
        "strategy": strategy,
        "order": [{"id": d.id, "name": d.name} for d in (
            sorted(accounts, key=lambda d: d.balance)
            if strategy == "snowball"
            else sorted(accounts, key=lambda d: d.apr, reverse=True)
        )],
        "payoff_date": payoff_date,
        "total_interest": total_interest,
        "months": months,
        "schedule": schedule,
    }


# CRUD


def _clean(data: dict[str, Any], *, partial: bool) -> dict[str, Any]:
    errors: dict[str, list[str]] = {}
    cleaned: dict[str, Any] = {}

    if "name" in data or not partial:
        name = str(data.get("name") or "").strip()
        if not name:
            errors.setdefault("name", []).append("Name is required.")
        elif len(name) > 80:
            errors.setdefault("name", []).append("Name must be 80 characters or fewer.")
        cleaned["name"] = name
    if "debt_type" in data or not partial:
        debt_type = str(data.get("debt_type") or "other").strip().lower()
        if debt_type not in DEBT_TYPES:
            errors.setdefault("debt_type", []).append("Unknown debt type.")
        cleaned["debt_type"] = debt_type
    for key, required in (
        ("initial_amount", True),
        ("current_balance", False),
        ("interest_rate", False),
        ("minimum_payment", False),
    ):
        if key not in data or data.get(key) in (None, ""):
            if required and not partial:
                errors.setdefault(key, []).append("This field is required.")
            continue
        try:
            value = float(data[key])
        except (TypeError, ValueError):
            errors.setdefault(key, []).append("Enter a valid number.")
            continue
        if value < 0:
            errors.setdefault(key, []).append("Must be zero or more.")
        cleaned[key] = value
    if cleaned.get("initial_amount") is not None and cleaned["initial_amount"] <= 0 and "initial_amount" not in errors:
        errors.setdefault("initial_amount", []).append("Amount must be greater than 0.")
    if cleaned.get("interest_rate", 0) > 100:
        errors.setdefault("interest_rate", []).append("APR must be 100% or less.")
    if "payment_day" in data:
        try:
            day = int(data.get("payment_day"))
        except (TypeError, ValueError):
            day = 0
        if not 1 <= day <= 28:
            errors.setdefault("payment_day", []).append("Payment day must be between 1 and 28.")
        cleaned["payment_day"] = day
    if "start_date" in data:
        raw = data.get("start_date")
        try:
            cleaned["start_date"] = date.fromisoformat(str(raw)[:10]) if raw else None
        except ValueError:
            errors.setdefault("start_date", []).append("Enter a valid date.")
    if "is_paused" in data:
        cleaned["is_paused"] = bool(data.get("is_paused"))
    if "account_id" in data:
        raw = data.get("account_id")
        cleaned["account_id"] = int(raw) if raw not in (None, "") else None
    if errors:
        raise ValidationError("Invalid debt", errors)
    return cleaned


def serialize(debt: Debt) -> dict[str, Any]:
    data = debt.model_dump(mode="json")
    data["payoff_months"] = payoff_months(debt.current_balance, debt.interest_rate, debt.minimum_payment)
    data["monthly_interest"] = _monthly_interest(debt.current_balance, debt.interest_rate)
    if debt.initial_amount > 0:
        data["progress_percentage"] = round(
            min((debt.initial_amount - debt.current_balance) / debt.initial_amount * 100, 100.0), 2
        )
    else:
        data["progress_percentage"] = 100.0
    return data


def list_debts(ctx, *, user_id: int) -> list[Debt]:
    return ctx.debt_repo.list_all(user_id=user_id)


def get_debt(ctx, debt_id: int, *, user_id: int) -> Debt:
    debt = ctx.debt_repo.get_by_id(debt_id, user_id=user_id)
    if debt is None:
        raise NotFound("Debt not found")
    return debt


def create_debt(ctx, *, user_id: int, data: dict[str, Any]) -> Debt:
    cleaned = _clean(data, partial=False)
    if cleaned.get("account_id") and ctx.account_repo.get_by_id(cleaned["account_id"], user_id=user_id) is None:
        raise ValidationError("Invalid debt", {"account_id": ["Unknown account."]})
    cleaned.setdefault("current_balance", cleaned["initial_amount"])
    debt = Debt(user_id=user_id, **cleaned)
    debt.is_paid_off = debt.current_balance <= 0
    if debt.is_paid_off:
        debt.paid_off_at = utcnow()
    debt = ctx.debt_repo.create(debt)
    logger.info("Debt created", extra={"user_id": user_id, "debt_id": debt.id})
    return debt


def update_debt(ctx, debt_id: int, *, user_id: int, data: dict[str, Any]) -> Debt:
    debt = get_debt(ctx, debt_id, user_id=user_id)
    cleaned = _clean(data, partial=True)
    if cleaned.get("account_id") and ctx.account_repo.get_by_id(cleaned["account_id"], user_id=user_id) is None:
        raise ValidationError("Invalid debt", {"account_id": ["Unknown account."]})
    for key, value in cleaned.items():
        setattr(debt, key, value)
    if debt.current_balance <= 0 and not debt.is_paid_off:
        debt.is_paid_off = True
        debt.paid_off_at = utcnow()
    elif debt.current_balance > 0:
        debt.is_paid_off = False
        debt.paid_off_at = None
    return ctx.debt_repo.update(debt)


def delete_debt(ctx, debt_id: int, *, user_id: int) -> None:
    if not ctx.debt_repo.delete(debt_id, user_id=user_id):
        raise NotFound("Debt not found")


def add_payment(ctx, debt_id: int, *, user_id: int, amount: float) -> Debt:
    """Apply a payment: balance floors at 0 and the debt is marked paid off when cleared."""

    if amount <= 0:
        raise ValidationError("Payment amount must be greater than 0")
    debt = get_debt(ctx, debt_id, user_id=user_id)
    if debt.is_paid_off:
        raise ValidationError("Debt is already paid off")
    applied = min(amount, debt.current_balance)
    debt.current_balance = _normalize_currency(max(debt.current_balance - amount, 0.0))
    debt.principal_paid = _normalize_currency(debt.principal_paid + applied)
    if debt.current_balance <= 0:
        debt.is_paid_off = True
        debt.paid_off_at = utcnow()
        logger.info("Debt paid off", extra={"user_id": user_id, "debt_id": debt.id})
    return ctx.debt_repo.update(debt)
