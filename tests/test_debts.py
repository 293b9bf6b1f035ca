"""Tests for debt payments, amortization and payoff strategies (snowball/avalanche)."""

from __future__ import annotations

from datetime import date

import pytest

from spare.errors import ValidationError
from spare.models import Debt
from spare.services import debts as debt_service
from spare.services.debts import (
    DebtAccount,
    amortized_payment,
    avalanche_schedule,
    payment_schedule,
    payoff_months,
    schedule_summary,
    snowball_schedule,
)
from tests.conftest import assert_float_equal


def _debt(balance=1000.0, apr=12.0, minimum=50.0, payment_day=15) -> Debt:
    return Debt(
        user_id=1,
        name="Card",
        initial_amount=balance,
        current_balance=balance,
        interest_rate=apr,
        minimum_payment=minimum,
        payment_day=payment_day,
    )


class TestCalculators:
    def test_amortized_payment_without_interest(self):
        assert_float_equal(amortized_payment(1200, 0, 12), 100.0)

    def test_amortized_payment_with_interest(self):
        # 1% monthly over 12 months
        assert_float_equal(amortized_payment(10000, 12, 12), 888.49)

    def test_amortized_payment_rejects_zero_term(self):
        with pytest.raises(ValidationError):
            amortized_payment(1000, 5, 0)

    def test_payoff_months_without_interest(self):
        assert payoff_months(1200, 0, 100) == 12

    def test_payoff_months_never_when_payment_below_interest(self):
        assert payoff_months(1000, 12, 10) is None

    def test_payoff_months_cleared_balance(self):
        assert payoff_months(0, 20, 50) == 0


class TestPaymentSchedule:
    def test_first_row_splits_interest_and_principal(self):
        schedule = payment_schedule(_debt(), today=date(2024, 1, 10))

        first = schedule[0]
        assert first.due_date == date(2024, 1, 15)
        assert_float_equal(first.interest, 10.0)
        assert_float_equal(first.payment, 50.0)
        assert_float_equal(first.principal, 40.0)
        assert_float_equal(first.remaining_balance, 960.0)
        assert schedule[-1].remaining_balance == 0.0

    def test_due_date_rolls_to_next_month_when_passed(self):
        schedule = payment_schedule(_debt(), months=1, today=date(2024, 1, 20))
        assert schedule[0].due_date == date(2024, 2, 15)

    def test_minimum_below_interest_still_reduces_balance(self):
        schedule = payment_schedule(_debt(apr=24.0, minimum=5.0), months=3, today=date(2024, 1, 1))

        assert len(schedule) == 3
        assert_float_equal(schedule[0].payment, 21.0)
        assert schedule[1].remaining_balance < schedule[0].remaining_balance

    def test_paid_off_debt_has_empty_schedule(self):
        assert payment_schedule(_debt(balance=0)) == []

    def test_schedule_that_never_clears_is_rejected(self):
        debt = _debt(balance=2_000_000, apr=0.0, minimum=0.0)

        with pytest.raises(ValidationError):
            payment_schedule(debt, today=date(2024, 1, 1))

    def test_preview_is_capped(self):
        debt = _debt(balance=2_000_000, apr=0.0, minimum=0.0)

        schedule = payment_schedule(debt, months=5000, today=date(2024, 1, 1))

        assert len(schedule) == debt_service.MAX_SCHEDULE_MONTHS
        assert_float_equal(schedule[-1].remaining_balance, 2_000_000 - debt_service.MAX_SCHEDULE_MONTHS)


class TestPayoffStrategies:
    """Snowball orders by balance, avalanche by APR."""

    def _debts(self):
        small_low_apr = DebtAccount(id=1, balance=500.0, apr=10.0, minimum_payment=25.0)
        large_high_apr = DebtAccount(id=2, balance=3000.0, apr=25.0, minimum_payment=90.0)
        return [large_high_apr, small_low_apr]

    def test_snowball_pays_smallest_balance_first(self):
        schedule = snowball_schedule(debts=self._debts(), surplus=100.0, start=date(2024, 1, 1))

        first_row = schedule[0]["payments"]
        assert list(first_row)[0] == "debt_1"
        assert_float_equal(first_row["debt_1"]["payment_amount"], 125.0)
        assert_float_equal(first_row["debt_2"]["payment_amount"], 90.0)

    def test_avalanche_pays_highest_apr_first(self):
        schedule = avalanche_schedule(debts=self._debts(), surplus=100.0, start=date(2024, 1, 1))

        first_row = schedule[0]["payments"]
        assert list(first_row)[0] == "debt_2"
        assert_float_equal(first_row["debt_2"]["payment_amount"], 190.0)

    def test_avalanche_costs_less_interest(self):
        snowball = snowball_schedule(debts=self._debts(), surplus=100.0, start=date(2024, 1, 1))
        avalanche = avalanche_schedule(debts=self._debts(), surplus=100.0, start=date(2024, 1, 1))

        _, snowball_interest, _ = schedule_summary(snowball)
        _, avalanche_interest, _ = schedule_summary(avalanche)
        assert avalanche_interest <= snowball_interest

    def test_schedule_ends_with_every_balance_cleared(self):
        schedule = snowball_schedule(debts=self._debts(), surplus=0.0, start=date(2024, 1, 1))
        last = schedule[-1]["payments"]
        assert all(entry["remaining_balance"] == 0.0 for entry in last.values())

    def test_payoff_that_only_creeps_is_rejected(self):
        creeping = DebtAccount(id=1, balance=2_000_000.0, apr=0.0, minimum_payment=0.0)

        with pytest.raises(ValidationError):
            avalanche_schedule(debts=[creeping], surplus=0.0, start=date(2024, 1, 1))

    def test_empty_debts_returns_empty_schedule(self):
        assert snowball_schedule(debts=[], surplus=0) == []
        assert schedule_summary([]) == (None, 0.0, 0)

    def test_payoff_plan_rejects_unknown_strategy(self, ctx, user):
        with pytest.raises(ValidationError):
            debt_service.payoff_plan(ctx, user_id=user.id, strategy="fastest")

    def test_payoff_plan_rejects_negative_surplus(self, ctx, user):
        with pytest.raises(ValidationError):
            debt_service.payoff_plan(ctx, user_id=user.id, strategy="snowball", surplus=-5)

    def test_payoff_plan_orders_user_debts(self, ctx, user):
        debt_service.create_debt(
            ctx,
            user_id=user.id,
            data={"name": "Car", "initial_amount": 8000, "interest_rate": 6, "minimum_payment": 250},
        )
        debt_service.create_debt(
            ctx,
            user_id=user.id,
            data={"name": "Card", "initial_amount": 900, "interest_rate": 22, "minimum_payment": 40},
        )

        plan = debt_service.payoff_plan(ctx, user_id=user.id, strategy="snowball", surplus=50)

        assert [entry["name"] for entry in plan["order"]] == ["Card", "Car"]
        assert plan["months"] == len(plan["schedule"])
        assert plan["total_interest"] > 0


class TestDebtRecords:
    def test_current_balance_defaults_to_initial_amount(self, ctx, user):
        debt = debt_service.create_debt(
            ctx, user_id=user.id, data={"name": "Loan", "initial_amount": 1500}
        )
        assert debt.current_balance == 1500
        assert debt.is_paid_off is False

    def test_initial_amount_required(self, ctx, user):
        with pytest.raises(ValidationError) as excinfo:
            debt_service.create_debt(ctx, user_id=user.id, data={"name": "Loan"})
        assert "initial_amount" in excinfo.value.errors

    def test_apr_above_hundred_rejected(self, ctx, user):
        with pytest.raises(ValidationError) as excinfo:
            debt_service.create_debt(
                ctx, user_id=user.id, data={"name": "Loan", "initial_amount": 100, "interest_rate": 140}
            )
        assert "interest_rate" in excinfo.value.errors

    def test_overpayment_floors_balance_and_marks_paid_off(self, ctx, user):
        debt = debt_service.create_debt(
            ctx,
            user_id=user.id,
            data={"name": "Loan", "initial_amount": 1000, "current_balance": 300},
        )

        debt = debt_service.add_payment(ctx, debt.id, user_id=user.id, amount=500)

        assert debt.current_balance == 0.0
        assert_float_equal(debt.principal_paid, 300.0)
        assert debt.is_paid_off is True
        assert debt.paid_off_at is not None

    def test_payment_on_paid_off_debt_rejected(self, ctx, user):
        debt = debt_service.create_debt(
            ctx, user_id=user.id, data={"name": "Loan", "initial_amount": 100}
        )
        debt_service.add_payment(ctx, debt.id, user_id=user.id, amount=100)

        with pytest.raises(ValidationError):
            debt_service.add_payment(ctx, debt.id, user_id=user.id, amount=10)

    def test_non_positive_payment_rejected(self, ctx, user):
        debt = debt_service.create_debt(
            ctx, user_id=user.id, data={"name": "Loan", "initial_amount": 100}
        )
        with pytest.raises(ValidationError):
            debt_service.add_payment(ctx, debt.id, user_id=user.id, amount=0)

    def test_serialize_reports_progress(self):
        debt = _debt(balance=250)
        debt.initial_amount = 1000
        data = debt_service.serialize(debt)
        assert_float_equal(data["progress_percentage"], 75.0)
        assert_float_equal(data["monthly_interest"], 2.5)
