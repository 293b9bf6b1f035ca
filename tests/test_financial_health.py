"""Tests for the Spare Score and tax estimation."""

from __future__ import annotations

from datetime import date

import pytest

from spare.errors import ValidationError
from spare.services import financial_health as health
from spare.services import taxes
from spare.services.taxes import Bracket, progressive_tax
from tests.conftest import assert_float_equal


class TestPenalties:
    @pytest.mark.parametrize(
        ("income", "expenses", "expected"),
        [
            (1000, 800, 0),
            (1000, 900, -5),
            (1000, 1000, -10),
            (1000, 1100, -20),
            (1000, 1500, -30),
            (0, 100, -40),
            (0, 0, 0),
        ],
    )
    def test_cash_flow(self, income, expenses, expected):
        assert health.penalty_cash_flow(income, expenses) == expected

    @pytest.mark.parametrize(("months", "expected"), [(6, 0), (3, -5), (1, -10), (0.5, -15)])
    def test_emergency_fund(self, months, expected):
        assert health.penalty_emergency_fund(months) == expected

    @pytest.mark.parametrize(("mdlr", "expected"), [(10, 0), (20, -8), (36, -8), (40, -20)])
    def test_debt(self, mdlr, expected):
        assert health.penalty_debt(mdlr) == expected

    @pytest.mark.parametrize(("rate", "expected"), [(25, 0), (15, -5), (0, -10), (-5, -15)])
    def test_savings(self, rate, expected):
        assert health.penalty_savings(rate) == expected

    @pytest.mark.parametrize(
        ("score", "label"),
        [(85, "Excellent"), (70, "Good"), (55, "Fair"), (40, "Poor"), (39, "Critical")],
    )
    def test_classify(self, score, label):
        assert health.classify(score) == label

    def test_smooth_limits_drop(self):
        assert health.smooth(40, 80) == 65
        assert health.smooth(90, 80) == 90
        assert health.smooth(40, None) == 40

    def test_clamp_score(self):
        assert health.clamp_score(-12) == 0
        assert health.clamp_score(130) == 100


class TestSpareScore:
    def test_empty_month(self, ctx, user):
        result = health.calculate(ctx, user_id=user.id, period=date(2024, 3, 1))

        assert result.is_empty_state is True
        assert result.score == 100
        assert result.classification == "Excellent"
        assert result.alerts[0]["id"] == "no_transactions"

    def test_healthy_month(self, ctx, user, account_factory, transaction_factory):
        checking = account_factory()
        transaction_factory(5000, checking.id, tx_type="income", occurred_on=date(2024, 3, 1))
        transaction_factory(3000, checking.id, occurred_on=date(2024, 3, 5))

        result = health.calculate(ctx, user_id=user.id, period=date(2024, 3, 1))

        # account balance 2000 covers 0.67 months: only the emergency fund penalty applies
        assert result.score == 85
        assert result.classification == "Excellent"
        # empty February: savings and emergency fund penalties only
        assert result.last_month_score == 75
        assert result.income_is_after_tax is False
        assert_float_equal(result.savings_rate, 40.0)
        assert any(alert["id"] == "low_emergency_fund" for alert in result.alerts)

    def test_drop_is_smoothed_against_last_month(self, ctx, user, account_factory, transaction_factory):
        checking = account_factory()
        transaction_factory(5000, checking.id, tx_type="income", occurred_on=date(2024, 2, 1))
        transaction_factory(1000, checking.id, occurred_on=date(2024, 2, 3))
        transaction_factory(1000, checking.id, tx_type="income", occurred_on=date(2024, 3, 1))
        transaction_factory(1500, checking.id, occurred_on=date(2024, 3, 3))

        result = health.calculate(ctx, user_id=user.id, period=date(2024, 3, 1))

        # raw 45 this month, 90 last month: the score may only fall 15 points
        assert result.last_month_score == 90
        assert result.score == 75
        assert result.classification == "Good"
        assert any(alert["id"] == "expenses_exceeding_income" for alert in result.alerts)

    def test_empty_last_month_still_smooths(self, ctx, user, account_factory, transaction_factory):
        checking = account_factory()
        transaction_factory(1000, checking.id, tx_type="income", occurred_on=date(2024, 3, 1))
        transaction_factory(1500, checking.id, occurred_on=date(2024, 3, 3))

        result = health.calculate(ctx, user_id=user.id, period=date(2024, 3, 1))

        # raw 40 this month, 75 for an empty February
        assert result.last_month_score == 75
        assert result.score == 60

    def test_emergency_goal_balance_is_used(self, ctx, user, account_factory, transaction_factory):
        from spare.models import Goal

        checking = account_factory()
        ctx.goal_repo.create(
            Goal(
                user_id=user.id,
                name="Emergency Fund",
                target_amount=20000,
                current_balance=18000,
                is_emergency_fund=True,
            )
        )
        transaction_factory(5000, checking.id, tx_type="income", occurred_on=date(2024, 3, 1))
        transaction_factory(3000, checking.id, occurred_on=date(2024, 3, 5))

        result = health.calculate(ctx, user_id=user.id, period=date(2024, 3, 1))

        assert_float_equal(result.emergency_fund_months, 6.0)
        assert result.score == 100

    def test_debt_load_penalty(self, ctx, user, account_factory, transaction_factory):
        from spare.services import debts as debt_service

        checking = account_factory(initial_balance=30000)
        debt_service.create_debt(
            ctx,
            user_id=user.id,
            data={"name": "Mortgage", "initial_amount": 200000, "minimum_payment": 2000},
        )
        transaction_factory(5000, checking.id, tx_type="income", occurred_on=date(2024, 3, 1))
        transaction_factory(3000, checking.id, occurred_on=date(2024, 3, 5))

        result = health.calculate(ctx, user_id=user.id, period=date(2024, 3, 1))

        # 2000 / 5000 = 40% monthly debt load
        assert result.debt_exposure == "High"
        assert result.score == 80


class TestTaxes:
    def test_progressive_tax(self):
        brackets = [Bracket(0, 10000, 0.1), Bracket(10000, None, 0.2)]
        tax, marginal = progressive_tax(25000, brackets)
        assert_float_equal(tax, 4000.0)
        assert marginal == 0.2

    def test_zero_income(self):
        assert progressive_tax(0, [Bracket(0, None, 0.1)]) == (0.0, 0.0)

    def test_us_estimate_with_state(self, ctx):
        result = taxes.estimate(ctx, annual_income=60000, country="US", region="CA", year=2024)

        assert result["tax_year"] == 2024
        assert_float_equal(result["federal_tax"], 8253.0)
        assert_float_equal(result["regional_tax"], 7980.0)
        assert_float_equal(result["marginal_rate"], 35.3)
        assert_float_equal(result["monthly_after_tax"], round((60000 - 8253 - 7980) / 12, 2))

    def test_no_state_tax(self, ctx):
        result = taxes.estimate(ctx, annual_income=60000, country="US", region="FL", year=2024)
        assert result["regional_tax"] == 0.0

    def test_seeded_brackets_match_reference(self, ctx):
        taxes.seed_tax_data(ctx)
        result = taxes.estimate(ctx, annual_income=60000, country="us", year=2024)
        assert_float_equal(result["federal_tax"], 8253.0)
        assert result["country"] == "US"

    def test_unsupported_country(self, ctx):
        with pytest.raises(ValidationError):
            taxes.estimate(ctx, annual_income=50000, country="MX")

    def test_negative_income(self, ctx):
        with pytest.raises(ValidationError):
            taxes.estimate(ctx, annual_income=-1)
