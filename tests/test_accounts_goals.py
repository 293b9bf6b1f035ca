"""Tests for account management and savings goals."""

from __future__ import annotations

from datetime import date

import pytest

from spare.errors import Forbidden, ValidationError
from spare.models import Goal
from spare.services import accounts as account_service
from spare.services import goals as goal_service
from tests.conftest import assert_float_equal


class TestAccounts:
    def test_first_account_becomes_default(self, ctx, user):
        first = account_service.create_account(ctx, user_id=user.id, data={"name": "Checking"})
        second = account_service.create_account(
            ctx, user_id=user.id, data={"name": "Savings", "account_type": "savings"}
        )

        assert first.is_default is True
        assert second.is_default is False

    def test_free_plan_account_limit(self, ctx, user):
        account_service.create_account(ctx, user_id=user.id, data={"name": "One"})
        account_service.create_account(ctx, user_id=user.id, data={"name": "Two"})

        with pytest.raises(Forbidden) as excinfo:
            account_service.create_account(ctx, user_id=user.id, data={"name": "Three"})
        assert excinfo.value.payload["upgrade_required"] is True

    def test_unknown_account_type_rejected(self, ctx, user):
        with pytest.raises(ValidationError) as excinfo:
            account_service.create_account(
                ctx, user_id=user.id, data={"name": "Odd", "account_type": "piggy"}
            )
        assert "account_type" in excinfo.value.errors

    def test_delete_with_transactions_needs_destination(self, ctx, user, account_factory, transaction_factory):
        checking = account_factory("Checking")
        account_factory("Savings")
        transaction_factory(10, checking.id)

        with pytest.raises(ValidationError):
            account_service.delete_account(ctx, checking.id, user_id=user.id)

    def test_delete_moves_transactions_and_reassigns_default(
        self, ctx, user, account_factory, transaction_factory
    ):
        checking = account_factory("Checking")
        savings = account_factory("Savings")
        transaction_factory(10, checking.id)
        transaction_factory(15, checking.id)

        result = account_service.delete_account(
            ctx, checking.id, user_id=user.id, transfer_to_account_id=savings.id
        )

        assert result == {"deleted": checking.id, "moved_transactions": 2}
        remaining = ctx.account_repo.get_by_id(savings.id, user_id=user.id)
        assert remaining.is_default is True
        assert len(ctx.transaction_repo.list_for_account(savings.id, user_id=user.id)) == 2


class TestEmergencyFundPlan:
    def test_no_data_returns_none(self):
        assert (
            goal_service.emergency_fund_plan(monthly_income=0, monthly_expenses=0, current_balance=0)
            is None
        )

    def test_target_is_six_months_of_expenses(self):
        plan = goal_service.emergency_fund_plan(
            monthly_income=5000, monthly_expenses=3000, current_balance=0
        )
        assert_float_equal(plan["target_amount"], 18000)
        # 18000 / 30 months = 600 per month = 12% of income
        assert_float_equal(plan["income_percentage"], 12.0)

    def test_without_expenses_uses_eighty_percent_of_income(self):
        plan = goal_service.emergency_fund_plan(
            monthly_income=1000, monthly_expenses=0, current_balance=0
        )
        assert_float_equal(plan["target_amount"], 4800)
        assert_float_equal(plan["income_percentage"], 16.0)

    def test_percentage_clamped_to_minimum(self):
        plan = goal_service.emergency_fund_plan(
            monthly_income=10000, monthly_expenses=1000, current_balance=0
        )
        assert_float_equal(plan["income_percentage"], 5.0)

    def test_percentage_clamped_to_maximum(self):
        plan = goal_service.emergency_fund_plan(
            monthly_income=1000, monthly_expenses=2000, current_balance=0
        )
        assert_float_equal(plan["income_percentage"], 20.0)

    def test_nearly_funded_drops_to_zero(self):
        plan = goal_service.emergency_fund_plan(
            monthly_income=4000, monthly_expenses=1000, current_balance=5800
        )
        assert plan["income_percentage"] == 0.0

    def test_update_emergency_fund_creates_goal(self, ctx, user, account_factory, transaction_factory):
        checking = account_factory()
        transaction_factory(4000, checking.id, tx_type="income", description="Payroll")
        transaction_factory(400, checking.id, description="Groceries")

        goal = goal_service.update_emergency_fund(ctx, user_id=user.id)

        # four-month averages: income 1000, expenses 100
        assert goal.name == "Emergency Fund"
        assert goal.is_emergency_fund is True
        assert_float_equal(goal.target_amount, 600)
        assert_float_equal(goal.income_percentage, 5.0)


class TestGoalMath:
    def test_income_percentage_for_months(self):
        assert_float_equal(goal_service.income_percentage_for_months(1200, 200, 10, 2000), 5.0)

    def test_income_percentage_without_basis_is_zero(self):
        assert goal_service.income_percentage_for_months(1200, 0, 10, 0) == 0.0

    def test_goal_progress(self):
        goal = Goal(user_id=1, name="Trip", target_amount=1000, current_balance=250, income_percentage=10)
        progress = goal_service.goal_progress(goal, 1000, today=date(2024, 1, 15))

        assert_float_equal(progress["progress_percentage"], 25.0)
        assert_float_equal(progress["monthly_contribution"], 100.0)
        assert progress["months_to_goal"] == 8
        assert progress["eta"] == "2024-09-15"

    def test_paused_goal_has_no_eta(self):
        goal = Goal(
            user_id=1, name="Trip", target_amount=1000, current_balance=0, income_percentage=10, is_paused=True
        )
        progress = goal_service.goal_progress(goal, 1000)
        assert progress["months_to_goal"] is None
        assert progress["eta"] is None


class TestGoalAllocation:
    def test_total_allocation_capped_at_hundred(self, ctx, user):
        goal_service.create_goal(
            ctx, user_id=user.id, data={"name": "House", "target_amount": 50000, "income_percentage": 60}
        )

        with pytest.raises(ValidationError) as excinfo:
            goal_service.create_goal(
                ctx, user_id=user.id, data={"name": "Car", "target_amount": 8000, "income_percentage": 50}
            )
        assert "110.0%" in excinfo.value.message

    def test_paused_goals_do_not_count(self, ctx, user):
        goal_service.create_goal(
            ctx,
            user_id=user.id,
            data={"name": "House", "target_amount": 50000, "income_percentage": 80, "is_paused": True},
        )
        goal = goal_service.create_goal(
            ctx, user_id=user.id, data={"name": "Car", "target_amount": 8000, "income_percentage": 50}
        )
        assert goal.income_percentage == 50

    def test_target_amount_required(self, ctx, user):
        with pytest.raises(ValidationError) as excinfo:
            goal_service.create_goal(ctx, user_id=user.id, data={"name": "Nothing"})
        assert "target_amount" in excinfo.value.errors

    def test_top_up_completes_and_withdraw_reopens(self, ctx, user):
        goal = goal_service.create_goal(
            ctx, user_id=user.id, data={"name": "Bike", "target_amount": 500, "current_balance": 400}
        )

        goal = goal_service.top_up(ctx, goal.id, user_id=user.id, amount=150)
        assert goal.is_completed is True
        assert goal.completed_at is not None

        goal = goal_service.withdraw(ctx, goal.id, user_id=user.id, amount=1000)
        assert goal.current_balance == 0
        assert goal.is_completed is False
        assert goal.completed_at is None

    def test_top_up_requires_positive_amount(self, ctx, user):
        goal = goal_service.create_goal(ctx, user_id=user.id, data={"name": "Bike", "target_amount": 500})
        with pytest.raises(ValidationError):
            goal_service.top_up(ctx, goal.id, user_id=user.id, amount=0)
