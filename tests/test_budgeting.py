"""Tests for budgets, variances, cash flow and budget rules."""

from __future__ import annotations

from datetime import date

import pytest

from spare.errors import Conflict, ValidationError
from spare.models import Transaction
from spare.services import budget_rules
from spare.services import budgeting as budget_service
from spare.services.budget_rules import GroupMapping
from tests.conftest import assert_float_equal


class InMemoryBudgetSource:
    def __init__(self, planned, actual):
        self._planned = planned
        self._actual = actual

    def planned_amounts(self, *, period):
        return self._planned.items()

    def actual_spend(self, *, period):
        return self._actual.items()


class TestBudgetStatus:
    @pytest.mark.parametrize(
        ("spent", "amount", "expected"),
        [
            (50, 100, (50.0, "ok")),
            (80, 100, (80.0, "warning")),
            (100, 100, (100.0, "warning")),
            (120, 100, (120.0, "over")),
            (10, 0, (100.0, "warning")),
            (0, 0, (0.0, "ok")),
        ],
    )
    def test_thresholds(self, spent, amount, expected):
        assert budget_service.budget_status(spent, amount) == expected


class TestVariances:
    def test_compute_variances_includes_unbudgeted_spend(self):
        source = InMemoryBudgetSource({1: 200.0, 2: 50.0}, {2: 75.5, 3: 12.0})

        variances = budget_service.compute_variances(repository=source, period=date(2024, 3, 1))

        assert [v.category_id for v in variances] == [1, 2, 3]
        assert_float_equal(variances[0].delta, -200.0)
        assert_float_equal(variances[1].delta, 25.5)
        assert variances[2].planned == 0.0

    def test_rolling_cash_flow_skips_transfers(self):
        rows = [
            Transaction(user_id=1, account_id=1, occurred_on=date(2024, 1, 1), tx_type="income", amount=1000),
            Transaction(user_id=1, account_id=1, occurred_on=date(2024, 1, 2), tx_type="expense", amount=200),
            Transaction(user_id=1, account_id=1, occurred_on=date(2024, 1, 2), tx_type="transfer", amount=500),
            Transaction(user_id=1, account_id=1, occurred_on=date(2024, 1, 3), tx_type="expense", amount=50),
        ]

        flow = budget_service.rolling_cash_flow(transactions=rows)

        assert [point["balance"] for point in flow] == [1000.0, 800.0, 750.0]
        assert budget_service.rolling_cash_flow(transactions=rows, window_days=1) == [
            {"date": "2024-01-03", "net": -50.0, "balance": 750.0}
        ]


class TestBudgetRecords:
    def test_duplicate_scope_conflicts(self, ctx, user, category_id):
        groceries = category_id("Groceries")
        budget_service.create_budget(
            ctx, user_id=user.id, data={"category_id": groceries, "amount": 400, "period": "2024-05"}
        )

        with pytest.raises(Conflict):
            budget_service.create_budget(
                ctx, user_id=user.id, data={"category_id": groceries, "amount": 300, "period": "2024-05"}
            )

    def test_amount_must_be_positive(self, ctx, user, category_id):
        with pytest.raises(ValidationError) as excinfo:
            budget_service.create_budget(
                ctx, user_id=user.id, data={"category_id": category_id("Groceries"), "amount": 0}
            )
        assert "amount" in excinfo.value.errors

    def test_list_budgets_reports_spend_and_status(
        self, ctx, user, category_id, account_factory, transaction_factory
    ):
        groceries = category_id("Groceries")
        checking = account_factory()
        today = date.today()
        budget_service.create_budget(
            ctx,
            user_id=user.id,
            data={"category_id": groceries, "amount": 200, "period": today.strftime("%Y-%m")},
        )
        transaction_factory(170, checking.id, category_id=groceries, occurred_on=today)

        rows = budget_service.list_budgets(ctx, user_id=user.id, period=today)

        assert len(rows) == 1
        assert rows[0]["category_name"] == "Groceries"
        assert_float_equal(rows[0]["spent"], 170.0)
        assert_float_equal(rows[0]["remaining"], 30.0)
        assert rows[0]["status"] == "warning"

    def test_copy_budgets_skips_existing(self, ctx, user, category_id):
        groceries = category_id("Groceries")
        rent = category_id("Rent")
        for cat, amount in ((groceries, 400), (rent, 1500)):
            budget_service.create_budget(
                ctx, user_id=user.id, data={"category_id": cat, "amount": amount, "period": "2024-05"}
            )
        budget_service.create_budget(
            ctx, user_id=user.id, data={"category_id": rent, "amount": 1600, "period": "2024-06"}
        )

        created = budget_service.copy_budgets(
            ctx, user_id=user.id, from_period=date(2024, 5, 1), to_period=date(2024, 6, 1)
        )

        assert [b.category_id for b in created] == [groceries]

    def test_copy_to_same_month_rejected(self, ctx, user):
        with pytest.raises(ValidationError):
            budget_service.copy_budgets(
                ctx, user_id=user.id, from_period=date(2024, 5, 1), to_period=date(2024, 5, 20)
            )

    def test_generate_from_rule_splits_group_share(self, ctx, user, category_id):
        result = budget_service.generate_from_rule(
            ctx, user_id=user.id, monthly_income=5000, rule_id="50_30_20", period=date(2024, 7, 1)
        )

        amounts = {b.category_id: b.amount for b in result["budgets"]}
        # needs: 2500 across 7 groups, Food has two categories
        assert_float_equal(amounts[category_id("Groceries")], 178.57)
        # future: 1000 across the three savings categories
        assert_float_equal(amounts[category_id("Retirement")], 333.33)
        assert result["rule"]["id"] == "50_30_20"

    def test_generate_from_rule_requires_income(self, ctx, user):
        with pytest.raises(ValidationError):
            budget_service.generate_from_rule(ctx, user_id=user.id, monthly_income=0)


class TestBudgetRules:
    def test_get_rule_is_case_insensitive(self):
        assert budget_rules.get_rule("pay_yourself_first").id == "PAY_YOURSELF_FIRST"

    def test_unknown_rule(self):
        with pytest.raises(ValidationError):
            budget_rules.get_rule("70_20_10")

    @pytest.mark.parametrize(
        ("income", "city_cost", "expected"),
        [
            (5000, "high", "40_30_20_10"),
            (12000, None, "PAY_YOURSELF_FIRST"),
            (2500, None, "60_FIXED"),
            (5000, "average", "50_30_20"),
        ],
    )
    def test_suggest_rule(self, income, city_cost, expected):
        assert budget_rules.suggest_rule(income, city_cost)["rule"]["id"] == expected

    def test_calculate_budget_amounts_splits_evenly(self):
        rule = budget_rules.get_rule("50_30_20")
        mappings = [
            GroupMapping(1, "Housing", "needs"),
            GroupMapping(2, "Food", "needs"),
            GroupMapping(3, "Shopping", "lifestyle"),
        ]

        amounts = budget_rules.calculate_budget_amounts(rule, 4000, mappings)

        assert amounts == [
            {"group_id": 1, "amount": 1000.0, "rule_category": "needs"},
            {"group_id": 2, "amount": 1000.0, "rule_category": "needs"},
            {"group_id": 3, "amount": 1200.0, "rule_category": "lifestyle"},
        ]

    def test_validate_against_rule_severity(self):
        rule = budget_rules.get_rule("50_30_20")
        mappings = [
            GroupMapping(1, "Housing", "needs"),
            GroupMapping(2, "Shopping", "lifestyle"),
            GroupMapping(3, "Savings & Investments", "future"),
        ]
        # needs 57% (warning), lifestyle 30% (fine), future 13% (warning)
        result = budget_rules.validate_against_rule(rule, 1000, {1: 570, 2: 300, 3: 130}, mappings)

        severities = {alert["category"]: alert["severity"] for alert in result["alerts"]}
        assert result["is_valid"] is False
        assert severities == {"needs": "warning", "future": "warning"}

    def test_validate_against_rule_critical(self):
        rule = budget_rules.get_rule("50_30_20")
        mappings = [GroupMapping(1, "Housing", "needs")]
        result = budget_rules.validate_against_rule(rule, 1000, {1: 500}, mappings)

        severities = {alert["category"]: alert["severity"] for alert in result["alerts"]}
        assert severities == {"lifestyle": "critical", "future": "critical"}

    def test_validate_without_income_is_valid(self):
        rule = budget_rules.get_rule("50_30_20")
        assert budget_rules.validate_against_rule(rule, 0, {1: 500}, []) == {"is_valid": True, "alerts": []}
