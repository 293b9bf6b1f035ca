"""Tests for recurring bills and planned payments."""

from __future__ import annotations

from datetime import date

import pytest

from spare.errors import ValidationError
from spare.infra.repositories.recurring import PlannedPaymentQuery
from spare.services import debts as debt_service
from spare.services import planned_payments as planned_service
from spare.services import service_subscriptions as bills
from tests.conftest import assert_float_equal


class TestBillingCalendar:
    @pytest.mark.parametrize(
        ("frequency", "expected"),
        [("weekly", 43.33), ("biweekly", 21.67), ("monthly", 10.0), ("quarterly", 3.33), ("yearly", 0.83)],
    )
    def test_monthly_equivalent(self, frequency, expected):
        assert_float_equal(bills.monthly_equivalent(10, frequency), expected)

    def test_advance_date_clamps_month_end(self):
        assert bills.advance_date(date(2024, 1, 31), "monthly") == date(2024, 2, 29)
        assert bills.advance_date(date(2024, 1, 31), "biweekly") == date(2024, 2, 14)

    def test_unknown_frequency(self):
        with pytest.raises(ValueError):
            bills.advance_date(date(2024, 1, 1), "daily")

    def test_resume_rolls_billing_date_forward(self, ctx, user):
        sub = bills.create_subscription(
            ctx,
            user_id=user.id,
            data={"service_name": "Gym", "amount": 40, "next_billing_date": "2024-01-15"},
        )
        bills.set_active(ctx, sub.id, user_id=user.id, active=False)

        resumed = bills.set_active(ctx, sub.id, user_id=user.id, active=True, today=date(2024, 3, 20))

        assert resumed.is_active is True
        assert resumed.next_billing_date == date(2024, 4, 15)

    def test_advance_billing_dates(self, ctx, user):
        sub = bills.create_subscription(
            ctx,
            user_id=user.id,
            data={"service_name": "Music", "amount": 11, "next_billing_date": "2024-03-01"},
        )

        assert bills.advance_billing_dates(ctx, today=date(2024, 3, 5)) == 1
        assert bills.get_subscription(ctx, sub.id, user_id=user.id).next_billing_date == date(2024, 4, 1)

    def test_monthly_total_skips_paused(self, ctx, user):
        bills.create_subscription(
            ctx, user_id=user.id, data={"service_name": "Video", "amount": 15, "billing_frequency": "monthly"}
        )
        paused = bills.create_subscription(
            ctx, user_id=user.id, data={"service_name": "News", "amount": 120, "billing_frequency": "yearly"}
        )
        bills.set_active(ctx, paused.id, user_id=user.id, active=False)

        result = bills.list_subscriptions(ctx, user_id=user.id)

        assert result["monthly_total"] == 15.0
        assert {item["monthly_amount"] for item in result["items"]} == {15.0, 10.0}

    def test_invalid_subscription(self, ctx, user):
        with pytest.raises(ValidationError) as excinfo:
            bills.create_subscription(
                ctx, user_id=user.id, data={"service_name": "", "amount": -4, "billing_frequency": "daily"}
            )
        assert set(excinfo.value.errors) == {"service_name", "amount", "billing_frequency"}


class TestPlannedPayments:
    def test_account_required(self, ctx, user):
        with pytest.raises(ValidationError) as excinfo:
            planned_service.create_planned(ctx, user_id=user.id, data={"occurs_on": "2024-05-01", "amount": 10})
        assert "account_id" in excinfo.value.errors

    def test_transfer_needs_destination(self, ctx, user, account_factory):
        checking = account_factory()
        with pytest.raises(ValidationError):
            planned_service.create_planned(
                ctx,
                user_id=user.id,
                data={"occurs_on": "2024-05-01", "amount": 10, "tx_type": "transfer", "account_id": checking.id},
            )

    def test_mark_as_paid_creates_transaction(self, ctx, user, account_factory):
        checking = account_factory()
        payment = planned_service.create_planned(
            ctx,
            user_id=user.id,
            data={"occurs_on": "2024-05-01", "amount": 75, "account_id": checking.id, "description": "Insurance"},
        )

        paid = planned_service.mark_as_paid(ctx, payment.id, user_id=user.id)

        assert paid.status == "paid"
        tx = ctx.transaction_repo.get_by_id(paid.linked_transaction_id, user_id=user.id)
        assert tx.amount == 75
        assert tx.occurred_on == date(2024, 5, 1)
        assert tx.description == "Insurance"
        with pytest.raises(ValidationError):
            planned_service.mark_as_paid(ctx, payment.id, user_id=user.id)

    def test_paid_transfer_creates_pair(self, ctx, user, account_factory):
        checking = account_factory("Checking")
        savings = account_factory("Savings", account_type="savings")
        payment = planned_service.create_planned(
            ctx,
            user_id=user.id,
            data={
                "occurs_on": "2024-05-01",
                "amount": 300,
                "tx_type": "transfer",
                "account_id": checking.id,
                "to_account_id": savings.id,
            },
        )

        planned_service.mark_as_paid(ctx, payment.id, user_id=user.id, paid_on=date(2024, 5, 3))

        [incoming] = ctx.transaction_repo.list_for_account(savings.id, user_id=user.id)
        assert incoming.tx_type == "transfer"
        assert incoming.occurred_on == date(2024, 5, 3)

    def test_paying_debt_payment_reduces_balance(self, ctx, user, account_factory):
        checking = account_factory()
        debt = debt_service.create_debt(ctx, user_id=user.id, data={"name": "Loan", "initial_amount": 1000})
        payment = planned_service.create_planned(
            ctx,
            user_id=user.id,
            data={
                "occurs_on": "2024-05-01",
                "amount": 250,
                "account_id": checking.id,
                "debt_id": debt.id,
                "source": "debt",
            },
        )

        planned_service.mark_as_paid(ctx, payment.id, user_id=user.id)

        assert ctx.debt_repo.get_by_id(debt.id, user_id=user.id).current_balance == 750

    def test_skip_and_invalid_status(self, ctx, user, account_factory):
        checking = account_factory()
        payment = planned_service.create_planned(
            ctx, user_id=user.id, data={"occurs_on": "2024-05-01", "amount": 10, "account_id": checking.id}
        )

        with pytest.raises(ValidationError):
            planned_service.set_status(ctx, payment.id, user_id=user.id, status="paid")
        skipped = planned_service.set_status(ctx, payment.id, user_id=user.id, status="skipped")
        assert skipped.status == "skipped"
        with pytest.raises(ValidationError):
            planned_service.update_planned(ctx, payment.id, user_id=user.id, data={"amount": 20})

    def test_generate_from_subscriptions_is_idempotent(self, ctx, user, account_factory):
        checking = account_factory()
        bills.create_subscription(
            ctx,
            user_id=user.id,
            data={
                "service_name": "Lessons",
                "amount": 25,
                "billing_frequency": "weekly",
                "next_billing_date": "2024-03-10",
                "account_id": checking.id,
            },
        )
        bills.create_subscription(
            ctx,
            user_id=user.id,
            data={"service_name": "No account", "amount": 9, "next_billing_date": "2024-03-12"},
        )

        created = planned_service.generate_from_service_subscriptions(ctx, today=date(2024, 3, 1))
        again = planned_service.generate_from_service_subscriptions(ctx, today=date(2024, 3, 1))

        assert created == 4
        assert again == 0
        listing = planned_service.list_planned(
            ctx, user_id=user.id, query=PlannedPaymentQuery(source="subscription")
        )
        assert [p.occurs_on.day for p in listing["items"]] == [10, 17, 24, 31]
        assert listing["counts"]["expense"] == 4

    def test_unknown_status_filter(self, ctx, user):
        with pytest.raises(ValidationError):
            planned_service.list_planned(ctx, user_id=user.id, query=PlannedPaymentQuery(status="late"))
