"""Tests for ledger transactions, transfers, balances and category suggestions."""

from __future__ import annotations

from datetime import date, timedelta

import pytest

from spare.errors import Forbidden, NotFound, ValidationError
from spare.infra.repositories.transaction import TransactionQuery
from spare.models import Transaction
from spare.services import accounts as account_service
from spare.services import transactions as transaction_service
from spare.services.category_learning import normalize_description, suggest_from_history
from tests.conftest import assert_float_equal


def _history_row(description: str, amount: float, category_id: int, subcategory_id=None) -> Transaction:
    return Transaction(
        user_id=1,
        account_id=1,
        occurred_on=date(2024, 1, 1),
        tx_type="expense",
        amount=amount,
        description=description,
        category_id=category_id,
        subcategory_id=subcategory_id,
    )


class TestTransfers:
    """Transfers are stored as a linked outgoing/incoming pair."""

    def test_transfer_creates_linked_pair(self, ctx, user, account_factory):
        checking = account_factory("Checking")
        savings = account_factory("Savings", account_type="savings")

        outgoing, incoming = transaction_service.create_transaction(
            ctx,
            user_id=user.id,
            occurred_on=date.today(),
            amount=250,
            account_id=checking.id,
            tx_type="transfer",
            to_account_id=savings.id,
            description="Move to savings",
        )

        assert outgoing.account_id == checking.id
        assert incoming.account_id == savings.id
        assert outgoing.transfer_to_id == incoming.id
        assert incoming.transfer_from_id == outgoing.id
        assert outgoing.amount == incoming.amount == 250

    def test_transfer_moves_balance_between_accounts(self, ctx, user, account_factory, transaction_factory):
        checking = account_factory("Checking", initial_balance=1000)
        savings = account_factory("Savings", account_type="savings", initial_balance=100)

        transaction_factory(300, checking.id, tx_type="transfer", to_account_id=savings.id)

        assert_float_equal(account_service.account_balance(ctx, checking), 700)
        assert_float_equal(account_service.account_balance(ctx, savings), 400)

    def test_transfer_requires_destination(self, ctx, user, account_factory):
        checking = account_factory()
        with pytest.raises(ValidationError):
            transaction_service.create_transaction(
                ctx,
                user_id=user.id,
                occurred_on=date.today(),
                amount=10,
                account_id=checking.id,
                tx_type="transfer",
            )

    def test_transfer_to_same_account_rejected(self, ctx, user, account_factory):
        checking = account_factory()
        with pytest.raises(ValidationError):
            transaction_service.create_transaction(
                ctx,
                user_id=user.id,
                occurred_on=date.today(),
                amount=10,
                account_id=checking.id,
                tx_type="transfer",
                to_account_id=checking.id,
            )

    def test_delete_removes_both_legs(self, ctx, user, account_factory, transaction_factory):
        checking = account_factory("Checking")
        savings = account_factory("Savings")
        outgoing, incoming = transaction_factory(
            50, checking.id, tx_type="transfer", to_account_id=savings.id
        )

        deleted = transaction_service.delete_transaction(ctx, incoming.id, user_id=user.id)

        assert sorted(deleted) == sorted([outgoing.id, incoming.id])
        assert ctx.transaction_repo.get_by_id(outgoing.id, user_id=user.id) is None

    def test_update_mirrors_counterpart(self, ctx, user, account_factory, transaction_factory):
        checking = account_factory("Checking")
        savings = account_factory("Savings")
        outgoing, incoming = transaction_factory(
            50, checking.id, tx_type="transfer", to_account_id=savings.id
        )

        transaction_service.update_transaction(
            ctx,
            outgoing.id,
            user_id=user.id,
            occurred_on=outgoing.occurred_on,
            amount=80,
            account_id=checking.id,
            tx_type="transfer",
            to_account_id=savings.id,
            description="Bigger move",
        )

        other = ctx.transaction_repo.get_by_id(incoming.id, user_id=user.id)
        assert other.amount == 80
        assert other.description == "Bigger move"

    def test_transfer_cannot_change_type(self, ctx, user, account_factory, transaction_factory):
        checking = account_factory("Checking")
        savings = account_factory("Savings")
        outgoing, _ = transaction_factory(50, checking.id, tx_type="transfer", to_account_id=savings.id)

        with pytest.raises(ValidationError):
            transaction_service.update_transaction(
                ctx,
                outgoing.id,
                user_id=user.id,
                occurred_on=outgoing.occurred_on,
                amount=50,
                account_id=checking.id,
                tx_type="expense",
            )

    @pytest.mark.parametrize("explicit_destination", [True, False])
    def test_update_cannot_put_both_legs_on_one_account(
        self, ctx, user, account_factory, transaction_factory, explicit_destination
    ):
        checking = account_factory("Checking")
        savings = account_factory("Savings")
        outgoing, incoming = transaction_factory(
            50, checking.id, tx_type="transfer", to_account_id=savings.id
        )

        with pytest.raises(ValidationError, match="must differ"):
            transaction_service.update_transaction(
                ctx,
                outgoing.id,
                user_id=user.id,
                occurred_on=outgoing.occurred_on,
                amount=50,
                account_id=savings.id,
                tx_type="transfer",
                to_account_id=savings.id if explicit_destination else None,
            )

        assert ctx.transaction_repo.get_by_id(outgoing.id, user_id=user.id).account_id == checking.id
        assert ctx.transaction_repo.get_by_id(incoming.id, user_id=user.id).account_id == savings.id


class TestBalances:
    def test_balance_from_transactions_ignores_future_rows(self):
        today = date(2024, 5, 10)
        rows = [
            Transaction(user_id=1, account_id=1, occurred_on=today, tx_type="income", amount=500),
            Transaction(user_id=1, account_id=1, occurred_on=today, tx_type="expense", amount=120.5),
            Transaction(
                user_id=1,
                account_id=1,
                occurred_on=today + timedelta(days=3),
                tx_type="expense",
                amount=999,
            ),
        ]

        assert_float_equal(account_service.balance_from_transactions(100, rows, as_of=today), 479.5)

    def test_unlinked_transfer_row_does_not_move_balance(self):
        row = Transaction(
            user_id=1, account_id=1, occurred_on=date(2024, 1, 1), tx_type="transfer", amount=40
        )
        assert account_service.balance_from_transactions(10, [row], as_of=date(2024, 2, 1)) == 10


class TestTransactionLimits:
    def test_free_plan_monthly_limit(self, ctx, user, account_factory, monkeypatch):
        from spare.constants import plans

        monkeypatch.setitem(plans.DEFAULT_LIMITS, "max_transactions", 2)
        checking = account_factory()
        for _ in range(2):
            transaction_service.create_transaction(
                ctx, user_id=user.id, occurred_on=date.today(), amount=5, account_id=checking.id
            )

        with pytest.raises(Forbidden) as excinfo:
            transaction_service.create_transaction(
                ctx, user_id=user.id, occurred_on=date.today(), amount=5, account_id=checking.id
            )
        assert excinfo.value.payload["upgrade_required"] is True

    def test_unlimited_plan_skips_limit(self, ctx, user, account_factory, pro_subscription, monkeypatch):
        from spare.constants import plans

        monkeypatch.setitem(plans.DEFAULT_LIMITS, "max_transactions", 1)
        pro_subscription(user)
        checking = account_factory()
        for _ in range(3):
            transaction_service.create_transaction(
                ctx, user_id=user.id, occurred_on=date.today(), amount=5, account_id=checking.id
            )
        assert ctx.transaction_repo.count(user_id=user.id) == 3

    def test_unknown_account_is_validation_error(self, ctx, user):
        with pytest.raises(ValidationError) as excinfo:
            transaction_service.create_transaction(
                ctx, user_id=user.id, occurred_on=date.today(), amount=5, account_id=9999
            )
        assert "account_id" in excinfo.value.errors


class TestCategorySuggestions:
    def test_normalize_description_strips_digits_and_punctuation(self):
        assert normalize_description("  STARBUCKS #1234, Main-St. ") == "starbucks main st"

    def test_three_exact_matches_is_high_confidence(self):
        history = [_history_row("Coffee Shop", 4.5, category_id=7) for _ in range(3)]
        suggestion = suggest_from_history(history, description="coffee shop", amount=4.5)
        assert suggestion.confidence == "high"
        assert suggestion.category_id == 7

    def test_five_description_matches_is_high_confidence(self):
        history = [_history_row("Gym", 10 + i, category_id=3) for i in range(5)]
        suggestion = suggest_from_history(history, description="GYM", amount=99)
        assert suggestion.confidence == "high"

    def test_two_amount_matches_is_medium(self):
        history = [_history_row("Grocer", 52.0, category_id=2) for _ in range(2)]
        suggestion = suggest_from_history(history, description="Grocer", amount=52.0)
        assert suggestion.confidence == "medium"
        assert suggestion.matches == 2

    def test_single_match_is_low(self):
        history = [_history_row("Bookstore", 20.0, category_id=9)]
        suggestion = suggest_from_history(history, description="Bookstore", amount=35.0)
        assert suggestion.confidence == "low"

    def test_no_match_returns_none(self):
        history = [_history_row("Bookstore", 20.0, category_id=9)]
        assert suggest_from_history(history, description="Cinema", amount=20.0) is None

    def test_high_confidence_assigns_category(self, ctx, user, account_factory, transaction_factory, category_id):
        checking = account_factory()
        groceries = category_id("Groceries")
        for _ in range(3):
            transaction_factory(60, checking.id, description="Fresh Market", category_id=groceries)

        tx = transaction_factory(60, checking.id, description="FRESH MARKET 0042")

        assert tx.category_id == groceries
        assert tx.suggested_category_id is None

    def test_low_confidence_only_suggests(self, ctx, user, account_factory, transaction_factory, category_id):
        checking = account_factory()
        groceries = category_id("Groceries")
        transaction_factory(60, checking.id, description="Corner Store", category_id=groceries)

        tx = transaction_factory(12, checking.id, description="Corner Store")

        assert tx.category_id is None
        assert tx.suggested_category_id == groceries

        accepted = transaction_service.accept_suggestion(ctx, tx.id, user_id=user.id)
        assert accepted.category_id == groceries
        assert accepted.suggested_category_id is None

    def test_accept_without_suggestion_fails(self, ctx, user, account_factory, transaction_factory):
        checking = account_factory()
        tx = transaction_factory(12, checking.id, description="Something new")
        with pytest.raises(ValidationError):
            transaction_service.accept_suggestion(ctx, tx.id, user_id=user.id)


class TestSummaries:
    def test_monthly_summary_excludes_transfers(self, ctx, user, account_factory, transaction_factory):
        checking = account_factory("Checking")
        savings = account_factory("Savings")
        transaction_factory(3000, checking.id, tx_type="income", description="Payroll")
        transaction_factory(450.25, checking.id, description="Rent share")
        transaction_factory(500, checking.id, tx_type="transfer", to_account_id=savings.id)

        summary = transaction_service.monthly_summary(ctx, user_id=user.id, period=date.today())

        assert summary["period"] == date.today().strftime("%Y-%m")
        assert_float_equal(summary["income"], 3000)
        assert_float_equal(summary["expenses"], 450.25)
        assert_float_equal(summary["net"], 2549.75)

    def test_delete_missing_transaction(self, ctx, user):
        with pytest.raises(NotFound):
            transaction_service.delete_transaction(ctx, 12345, user_id=user.id)

    @pytest.mark.parametrize(("text", "expected"), [("100%", ["100% juice"]), ("a_b", ["a_b refill"])])
    def test_search_treats_wildcards_literally(
        self, ctx, user, account_factory, transaction_factory, text, expected
    ):
        checking = account_factory()
        for description in ("100% juice", "1000 juice", "a_b refill", "axb refill"):
            transaction_factory(5, checking.id, description=description)

        result = transaction_service.search_transactions(ctx, TransactionQuery(text=text), user_id=user.id)

        assert [tx.description for tx in result["items"]] == expected
