"""Tests for bank linking, cursor-based transaction sync and webhooks."""

from __future__ import annotations

import pytest

from spare.errors import Forbidden
from spare.infra.integrations.plaid_gateway import BankSyncError
from spare.services import bank_sync
from spare.services.bank_sync import (
    MUTATION_DURING_PAGINATION,
    determine_transaction_type,
    fetch_changes,
    map_account_type,
)


def _plaid_tx(tx_id, amount=12.5, *, account_id="acc-checking", name="Corner Cafe", day="2024-03-04"):
    return {
        "transaction_id": tx_id,
        "account_id": account_id,
        "amount": amount,
        "date": day,
        "name": name,
        "category": ["Food and Drink"],
    }


def _page(added=(), *, modified=(), removed=(), cursor="cursor-1", has_more=False):
    return {
        "added": list(added),
        "modified": list(modified),
        "removed": list(removed),
        "next_cursor": cursor,
        "has_more": has_more,
    }


class TestClassification:
    @pytest.mark.parametrize(
        ("plaid_type", "subtype", "expected"),
        [
            ("depository", "checking", "checking"),
            ("depository", "savings", "savings"),
            ("depository", "cd", "savings"),
            ("credit", "credit card", "credit"),
            ("investment", "brokerage", "investment"),
            ("loan", "mortgage", "other"),
        ],
    )
    def test_map_account_type(self, plaid_type, subtype, expected):
        assert map_account_type(plaid_type, subtype) == expected

    def test_card_purchase_is_expense(self):
        assert determine_transaction_type({"amount": 25, "transaction_type": "place"}, "credit") == "expense"

    def test_card_payment_is_transfer(self):
        tx = {"amount": -100, "transaction_code": "payment", "name": "Payment thank you"}
        assert determine_transaction_type(tx, "credit") == "transfer"

    def test_card_refund_is_income(self):
        tx = {"amount": -20, "name": "Store credit", "category": ["Shops"]}
        assert determine_transaction_type(tx, "credit") == "income"

    def test_payroll_deposit_is_income(self):
        tx = {"amount": -1500, "name": "ACME PAYROLL", "category": ["Transfer", "Payroll"]}
        assert determine_transaction_type(tx, "checking") == "income"

    def test_restaurant_is_expense(self):
        assert determine_transaction_type(_plaid_tx("t1"), "checking") == "expense"


class TestFetchChanges:
    def test_follows_pages_until_done(self, bank_gateway):
        bank_gateway.pages = [
            _page([_plaid_tx("t1")], cursor="c1", has_more=True),
            _page([_plaid_tx("t2")], removed=[{"transaction_id": "old"}], cursor="c2"),
        ]

        changes = fetch_changes(bank_gateway, "access", None)

        assert [tx["transaction_id"] for tx in changes["added"]] == ["t1", "t2"]
        assert changes["removed"] == ["old"]
        assert changes["next_cursor"] == "c2"
        assert bank_gateway.sync_calls == [None, "c1"]

    def test_mutation_restarts_from_original_cursor(self, bank_gateway):
        bank_gateway.pages = [
            _page([_plaid_tx("t1")], cursor="c1", has_more=True),
            BankSyncError("changed", error_code=MUTATION_DURING_PAGINATION),
            _page([_plaid_tx("t1")], cursor="c1", has_more=True),
            _page([_plaid_tx("t2")], cursor="c2"),
        ]

        changes = fetch_changes(bank_gateway, "access", "c0")

        assert bank_gateway.sync_calls == ["c0", "c1", "c0", "c1"]
        assert [tx["transaction_id"] for tx in changes["added"]] == ["t1", "t2"]

    def test_gives_up_after_repeated_mutations(self, bank_gateway):
        bank_gateway.pages = [
            BankSyncError("changed", error_code=MUTATION_DURING_PAGINATION) for _ in range(4)
        ]

        with pytest.raises(BankSyncError):
            fetch_changes(bank_gateway, "access", None)
        assert len(bank_gateway.sync_calls) == 4

    def test_other_errors_propagate(self, bank_gateway):
        bank_gateway.pages = [BankSyncError("login required", error_code="ITEM_LOGIN_REQUIRED")]
        with pytest.raises(BankSyncError):
            fetch_changes(bank_gateway, "access", None)


class TestLinkAndSync:
    def test_exchange_creates_account_and_syncs(self, ctx, user, bank_gateway):
        bank_gateway.pages = [
            _page([_plaid_tx("t1"), _plaid_tx("t2", account_id="someone-else")], cursor="c1")
        ]

        result = bank_sync.exchange_public_token(
            ctx,
            user_id=user.id,
            public_token="public-1",
            metadata={"institution": {"institution_id": "ins_1", "name": "First Bank"}},
        )

        [account] = result["accounts"]
        assert account.account_type == "checking"
        assert account.is_default is True
        assert result["item"].institution_name == "First Bank"

        [queued] = result["jobs"]
        job = ctx.import_job_repo.get(queued.id)
        assert job.status == "completed"
        assert job.synced_items == 1
        assert job.total_items == 1

        [tx] = ctx.transaction_repo.list_for_account(account.id, user_id=user.id)
        assert tx.external_id == "t1"
        assert tx.tx_type == "expense"
        assert tx.amount == 12.5
        assert ctx.plaid_item_repo.get(result["item"].id).transactions_cursor == "c1"

    def test_resync_skips_known_and_removes_deleted(self, ctx, user, bank_gateway):
        bank_gateway.pages = [_page([_plaid_tx("t1"), _plaid_tx("t2")], cursor="c1")]
        result = bank_sync.exchange_public_token(ctx, user_id=user.id, public_token="public-1")
        account = result["accounts"][0]

        bank_gateway.pages = [
            _page([_plaid_tx("t3")], modified=[_plaid_tx("t1")], removed=["t2"], cursor="c2")
        ]
        handled = bank_sync.handle_webhook(
            ctx,
            {"webhook_type": "TRANSACTIONS", "webhook_code": "SYNC_UPDATES_AVAILABLE", "item_id": "item-public-1"},
        )

        assert handled == {"handled": True, "queued_jobs": 1}
        assert bank_gateway.sync_calls == [None, "c1"]
        remaining = sorted(
            tx.external_id for tx in ctx.transaction_repo.list_for_account(account.id, user_id=user.id)
        )
        assert remaining == ["t1", "t3"]
        latest = ctx.import_job_repo.list_recent(user_id=user.id)[0]
        assert latest.synced_items == 1
        assert latest.skipped_items == 1

    def test_account_limit_checked_before_linking(self, ctx, user, bank_gateway, account_factory):
        account_factory("One")
        account_factory("Two")

        with pytest.raises(Forbidden):
            bank_sync.exchange_public_token(ctx, user_id=user.id, public_token="public-1")
        assert ctx.account_repo.get_by_plaid_account_id("acc-checking") is None

    def test_item_error_webhook_marks_item(self, ctx, user, bank_gateway):
        item = bank_sync.exchange_public_token(ctx, user_id=user.id, public_token="public-1")["item"]

        bank_sync.handle_webhook(
            ctx,
            {
                "webhook_type": "ITEM",
                "webhook_code": "ERROR",
                "item_id": "item-public-1",
                "error": {"error_code": "ITEM_LOGIN_REQUIRED"},
            },
        )

        stored = ctx.plaid_item_repo.get(item.id)
        assert stored.status == "error"
        assert stored.error_code == "ITEM_LOGIN_REQUIRED"

    def test_unknown_item_webhook_is_ignored(self, ctx):
        assert bank_sync.handle_webhook(ctx, {"webhook_type": "TRANSACTIONS", "item_id": "nope"}) == {
            "handled": False
        }


class TestDisconnect:
    def test_disconnect_keeps_accounts_as_manual(self, ctx, user, bank_gateway):
        result = bank_sync.exchange_public_token(ctx, user_id=user.id, public_token="public-1")
        item = result["item"]

        outcome = bank_sync.disconnect_item(ctx, item.id, user_id=user.id)

        assert outcome == {"item_id": item.id, "unlinked_accounts": 1}
        assert bank_gateway.removed_items == ["access-public-1"]
        account = ctx.account_repo.get_by_id(result["accounts"][0].id, user_id=user.id)
        assert account.plaid_account_id is None
        assert ctx.plaid_item_repo.get(item.id) is None

    def test_disconnect_tolerates_missing_item(self, ctx, user, bank_gateway):
        item = bank_sync.exchange_public_token(ctx, user_id=user.id, public_token="public-1")["item"]
        bank_gateway.remove_error = BankSyncError("gone", error_code="ITEM_NOT_FOUND")

        bank_sync.disconnect_item(ctx, item.id, user_id=user.id)

        assert ctx.plaid_item_repo.get(item.id) is None

    def test_disconnect_propagates_other_errors(self, ctx, user, bank_gateway):
        item = bank_sync.exchange_public_token(ctx, user_id=user.id, public_token="public-1")["item"]
        bank_gateway.remove_error = BankSyncError("down", error_code="INTERNAL_SERVER_ERROR")

        with pytest.raises(BankSyncError):
            bank_sync.disconnect_item(ctx, item.id, user_id=user.id)
        assert ctx.plaid_item_repo.get(item.id) is not None
