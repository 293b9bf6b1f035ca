"""Shared pytest fixtures for the Spare test suite.

The application is built against a throw-away SQLite file per test. External
integrations (payments platform, bank aggregator) are replaced by in-memory
fakes that record their calls.
"""

from __future__ import annotations

import itertools
from datetime import date
from typing import Any, Optional

import pytest

from spare import create_app
from spare.config import TestConfig
from spare.errors import ValidationError
from spare.infra.integrations.plaid_gateway import BankSyncError
from spare.models import Account, Subscription, User
from spare.services import auth as auth_service
from spare.services import billing as billing_service
from spare.services import jobs


def assert_float_equal(actual: float, expected: float, tolerance: float = 0.01) -> None:
    """Assert two floats are equal within a tolerance."""

    assert abs(actual - expected) <= tolerance, f"Expected {expected}, got {actual}"


# =============================================================================
# Fake gateways
# =============================================================================


class FakeBankGateway:
    """In-memory stand-in for the bank aggregation API.

    ``pages`` is consumed by ``transactions_sync`` one entry per call; entries
    that are exceptions are raised instead of returned.
    """

    def __init__(self) -> None:
        self.accounts: list[dict[str, Any]] = [
            {
                "account_id": "acc-checking",
                "name": "Everyday Checking",
                "mask": "0001",
                "type": "depository",
                "subtype": "checking",
                "current_balance": 1200.0,
                "limit": None,
                "currency": "USD",
            }
        ]
        self.pages: list[Any] = []
        self.sync_calls: list[Optional[str]] = []
        self.removed_items: list[str] = []
        self.remove_error: Optional[BankSyncError] = None

    def create_link_token(self, *, user_id: int, country_codes=("US", "CA")) -> str:
        return f"link-sandbox-{user_id}"

    def exchange_public_token(self, public_token: str) -> tuple[str, str]:
        return f"access-{public_token}", f"item-{public_token}"

    def get_accounts(self, access_token: str) -> list[dict[str, Any]]:
        return [dict(account) for account in self.accounts]

    def transactions_sync(self, access_token: str, cursor: Optional[str]) -> dict[str, Any]:
        self.sync_calls.append(cursor)
        if not self.pages:
            return {"added": [], "modified": [], "removed": [], "next_cursor": cursor, "has_more": False}
        page = self.pages.pop(0)
        if isinstance(page, Exception):
            raise page
        return page

    def remove_item(self, access_token: str) -> None:
        if self.remove_error is not None:
            raise self.remove_error
        self.removed_items.append(access_token)


class FakeBillingGateway:
    """In-memory stand-in for the payments platform."""

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self.customers: list[dict[str, Any]] = []
        self.checkouts: list[dict[str, Any]] = []
        self.coupons: dict[str, dict[str, Any]] = {}
        self.deleted_coupons: list[str] = []
        self.prices: list[dict[str, Any]] = []
        self.deactivated_prices: list[str] = []
        self.subscriptions: dict[str, dict[str, Any]] = {}
        self.cancelled: list[tuple[str, bool]] = []
        self.next_event: Optional[dict[str, Any]] = None

    def _new_id(self, prefix: str) -> str:
        return f"{prefix}_{next(self._ids)}"

    def create_customer(self, *, email: str, name: str, user_id: int) -> str:
        customer_id = self._new_id("cus")
        self.customers.append({"id": customer_id, "email": email, "user_id": user_id})
        return customer_id

    def create_checkout_session(
        self, *, customer_id, price_id, success_url, cancel_url, coupon_id=None, metadata=None
    ) -> dict[str, str]:
        session_id = self._new_id("cs")
        self.checkouts.append(
            {
                "id": session_id,
                "customer_id": customer_id,
                "price_id": price_id,
                "coupon_id": coupon_id,
                "metadata": metadata or {},
            }
        )
        return {"id": session_id, "url": f"https://checkout.test/{session_id}"}

    def create_portal_session(self, *, customer_id: str, return_url: str) -> str:
        return f"https://portal.test/{customer_id}"

    def create_coupon(self, **kwargs) -> str:
        coupon_id = self._new_id("coupon")
        self.coupons[coupon_id] = kwargs
        return coupon_id

    def delete_coupon(self, coupon_id: str) -> None:
        self.deleted_coupons.append(coupon_id)

    def create_product(self, *, name: str, metadata: dict) -> str:
        return self._new_id("prod")

    def create_price(self, *, product_id: str, amount: float, interval: str, currency: str) -> str:
        price_id = self._new_id("price")
        self.prices.append({"id": price_id, "amount": amount, "interval": interval, "currency": currency})
        return price_id

    def deactivate_price(self, price_id: str) -> None:
        self.deactivated_prices.append(price_id)

    def retrieve_subscription(self, subscription_id: str) -> dict[str, Any]:
        return self.subscriptions[subscription_id]

    def list_customer_subscriptions(self, customer_id: str) -> list[dict[str, Any]]:
        return [sub for sub in self.subscriptions.values() if sub.get("customer") == customer_id]

    def cancel_subscription(self, subscription_id: str, *, at_period_end: bool) -> dict[str, Any]:
        self.cancelled.append((subscription_id, at_period_end))
        sub = dict(self.subscriptions[subscription_id])
        if at_period_end:
            sub["cancel_at_period_end"] = True
        else:
            sub["status"] = "canceled"
        self.subscriptions[subscription_id] = sub
        return sub

    def end_trial(self, subscription_id: str) -> dict[str, Any]:
        sub = dict(self.subscriptions[subscription_id], status="active")
        self.subscriptions[subscription_id] = sub
        return sub

    def construct_event(self, payload: bytes, signature: str) -> dict[str, Any]:
        if signature != "valid":
            raise ValidationError("Invalid webhook signature")
        return self.next_event or {}


# =============================================================================
# Application fixtures
# =============================================================================


@pytest.fixture
def app(tmp_path, monkeypatch):
    """Flask app bound to a temporary SQLite database with integrations off."""

    monkeypatch.setenv("SPARE_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("SPARE_DEV_MODE", "1")
    monkeypatch.setenv("SPARE_DATABASE_URL", f"sqlite:///{tmp_path / 'test.db'}")
    monkeypatch.setenv("SPARE_SECRET_KEY", "test-secret")
    monkeypatch.setenv("SPARE_APP_URL", "http://spare.test")
    for name in (
        "STRIPE_SECRET_KEY",
        "STRIPE_WEBHOOK_SECRET",
        "PLAID_CLIENT_ID",
        "PLAID_SECRET",
        "PLAID_ENV",
        "TURNSTILE_SECRET_KEY",
        "CRON_SECRET",
    ):
        monkeypatch.delenv(name, raising=False)

    jobs.set_async_execution(False)
    jobs.clear_progress()
    application = create_app(config=TestConfig())
    yield application
    application.extensions["spare"].engine.dispose()
    jobs.clear_progress()
    jobs.set_async_execution(True)


@pytest.fixture
def ctx(app):
    """The AppContext holding repositories and gateways."""

    return app.extensions["spare"]


@pytest.fixture
def client(app):
    with app.test_client() as test_client:
        yield test_client


@pytest.fixture
def bank_gateway(ctx):
    gateway = FakeBankGateway()
    ctx.bank_gateway = gateway
    return gateway


@pytest.fixture
def billing_gateway(ctx):
    gateway = FakeBillingGateway()
    ctx.billing_gateway = gateway
    return gateway


# =============================================================================
# Factory Fixtures
# =============================================================================


@pytest.fixture
def user_factory(ctx):
    """Factory for creating persisted users."""

    counter = itertools.count(1)

    def _create_user(
        email: Optional[str] = None,
        password: str = "correct-horse",
        name: str = "Test User",
        role: str = "user",
    ) -> User:
        email = email or f"user{next(counter)}@example.com"
        return auth_service.create_user(
            email=email, password=password, name=name, role=role, session_factory=ctx.session_factory
        )

    return _create_user


@pytest.fixture
def user(user_factory) -> User:
    return user_factory(email="owner@example.com", name="Owner")


@pytest.fixture
def auth_headers(ctx):
    """Build bearer headers for a user."""

    def _headers(for_user: User) -> dict[str, str]:
        token = auth_service.issue_token(for_user, secret_key=ctx.config.SECRET_KEY)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def account_factory(ctx, user):
    """Factory for creating accounts directly through the repository.

    Bypasses plan limits so tests can set up any number of accounts.
    """

    def _create_account(
        name: str = "Checking",
        account_type: str = "checking",
        initial_balance: float = 0.0,
        owner: Optional[User] = None,
    ) -> Account:
        owner = owner or user
        is_first = ctx.account_repo.count(user_id=owner.id) == 0
        return ctx.account_repo.create(
            Account(
                user_id=owner.id,
                name=name,
                account_type=account_type,
                initial_balance=initial_balance,
                is_default=is_first,
            )
        )

    return _create_account


@pytest.fixture
def transaction_factory(ctx, user):
    """Factory for ledger transactions through the service layer (limits off)."""

    from spare.services import transactions as transaction_service

    def _create_transaction(
        amount: float,
        account_id: int,
        tx_type: str = "expense",
        occurred_on: Optional[date] = None,
        description: str = "Test transaction",
        category_id: Optional[int] = None,
        to_account_id: Optional[int] = None,
        owner: Optional[User] = None,
    ):
        owner = owner or user
        rows = transaction_service.create_transaction(
            ctx,
            user_id=owner.id,
            occurred_on=occurred_on or date.today(),
            amount=amount,
            account_id=account_id,
            tx_type=tx_type,
            to_account_id=to_account_id,
            description=description,
            category_id=category_id,
            enforce_limit=False,
        )
        return rows[0] if len(rows) == 1 else rows

    return _create_transaction


@pytest.fixture
def pro_subscription(ctx):
    """Give a user an active subscription on the unlimited plan."""

    def _subscribe(for_user: User, plan_slug: str = "pro") -> Subscription:
        billing_service.seed_plans(ctx)
        plan = ctx.billing_repo.get_plan_by_slug(plan_slug)
        return ctx.billing_repo.save_subscription(
            Subscription(user_id=for_user.id, plan_id=plan.id, status="active")
        )

    return _subscribe


@pytest.fixture
def category_id(ctx, user):
    """Return the id of a seeded system category by name."""

    def _lookup(name: str) -> int:
        for category in ctx.category_repo.list_categories(user_id=user.id):
            if category.name == name:
                return category.id
        raise LookupError(name)

    return _lookup
