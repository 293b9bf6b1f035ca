"""Tests for household invitations and the admin back office."""

from __future__ import annotations

from datetime import date

import pytest

from spare.errors import AppError, Conflict, Forbidden, NotFound, ValidationError
from spare.models import Plan, Subscription
from spare.services import admin as admin_service
from spare.services import members as member_service
from tests.conftest import assert_float_equal


@pytest.fixture
def guest(user_factory):
    return user_factory(email="guest@example.com", name="Guest")


class TestInvitations:
    def test_invite_and_accept(self, ctx, user, guest):
        member = member_service.invite(ctx, owner=user, data={"email": "Guest@Example.com", "role": "admin"})

        assert member.email == "guest@example.com"
        assert member.status == "pending"
        url = member_service.invitation_url(ctx, member)
        assert url.startswith("http://spare.test/members/accept?token=")

        accepted = member_service.accept(ctx, token=member.invitation_token, user=guest)

        assert accepted.status == "active"
        assert accepted.member_user_id == guest.id
        assert accepted.invitation_token is None
        assert accepted.name == "Guest"
        assert member_service.resolve_owner_id(ctx, guest.id) == user.id
        assert member_service.membership_role(ctx, guest.id) == "admin"
        assert member_service.membership_role(ctx, user.id) == "owner"

    def test_cannot_invite_self(self, ctx, user):
        with pytest.raises(ValidationError):
            member_service.invite(ctx, owner=user, data={"email": "owner@example.com"})

    def test_duplicate_invitation(self, ctx, user):
        member_service.invite(ctx, owner=user, data={"email": "guest@example.com"})
        with pytest.raises(Conflict):
            member_service.invite(ctx, owner=user, data={"email": "guest@example.com"})

    def test_invalid_role(self, ctx, user):
        with pytest.raises(ValidationError) as excinfo:
            member_service.invite(ctx, owner=user, data={"email": "guest@example.com", "role": "owner"})
        assert "role" in excinfo.value.errors

    def test_wrong_recipient(self, ctx, user, user_factory):
        member = member_service.invite(ctx, owner=user, data={"email": "guest@example.com"})
        stranger = user_factory(email="stranger@example.com")

        with pytest.raises(Forbidden):
            member_service.accept(ctx, token=member.invitation_token, user=stranger)

    def test_tampered_token(self, ctx, guest):
        with pytest.raises(NotFound):
            member_service.accept(ctx, token="not-a-real-token", user=guest)

    def test_token_single_use(self, ctx, user, guest):
        member = member_service.invite(ctx, owner=user, data={"email": "guest@example.com"})
        member_service.accept(ctx, token=member.invitation_token, user=guest)

        with pytest.raises(NotFound):
            member_service.accept(ctx, token=member.invitation_token, user=guest)

    def test_expired_token(self, ctx, user, guest, monkeypatch):
        member = member_service.invite(ctx, owner=user, data={"email": "guest@example.com"})
        monkeypatch.setattr(member_service, "INVITATION_MAX_AGE", -1)

        with pytest.raises(ValidationError) as excinfo:
            member_service.accept(ctx, token=member.invitation_token, user=guest)
        assert "expired" in excinfo.value.message

    def test_one_household_per_user(self, ctx, user, guest, user_factory):
        other_owner = user_factory(email="other@example.com")
        first = member_service.invite(ctx, owner=user, data={"email": "guest@example.com"})
        second = member_service.invite(ctx, owner=other_owner, data={"email": "guest@example.com"})
        member_service.accept(ctx, token=first.invitation_token, user=guest)

        with pytest.raises(Conflict):
            member_service.accept(ctx, token=second.invitation_token, user=guest)

    def test_leave_restores_own_data(self, ctx, user, guest):
        member = member_service.invite(ctx, owner=user, data={"email": "guest@example.com"})
        member_service.accept(ctx, token=member.invitation_token, user=guest)

        member_service.leave(ctx, user_id=guest.id)

        assert member_service.resolve_owner_id(ctx, guest.id) == guest.id
        with pytest.raises(NotFound):
            member_service.leave(ctx, user_id=guest.id)


class TestHouseholdRoutes:
    def test_member_sees_owner_transactions(
        self, ctx, client, user, guest, auth_headers, account_factory, transaction_factory
    ):
        checking = account_factory()
        transaction_factory(42, checking.id, occurred_on=date(2024, 2, 2))
        member = member_service.invite(ctx, owner=user, data={"email": "guest@example.com"})
        response = client.post(
            "/api/members/accept", json={"token": member.invitation_token}, headers=auth_headers(guest)
        )
        assert response.status_code == 200

        listing = client.get("/api/transactions", headers=auth_headers(guest)).get_json()

        assert listing["total"] == 1
        assert listing["items"][0]["amount"] == 42.0

    def test_member_cannot_invite(self, ctx, client, user, guest, auth_headers):
        member = member_service.invite(ctx, owner=user, data={"email": "guest@example.com"})
        member_service.accept(ctx, token=member.invitation_token, user=guest)

        response = client.post(
            "/api/members/invite", json={"email": "third@example.com"}, headers=auth_headers(guest)
        )

        assert response.status_code == 403

    def test_owner_invite_returns_link(self, client, user, auth_headers):
        response = client.post(
            "/api/members/invite", json={"email": "guest@example.com"}, headers=auth_headers(user)
        )

        assert response.status_code == 201
        body = response.get_json()
        assert "invitation_token" not in body
        assert body["invitation_url"].startswith("http://spare.test/members/accept?token=")


class TestAdmin:
    def test_mrr_counts_active_only_and_spreads_yearly(self):
        plans = {1: Plan(id=1, slug="pro", name="Pro", price_monthly=10.0, price_yearly=120.0)}
        subscriptions = [
            Subscription(user_id=1, plan_id=1, status="active", billing_interval="month"),
            Subscription(user_id=2, plan_id=1, status="active", billing_interval="year"),
            Subscription(user_id=3, plan_id=1, status="trialing", billing_interval="month"),
            Subscription(user_id=4, plan_id=99, status="active", billing_interval="month"),
        ]

        assert_float_equal(admin_service.monthly_recurring_revenue(subscriptions, plans), 20.0)

    def test_dashboard(self, ctx, user, user_factory, pro_subscription):
        user_factory()
        pro_subscription(user)

        data = admin_service.dashboard(ctx)

        assert data["users"] == {"total": 2, "new_last_30_days": 2}
        assert data["subscriptions"]["active"] == 1
        assert_float_equal(data["mrr"], 12.99)
        assert data["import_jobs"] == {"pending": 0, "failed": 0}

    def test_user_rows_include_plan(self, ctx, user, pro_subscription):
        pro_subscription(user)

        [row] = admin_service.user_rows(ctx)

        assert row["plan"] == "pro"
        assert row["subscription_status"] == "active"
        assert "password_hash" not in row

    def test_user_search_treats_wildcards_literally(self, ctx, user_factory):
        user_factory(email="under_score@example.com")
        user_factory(email="underxscore@example.com")

        rows = admin_service.user_rows(ctx, search="under_")

        assert [row["email"] for row in rows] == ["under_score@example.com"]

    def test_dashboard_requires_admin(self, client, user, user_factory, auth_headers):
        admin = user_factory(email="admin@example.com", role="admin")

        assert client.get("/api/admin/dashboard", headers=auth_headers(user)).status_code == 403
        response = client.get("/api/admin/dashboard", headers=auth_headers(admin))
        assert response.status_code == 200
        assert response.get_json()["users"]["total"] == 2

    def test_promo_codes_need_super_admin(self, client, user_factory, auth_headers):
        admin = user_factory(email="admin@example.com", role="admin")
        response = client.get("/api/admin/promo-codes", headers=auth_headers(admin))
        assert response.status_code == 403

    def test_payments_platform_unconfigured(self, ctx):
        with pytest.raises(AppError) as excinfo:
            ctx.require_billing()
        assert excinfo.value.status_code == 503
