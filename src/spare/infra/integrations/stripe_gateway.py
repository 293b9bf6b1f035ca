"""Thin wrapper over the Stripe SDK returning plain dicts."""

from __future__ import annotations

from typing import Any, Optional

import stripe

from ...errors import ExternalServiceError, ValidationError
from ...logging_config import get_logger

logger = get_logger(__name__)


def _as_dict(obj: Any) -> dict[str, Any]:
    if obj is None:
        return {}
    if isinstance(obj, dict):
        return dict(obj)
    return obj.to_dict()


class StripeGateway:
    """Calls used by billing and promo codes.

    Every SDK failure is logged and re-raised as :class:`ExternalServiceError`.
    """

    def __init__(self, api_key: str, webhook_secret: str = ""):
        self.api_key = api_key
        self.webhook_secret = webhook_secret

    def _call(self, action: str, func, *args, **kwargs):
        try:
            return func(*args, api_key=self.api_key, **kwargs)
        except stripe.StripeError as exc:
            logger.error("Stripe %s failed: %s", action, exc)
            message = getattr(exc, "user_message", None) or f"Payment provider error during {action}"
            raise ExternalServiceError(message) from exc

    # Customers and sessions

    def create_customer(self, *, email: str, name: str, user_id: int) -> str:
        customer = self._call(
            "customer creation",
            stripe.Customer.create,
            email=email,
            name=name or None,
            metadata={"user_id": str(user_id)},
        )
        return customer["id"]

    def create_checkout_session(
        self,
        *,
        customer_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        coupon_id: Optional[str] = None,
        metadata: Optional[dict[str, str]] = None,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {
            "mode": "subscription",
            "customer": customer_id,
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata or {},
            "subscription_data": {"metadata": metadata or {}},
        }
        if coupon_id:
            params["discounts"] = [{"coupon": coupon_id}]
        else:
            params["allow_promotion_codes"] = True
        session = self._call("checkout", stripe.checkout.Session.create, **params)
        return {"id": session["id"], "url": session["url"]}

    def create_portal_session(self, *, customer_id: str, return_url: str) -> str:
        session = self._call(
            "portal session",
            stripe.billing_portal.Session.create,
            customer=customer_id,
            return_url=return_url,
        )
        return session["url"]

    # Coupons

    def create_coupon(
        self,
        *,
        code: str,
        discount_type: str,
        discount_value: float,
        duration: str,
        duration_in_months: Optional[int],
        max_redemptions: Optional[int],
        redeem_by: Optional[int],
        currency: str = "usd",
    ) -> str:
        params: dict[str, Any] = {"name": code, "duration": duration}
        if discount_type == "percent":
            params["percent_off"] = discount_value
        else:
            params["amount_off"] = int(round(discount_value * 100))
            params["currency"] = currency
        if duration == "repeating":
            params["duration_in_months"] = duration_in_months or 1
        if max_redemptions:
            params["max_redemptions"] = max_redemptions
        if redeem_by:
            params["redeem_by"] = redeem_by
        coupon = self._call("coupon creation", stripe.Coupon.create, **params)
        return coupon["id"]

    def delete_coupon(self, coupon_id: str) -> None:
        self._call("coupon deletion", stripe.Coupon.delete, coupon_id)

    # Products and prices

    def create_product(self, *, name: str, metadata: Optional[dict[str, str]] = None) -> str:
        product = self._call("product creation", stripe.Product.create, name=name, metadata=metadata or {})
        return product["id"]

    def create_price(self, *, product_id: str, amount: float, interval: str, currency: str) -> str:
        price = self._call(
            "price creation",
            stripe.Price.create,
            product=product_id,
            unit_amount=int(round(amount * 100)),
            currency=currency,
            recurring={"interval": interval},
        )
        return price["id"]

    def deactivate_price(self, price_id: str) -> None:
        self._call("price update", stripe.Price.modify, price_id, active=False)

    # Subscriptions

    def retrieve_subscription(self, subscription_id: str) -> dict[str, Any]:
        return _as_dict(
            self._call("subscription lookup", stripe.Subscription.retrieve, subscription_id)
        )

    def list_customer_subscriptions(self, customer_id: str) -> list[dict[str, Any]]:
        result = self._call(
            "subscription listing",
            stripe.Subscription.list,
            customer=customer_id,
            status="all",
            limit=10,
        )
        return [_as_dict(item) for item in result["data"]]

    def cancel_subscription(self, subscription_id: str, *, at_period_end: bool) -> dict[str, Any]:
        if at_period_end:
            sub = self._call(
                "subscription update",
                stripe.Subscription.modify,
                subscription_id,
                cancel_at_period_end=True,
            )
        else:
            sub = self._call("subscription cancel", stripe.Subscription.cancel, subscription_id)
        return _as_dict(sub)

    def end_trial(self, subscription_id: str) -> dict[str, Any]:
        return _as_dict(
            self._call("trial end", stripe.Subscription.modify, subscription_id, trial_end="now")
        )

    # Webhooks

    def construct_event(self, payload: bytes, signature: str) -> dict[str, Any]:
        """Verify the webhook signature and return the event as a dict."""

        if not self.webhook_secret:
            raise ValidationError("Webhook secret is not configured")
        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as exc:
            logger.warning("Rejected Stripe webhook: %s", exc)
            raise ValidationError("Invalid webhook signature") from exc
        return _as_dict(event)
