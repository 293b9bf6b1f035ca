"""Wrapper over the Plaid SDK returning plain dicts."""

from __future__ import annotations

import json
from typing import Any, Optional

from plaid.api import plaid_api
from plaid.api_client import ApiClient
from plaid.configuration import Configuration
from plaid.exceptions import ApiException
from plaid.model.accounts_get_request import AccountsGetRequest
from plaid.model.country_code import CountryCode
from plaid.model.item_public_token_exchange_request import ItemPublicTokenExchangeRequest
from plaid.model.item_remove_request import ItemRemoveRequest
from plaid.model.link_token_create_request import LinkTokenCreateRequest
from plaid.model.link_token_create_request_user import LinkTokenCreateRequestUser
from plaid.model.products import Products
from plaid.model.transactions_sync_request import TransactionsSyncRequest

from ...errors import ExternalServiceError
from ...logging_config import get_logger

logger = get_logger(__name__)


class BankSyncError(ExternalServiceError):
    """Aggregator failure carrying the aggregator's ``error_code``."""

    def __init__(self, message: str, error_code: Optional[str] = None):
        super().__init__(message, error_code=error_code)
        self.error_code = error_code


def _raise_from(exc: ApiException, action: str) -> None:
    error_code = None
    message = f"Bank connection error during {action}"
    try:
        body = json.loads(exc.body or "{}")
    except (TypeError, ValueError):
        body = {}
    if isinstance(body, dict):
        error_code = body.get("error_code")
        message = body.get("display_message") or body.get("error_message") or message
    logger.error("Plaid %s failed: %s", action, error_code or exc)
    raise BankSyncError(message, error_code=error_code) from exc


class PlaidGateway:
    def __init__(
        self,
        *,
        client_id: str,
        secret: str,
        host: str,
        webhook_url: str = "",
        client_name: str = "Spare",
    ):
        configuration = Configuration(
            host=host,
            api_key={"clientId": client_id, "secret": secret},
        )
        self.client = plaid_api.PlaidApi(ApiClient(configuration))
        self.webhook_url = webhook_url
        self.client_name = client_name

    def create_link_token(self, *, user_id: int, country_codes: tuple[str, ...] = ("US", "CA")) -> str:
        params: dict[str, Any] = {
            "products": [Products("transactions")],
            "client_name": self.client_name,
            "country_codes": [CountryCode(code) for code in country_codes],
            "language": "en",
            "user": LinkTokenCreateRequestUser(client_user_id=str(user_id)),
        }
        if self.webhook_url:
            params["webhook"] = self.webhook_url
        try:
            response = self.client.link_token_create(LinkTokenCreateRequest(**params))
        except ApiException as exc:
            _raise_from(exc, "link token creation")
        return response.link_token

    def exchange_public_token(self, public_token: str) -> tuple[str, str]:
        """Return (access_token, item_id)."""
        try:
            response = self.client.item_public_token_exchange(
                ItemPublicTokenExchangeRequest(public_token=public_token)
            )
        except ApiException as exc:
            _raise_from(exc, "token exchange")
        return response.access_token, response.item_id

    def get_accounts(self, access_token: str) -> list[dict[str, Any]]:
        try:
            response = self.client.accounts_get(AccountsGetRequest(access_token=access_token))
        except ApiException as exc:
            _raise_from(exc, "account lookup")
        accounts = []
        for account in response.to_dict().get("accounts", []):
            balances = account.get("balances") or {}
            accounts.append(
                {
                    "account_id": account.get("account_id"),
                    "name": account.get("name") or account.get("official_name") or "Account",
                    "mask": account.get("mask"),
                    "type": str(account.get("type") or "other"),
                    "subtype": str(account.get("subtype") or ""),
                    "current_balance": balances.get("current"),
                    "limit": balances.get("limit"),
                    "currency": balances.get("iso_currency_code") or "USD",
                }
            )
        return accounts

    def transactions_sync(self, access_token: str, cursor: Optional[str]) -> dict[str, Any]:
        """One page of ``/transactions/sync``.

        Returns ``{"added", "modified", "removed", "next_cursor", "has_more"}``.
        """
        params: dict[str, Any] = {"access_token": access_token}
        if cursor:
            params["cursor"] = cursor
        try:
            response = self.client.transactions_sync(TransactionsSyncRequest(**params))
        except ApiException as exc:
            _raise_from(exc, "transactions sync")
        data = response.to_dict()
        return {
            "added": data.get("added", []),
            "modified": data.get("modified", []),
            "removed": data.get("removed", []),
            "next_cursor": data.get("next_cursor"),
            "has_more": bool(data.get("has_more")),
        }

    def remove_item(self, access_token: str) -> None:
        try:
            self.client.item_remove(ItemRemoveRequest(access_token=access_token))
        except ApiException as exc:
            _raise_from(exc, "item removal")
