"""Account management and balance computation."""

from __future__ import annotations

import logging
from datetime import date
from typing import Iterable, Optional

from ..errors import NotFound, ValidationError
from ..models import Account, Transaction
from ..models.account import ACCOUNT_TYPES
from . import billing

logger = logging.getLogger(__name__)


def balance_from_transactions(
    initial_balance: float, transactions: Iterable[Transaction], *, as_of: Optional[date] = None
) -> float:
    """Initial balance plus incomes minus expenses with transfers by direction.

    Transactions dated after ``as_of`` (default today) are ignored.
    """

    cutoff = as_of or date.today()
    balance = float(initial_balance or 0.0)
    for tx in transactions:
        if tx.occurred_on > cutoff:
            continue
        amount = abs(float(tx.amount))
        if tx.tx_type == "income":
            balance += amount
        elif tx.tx_type == "expense":
            balance -= amount
        elif tx.is_transfer_out:
            balance -= amount
        elif tx.is_transfer_in:
            balance += amount
    return round(balance, 2)


def account_balance(ctx, account: Account, *, as_of: Optional[date] = None) -> float:
    transactions = ctx.transaction_repo.list_for_account(
        account.id, user_id=account.user_id, until=as_of or date.today()
    )
    return balance_from_transactions(account.initial_balance, transactions, as_of=as_of)


def list_accounts_with_balances(ctx, *, user_id: int) -> list[dict]:
    rows = []
    for account in ctx.account_repo.list_all(user_id=user_id):
        data = account.model_dump(mode="json")
        data["balance"] = account_balance(ctx, account)
        data["is_linked"] = account.is_linked
        rows.append(data)
    return rows


def get_account(ctx, account_id: int, *, user_id: int) -> Account:
    account = ctx.account_repo.get_by_id(account_id, user_id=user_id)
    if account is None:
        raise NotFound("Account not found")
    return account


def _clean(data: dict, *, partial: bool) -> dict:
    cleaned: dict = {}
    errors: dict[str, list[str]] = {}
    if "name" in data or not partial:
        name = str(data.get("name") or "").strip()
        if not name:
            errors.setdefault("name", []).append("Name is required.")
        elif len(name) > 128:
            errors.setdefault("name", []).append("Name must be 128 characters or fewer.")
        cleaned["name"] = name
    if "account_type" in data or not partial:
        account_type = str(data.get("account_type") or "checking").strip().lower()
        if account_type not in ACCOUNT_TYPES:
            errors.setdefault("account_type", []).append("Unknown account type.")
        cleaned["account_type"] = account_type
    for key in ("initial_balance", "credit_limit"):
        if key not in data:
            continue
        raw = data.get(key)
        if raw in (None, ""):
            cleaned[key] = 0.0 if key == "initial_balance" else None
            continue
        try:
            cleaned[key] = float(raw)
        except (TypeError, ValueError):
            errors.setdefault(key, []).append("Enter a valid number.")
    if "currency" in data:
        currency = str(data.get("currency") or "USD").strip().upper()
        if len(currency) != 3:
            errors.setdefault("currency", []).append("Currency must be a 3-letter code.")
        cleaned["currency"] = currency
    if errors:
        raise ValidationError("Invalid account", errors)
    return cleaned


def create_account(ctx, *, user_id: int, data: dict) -> Account:
    billing.check_account_limit(ctx, user_id=user_id)
    cleaned = _clean(data, partial=False)
    is_first = ctx.account_repo.count(user_id=user_id) == 0
    account = ctx.account_repo.create(
        Account(user_id=user_id, is_default=is_first, **cleaned)
    )
    if data.get("is_default") and not is_first:
        account = ctx.account_repo.set_default(account.id, user_id=user_id) or account
    logger.info("Account created", extra={"user_id": user_id, "account_id": account.id})
    return account


def update_account(ctx, account_id: int, *, user_id: int, data: dict) -> Account:
    account = get_account(ctx, account_id, user_id=user_id)
    for key, value in _clean(data, partial=True).items():
        setattr(account, key, value)
    account = ctx.account_repo.update(account)
    if data.get("is_default"):
        account = ctx.account_repo.set_default(account.id, user_id=user_id) or account
    return account


def set_default_account(ctx, account_id: int, *, user_id: int) -> Account:
    account = ctx.account_repo.set_default(account_id, user_id=user_id)
    if account is None:
        raise NotFound("Account not found")
    return account


def delete_account(
    ctx, account_id: int, *, user_id: int, transfer_to_account_id: Optional[int] = None
) -> dict:
    """Delete an account, moving its transactions to another account first.

    An account with transactions cannot be deleted without a destination.
    """

    account = get_account(ctx, account_id, user_id=user_id)
    tx_count = len(ctx.transaction_repo.list_for_account(account.id, user_id=user_id))
    moved = 0
    if tx_count:
        if not transfer_to_account_id:
            raise ValidationError(
                "Account has associated transactions. Please select a destination account "
                "to transfer them to."
            )
        if transfer_to_account_id == account.id:
            raise ValidationError("Destination account must be different from the deleted account")
        get_account(ctx, transfer_to_account_id, user_id=user_id)
        moved = ctx.transaction_repo.reassign_account(
            account.id, transfer_to_account_id, user_id=user_id
        )
    ctx.account_repo.detach_references(account.id, user_id=user_id)
    ctx.account_repo.delete(account.id, user_id=user_id)
    if account.is_default:
        remaining = ctx.account_repo.list_all(user_id=user_id)
        if remaining:
            ctx.account_repo.set_default(remaining[0].id, user_id=user_id)
    logger.info(
        "Account deleted", extra={"user_id": user_id, "account_id": account_id, "moved": moved}
    )
    return {"deleted": account_id, "moved_transactions": moved}
