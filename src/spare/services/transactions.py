"""Ledger transactions: creation with category suggestions, transfers, summaries."""

from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from ..errors import NotFound, ValidationError
from ..infra.repositories.transaction import TransactionQuery
from ..models import Transaction
from ..timeutils import month_bounds
from . import billing
from .category_learning import suggest_category

logger = logging.getLogger(__name__)


def _check_refs(
    ctx,
    *,
    user_id: int,
    account_id: int,
    to_account_id: Optional[int],
    category_id: Optional[int],
    subcategory_id: Optional[int],
) -> None:
    errors: dict[str, list[str]] = {}
    if ctx.account_repo.get_by_id(account_id, user_id=user_id) is None:
        errors["account_id"] = ["Account not found."]
    if to_account_id is not None and ctx.account_repo.get_by_id(to_account_id, user_id=user_id) is None:
        errors["to_account_id"] = ["Destination account not found."]
    if category_id is not None and ctx.category_repo.get_category(category_id, user_id=user_id) is None:
        errors["category_id"] = ["Category not found."]
    if subcategory_id is not None:
        subcategory = ctx.category_repo.get_subcategory(subcategory_id, user_id=user_id)
        if subcategory is None or (category_id is not None and subcategory.category_id != category_id):
            errors["subcategory_id"] = ["Subcategory not found for this category."]
    if errors:
        raise ValidationError("Invalid transaction", errors)


def apply_suggestion(ctx, tx: Transaction, *, user_id: int) -> Transaction:
    """Fill category fields from history when the transaction has none.

    High confidence assigns the category directly; lower levels only populate
    the ``suggested_*`` fields for the user to accept.
    """

    if tx.category_id is not None or tx.tx_type == "transfer":
        return tx
    suggestion = suggest_category(
        ctx, user_id=user_id, description=tx.description, amount=tx.amount, tx_type=tx.tx_type
    )
    if suggestion is None:
        return tx
    if suggestion.confidence == "high":
        tx.category_id = suggestion.category_id
        tx.subcategory_id = suggestion.subcategory_id
    else:
        tx.suggested_category_id = suggestion.category_id
        tx.suggested_subcategory_id = suggestion.subcategory_id
    return tx


def create_transaction(
    ctx,
    *,
    user_id: int,
    occurred_on: date,
    amount: float,
    account_id: int,
    tx_type: str = "expense",
    to_account_id: Optional[int] = None,
    description: str = "",
    category_id: Optional[int] = None,
    subcategory_id: Optional[int] = None,
    is_recurring: bool = False,
    external_id: Optional[str] = None,
    enforce_limit: bool = True,
) -> list[Transaction]:
    """Create a transaction; transfers produce the outgoing and incoming rows.

    Returns the created rows (one, or two for a transfer, outgoing first).
    """

    if tx_type == "transfer":
        if not to_account_id:
            raise ValidationError("Transfers need a destination account.")
        if to_account_id == account_id:
            raise ValidationError("Destination account must differ from the source account.")
    _check_refs(
        ctx,
        user_id=user_id,
        account_id=account_id,
        to_account_id=to_account_id if tx_type == "transfer" else None,
        category_id=category_id,
        subcategory_id=subcategory_id,
    )
    if enforce_limit:
        billing.check_transaction_limit(ctx, user_id=user_id, on=occurred_on)

    amount = abs(float(amount))
    if tx_type == "transfer":
        outgoing = Transaction(
            user_id=user_id,
            account_id=account_id,
            occurred_on=occurred_on,
            tx_type="transfer",
            amount=amount,
            description=description,
            category_id=category_id,
            subcategory_id=subcategory_id,
            is_recurring=is_recurring,
            external_id=external_id,
        )
        incoming = Transaction(
            user_id=user_id,
            account_id=to_account_id,
            occurred_on=occurred_on,
            tx_type="transfer",
            amount=amount,
            description=description,
            category_id=category_id,
            subcategory_id=subcategory_id,
            is_recurring=is_recurring,
        )
        pair = ctx.transaction_repo.create_transfer(outgoing, incoming)
        logger.info("Transfer created", extra={"user_id": user_id, "transaction_id": pair[0].id})
        return list(pair)

    tx = Transaction(
        user_id=user_id,
        account_id=account_id,
        occurred_on=occurred_on,
        tx_type=tx_type,
        amount=amount,
        description=description,
        category_id=category_id,
        subcategory_id=subcategory_id,
        is_recurring=is_recurring,
        external_id=external_id,
    )
    apply_suggestion(ctx, tx, user_id=user_id)
    return [ctx.transaction_repo.create(tx)]


def get_transaction(ctx, tx_id: int, *, user_id: int) -> Transaction:
    tx = ctx.transaction_repo.get_by_id(tx_id, user_id=user_id)
    if tx is None:
        raise NotFound("Transaction not found")
    return tx


def update_transaction(
    ctx,
    tx_id: int,
    *,
    user_id: int,
    occurred_on: date,
    amount: float,
    account_id: int,
    tx_type: str = "expense",
    to_account_id: Optional[int] = None,
    description: str = "",
    category_id: Optional[int] = None,
    subcategory_id: Optional[int] = None,
    is_recurring: bool = False,
) -> list[Transaction]:
    """Update a transaction; edits to either transfer leg are mirrored on the other."""

    tx = get_transaction(ctx, tx_id, user_id=user_id)
    if (tx.tx_type == "transfer") != (tx_type == "transfer"):
        raise ValidationError("A transfer cannot change type. Delete it and create a new transaction.")
    other = None
    if tx.counterpart_id is not None:
        other = ctx.transaction_repo.get_by_id(tx.counterpart_id, user_id=user_id)
    if tx_type == "transfer":
        destination = to_account_id or (other.account_id if other is not None else None)
        if destination == account_id:
            raise ValidationError("Destination account must differ from the source account.")
    _check_refs(
        ctx,
        user_id=user_id,
        account_id=account_id,
        to_account_id=to_account_id if tx_type == "transfer" else None,
        category_id=category_id,
        subcategory_id=subcategory_id,
    )

    tx.occurred_on = occurred_on
    tx.amount = abs(float(amount))
    tx.tx_type = tx_type
    tx.description = description
    tx.category_id = category_id
    tx.subcategory_id = subcategory_id
    tx.is_recurring = is_recurring
    if category_id is not None:
        tx.suggested_category_id = None
        tx.suggested_subcategory_id = None
    tx.account_id = account_id
    updated = [ctx.transaction_repo.update(tx)]

    if other is not None:
        other.occurred_on = tx.occurred_on
        other.amount = tx.amount
        other.description = tx.description
        other.category_id = tx.category_id
        other.subcategory_id = tx.subcategory_id
        other.is_recurring = tx.is_recurring
        if to_account_id is not None:
            other.account_id = to_account_id
        updated.append(ctx.transaction_repo.update(other))
    return updated


def delete_transaction(ctx, tx_id: int, *, user_id: int) -> list[int]:
    """Delete a transaction (and its transfer counterpart); returns deleted ids."""

    deleted = ctx.transaction_repo.delete_with_counterpart(tx_id, user_id=user_id)
    if not deleted:
        raise NotFound("Transaction not found")
    return deleted


def accept_suggestion(ctx, tx_id: int, *, user_id: int) -> Transaction:
    tx = get_transaction(ctx, tx_id, user_id=user_id)
    if tx.suggested_category_id is None:
        raise ValidationError("Transaction has no category suggestion")
    tx.category_id = tx.suggested_category_id
    tx.subcategory_id = tx.suggested_subcategory_id
    tx.suggested_category_id = None
    tx.suggested_subcategory_id = None
    return ctx.transaction_repo.update(tx)


def search_transactions(
    ctx, query: TransactionQuery, *, user_id: int, page: int = 1, per_page: int = 50
) -> dict:
    page = max(page, 1)
    per_page = min(max(per_page, 1), 500)
    rows, total = ctx.transaction_repo.search(
        query, user_id=user_id, limit=per_page, offset=(page - 1) * per_page
    )
    return {"items": rows, "total": total, "page": page, "per_page": per_page}


def monthly_summary(ctx, *, user_id: int, period: date) -> dict:
    """Income, expenses and net for the month containing ``period``; transfers excluded."""

    first, last = month_bounds(period)
    income = expenses = 0.0
    for tx in ctx.transaction_repo.list_between(first, last, user_id=user_id):
        if tx.tx_type == "income":
            income += tx.amount
        elif tx.tx_type == "expense":
            expenses += tx.amount
    return {
        "period": first.strftime("%Y-%m"),
        "income": round(income, 2),
        "expenses": round(expenses, 2),
        "net": round(income - expenses, 2),
    }
