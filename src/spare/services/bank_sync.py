"""Bank linking and transaction sync through the aggregation API."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Optional

from ..errors import AppError, Forbidden, NotFound, ValidationError
from ..infra.integrations.plaid_gateway import BankSyncError
from ..models import Account, ImportJob, PlaidItem, Transaction
from ..timeutils import utcnow
from . import billing, import_jobs
from .category_learning import suggest_category

logger = logging.getLogger(__name__)

MUTATION_DURING_PAGINATION = "TRANSACTIONS_SYNC_MUTATION_DURING_PAGINATION"
MAX_PAGINATION_RESTARTS = 3

INCOME_KEYWORDS = (
    "transfer",
    "deposit",
    "interest",
    "dividend",
    "salary",
    "payroll",
    "income",
    "reimbursement",
    "refund",
)
EXPENSE_KEYWORDS = (
    "food and drink",
    "shops",
    "gas stations",
    "groceries",
    "restaurants",
    "entertainment",
    "travel",
    "bills",
    "utilities",
)
SYNC_WEBHOOK_CODES = ("SYNC_UPDATES_AVAILABLE", "DEFAULT_UPDATE", "INITIAL_UPDATE", "HISTORICAL_UPDATE")


def map_account_type(plaid_type: str, subtype: str = "") -> str:
    plaid_type = (plaid_type or "").lower()
    subtype = (subtype or "").lower()
    if plaid_type == "depository":
        return "savings" if subtype in ("savings", "money market", "cd", "hsa") else "checking"
    if plaid_type == "credit":
        return "credit"
    if plaid_type in ("investment", "brokerage"):
        return "investment"
    return "other"


def _primary_category(plaid_tx: dict[str, Any]) -> str:
    categories = plaid_tx.get("category") or []
    if isinstance(categories, list) and categories:
        return str(categories[0]).lower()
    pfc = plaid_tx.get("personal_finance_category") or {}
    return str(pfc.get("primary") or "").replace("_", " ").lower()


def is_expense(plaid_tx: dict[str, Any], account_type: str) -> bool:
    """Decide expense vs income for an aggregator transaction.

    Credit accounts treat positive amounts as spending. Deposit accounts look
    at the transaction type, then category keywords, then the merchant, and
    finally the amount sign.
    """

    kind = plaid_tx.get("transaction_type")
    amount = float(plaid_tx.get("amount") or 0)
    if account_type == "credit":
        if kind in ("place", "digital"):
            return True
        return amount > 0

    if kind in ("place", "digital"):
        return True
    primary = _primary_category(plaid_tx)
    if any(keyword in primary for keyword in INCOME_KEYWORDS):
        return False
    if any(keyword in primary for keyword in EXPENSE_KEYWORDS):
        return True
    if plaid_tx.get("merchant_name") or plaid_tx.get("name"):
        return True
    return amount < 0


def determine_transaction_type(plaid_tx: dict[str, Any], account_type: str) -> str:
    """``expense``/``income``, or ``transfer`` for a credit card payment."""

    expense = is_expense(plaid_tx, account_type)
    if account_type == "credit" and not expense:
        code = plaid_tx.get("transaction_code")
        primary = _primary_category(plaid_tx)
        description = _description(plaid_tx).lower()
        amount = float(plaid_tx.get("amount") or 0)
        if code in ("payment", "credit") or (
            amount < 0
            and ("payment" in primary or "transfer" in primary or "payment" in description)
        ):
            return "transfer"
    return "expense" if expense else "income"


def _description(plaid_tx: dict[str, Any]) -> str:
    return str(
        plaid_tx.get("name")
        or plaid_tx.get("merchant_name")
        or plaid_tx.get("original_description")
        or "Bank transaction"
    )[:255]


def _tx_date(value: Any) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError as exc:
        raise ValidationError(f"Invalid date format from bank: {value}") from exc


# Linking


def create_link_token(ctx, *, user_id: int) -> str:
    return ctx.require_bank().create_link_token(user_id=user_id)


def exchange_public_token(
    ctx, *, user_id: int, public_token: str, metadata: Optional[dict[str, Any]] = None
) -> dict[str, Any]:
    """Store the new connection, create or relink its accounts and queue their syncs."""

    if not public_token:
        raise ValidationError("public_token is required")
    gateway = ctx.require_bank()
    access_token, item_id = gateway.exchange_public_token(public_token)
    institution = (metadata or {}).get("institution") or {}

    remote_accounts = gateway.get_accounts(access_token)
    new_accounts = [
        remote
        for remote in remote_accounts
        if ctx.account_repo.get_by_plaid_account_id(remote["account_id"]) is None
    ]
    limit = billing.current_limits(ctx, user_id=user_id)["max_accounts"]
    if limit is not None and limit >= 0:
        if ctx.account_repo.count(user_id=user_id) + len(new_accounts) > limit:
            raise Forbidden(f"You've reached your account limit ({limit}).", upgrade_required=True)

    item = ctx.plaid_item_repo.get_by_item_id(item_id)
    if item is None:
        item = PlaidItem(user_id=user_id, item_id=item_id, access_token=access_token)
    item.access_token = access_token
    item.institution_id = institution.get("institution_id") or item.institution_id
    item.institution_name = institution.get("name") or item.institution_name or "Bank"
    item.status = "good"
    item.error_code = None
    item = ctx.plaid_item_repo.update(item) if item.id else ctx.plaid_item_repo.create(item)

    accounts: list[Account] = []
    for remote in remote_accounts:
        account = ctx.account_repo.get_by_plaid_account_id(remote["account_id"])
        account_type = map_account_type(remote.get("type", ""), remote.get("subtype", ""))
        if account is None:
            account = ctx.account_repo.create(
                Account(
                    user_id=user_id,
                    name=remote.get("name") or "Account",
                    account_type=account_type,
                    initial_balance=0.0,
                    currency=(remote.get("currency") or "USD")[:3],
                    credit_limit=remote.get("limit"),
                    plaid_item_id=item.id,
                    plaid_account_id=remote["account_id"],
                    is_default=ctx.account_repo.count(user_id=user_id) == 0,
                )
            )
        else:
            account.plaid_item_id = item.id
            account = ctx.account_repo.update(account)
        accounts.append(account)

    queued = queue_item_sync(ctx, item, accounts=accounts)
    logger.info(
        "Bank connection linked",
        extra={"user_id": user_id, "item_id": item.id, "accounts": len(accounts)},
    )
    return {"item": item, "accounts": accounts, "jobs": queued}


def queue_item_sync(
    ctx, item: PlaidItem, *, accounts: Optional[list[Account]] = None
) -> list[ImportJob]:
    """Queue one sync job per linked account that has no open job yet."""

    if accounts is None:
        accounts = ctx.account_repo.list_by_item(item.id, user_id=item.user_id)
    queued = []
    for account in accounts:
        if not account.plaid_account_id:
            continue
        if ctx.import_job_repo.has_open_job(account_id=account.id, job_type="plaid_sync"):
            continue
        queued.append(
            import_jobs.enqueue_job(
                ctx,
                user_id=item.user_id,
                job_type="plaid_sync",
                account_id=account.id,
                payload={
                    "plaid_account_id": account.plaid_account_id,
                    "item_pk": item.id,
                    "start_cursor": item.transactions_cursor,
                },
                run_now=False,
            )
        )
    if queued:
        from . import jobs

        jobs.dispatch(
            f"plaid-{item.id}", import_jobs.process_pending_jobs, ctx=ctx, user_id=item.user_id
        )
    return queued


# Syncing


def fetch_changes(gateway, access_token: str, cursor: Optional[str]) -> dict[str, Any]:
    """Page through ``/transactions/sync`` from ``cursor`` until ``has_more`` is false.

    A mutation during pagination restarts from the original cursor.
    """

    restarts = 0
    while True:
        added: list[dict] = []
        modified: list[dict] = []
        removed: list[str] = []
        current = cursor
        try:
            while True:
                page = gateway.transactions_sync(access_token, current)
                added.extend(page.get("added") or [])
                modified.extend(page.get("modified") or [])
                removed.extend(
                    entry.get("transaction_id") if isinstance(entry, dict) else str(entry)
                    for entry in page.get("removed") or []
                )
                current = page.get("next_cursor") or current
                if not page.get("has_more"):
                    break
        except BankSyncError as exc:
            if exc.error_code != MUTATION_DURING_PAGINATION or restarts >= MAX_PAGINATION_RESTARTS:
                raise
            restarts += 1
            logger.warning("Mutation during pagination, restarting from original cursor")
            continue
        return {"added": added, "modified": modified, "removed": removed, "next_cursor": current}


def _create_synced(ctx, account: Account, plaid_tx: dict[str, Any]) -> Transaction:
    tx_type = determine_transaction_type(plaid_tx, account.account_type)
    description = _description(plaid_tx)
    amount = abs(float(plaid_tx.get("amount") or 0))
    tx = Transaction(
        user_id=account.user_id,
        account_id=account.id,
        occurred_on=_tx_date(plaid_tx.get("date")),
        tx_type=tx_type,
        amount=amount,
        description=description,
        external_id=plaid_tx["transaction_id"],
    )
    suggestion = suggest_category(
        ctx, user_id=account.user_id, description=description, amount=amount, tx_type=tx_type
    )
    if suggestion is not None:
        tx.suggested_category_id = suggestion.category_id
        tx.suggested_subcategory_id = suggestion.subcategory_id
    return ctx.transaction_repo.create_synced(tx, plaid_transaction_id=plaid_tx["transaction_id"])


def sync_account_transactions(ctx, *, reporter) -> None:
    """Import new aggregator transactions for the job's account in batches."""

    job = reporter.job
    payload = job.payload or {}
    plaid_account_id = payload.get("plaid_account_id")
    item_pk = payload.get("item_pk")
    if not plaid_account_id or not item_pk:
        raise AppError("Missing plaid_account_id or item_pk in job metadata")
    item = ctx.plaid_item_repo.get(int(item_pk))
    if item is None or not item.access_token:
        raise AppError("Access token not found for bank connection")
    account = ctx.account_repo.get_by_id(job.account_id, user_id=job.user_id) if job.account_id else None
    if account is None:
        raise AppError("Account not found")

    gateway = ctx.require_bank()
    cursor = payload["start_cursor"] if "start_cursor" in payload else item.transactions_cursor
    changes = fetch_changes(gateway, item.access_token, cursor)

    item.transactions_cursor = changes["next_cursor"]
    item.last_synced_at = utcnow()
    ctx.plaid_item_repo.update(item)

    mine = [
        tx
        for tx in changes["added"] + changes["modified"]
        if tx.get("account_id") == plaid_account_id and tx.get("transaction_id")
    ]
    reporter.set_total(len(mine))
    already = ctx.transaction_repo.synced_ids(tx["transaction_id"] for tx in mine)

    for offset in range(0, len(mine), import_jobs.BATCH_SIZE):
        for plaid_tx in mine[offset : offset + import_jobs.BATCH_SIZE]:
            tx_id = plaid_tx["transaction_id"]
            if tx_id in already:
                reporter.record(skipped=1)
                continue
            try:
                _create_synced(ctx, account, plaid_tx)
            except AppError as exc:
                logger.warning("Skipping bank transaction %s: %s", tx_id, exc.message)
                reporter.record(errors=1)
            else:
                already.add(tx_id)
                reporter.record(synced=1)
        reporter.flush()

    if changes["removed"]:
        removed = ctx.transaction_repo.delete_by_external_ids(changes["removed"], user_id=account.user_id)
        logger.info("Removed %s transactions deleted at the bank", removed)


# Webhooks and disconnects


def handle_webhook(ctx, payload: dict[str, Any]) -> dict[str, Any]:
    webhook_type = payload.get("webhook_type")
    webhook_code = payload.get("webhook_code")
    item = ctx.plaid_item_repo.get_by_item_id(payload.get("item_id") or "")
    if item is None:
        logger.warning("Webhook for unknown item %s", payload.get("item_id"))
        return {"handled": False}

    if webhook_type == "TRANSACTIONS" and webhook_code in SYNC_WEBHOOK_CODES:
        queued = queue_item_sync(ctx, item)
        return {"handled": True, "queued_jobs": len(queued)}
    if webhook_type == "ITEM" and webhook_code == "ERROR":
        error = payload.get("error") or {}
        item.status = "error"
        item.error_code = error.get("error_code")
        ctx.plaid_item_repo.update(item)
        return {"handled": True}
    if webhook_type == "ITEM" and webhook_code == "PENDING_EXPIRATION":
        item.status = "pending_expiration"
        ctx.plaid_item_repo.update(item)
        return {"handled": True}
    return {"handled": False}


def list_items(ctx, *, user_id: int) -> list[dict[str, Any]]:
    rows = []
    for item in ctx.plaid_item_repo.list_all(user_id=user_id):
        data = item.model_dump(mode="json", exclude={"access_token", "transactions_cursor"})
        data["accounts"] = [
            account.model_dump(mode="json")
            for account in ctx.account_repo.list_by_item(item.id, user_id=user_id)
        ]
        rows.append(data)
    return rows


def sync_item(ctx, item_pk: int, *, user_id: int) -> list[ImportJob]:
    item = ctx.plaid_item_repo.get_by_id(item_pk, user_id=user_id)
    if item is None:
        raise NotFound("Bank connection not found")
    return queue_item_sync(ctx, item)


def disconnect_item(ctx, item_pk: int, *, user_id: int) -> dict[str, Any]:
    """Remove the connection at the aggregator and keep its accounts as manual ones."""

    item = ctx.plaid_item_repo.get_by_id(item_pk, user_id=user_id)
    if item is None:
        raise NotFound("Bank connection not found")
    try:
        ctx.require_bank().remove_item(item.access_token)
    except BankSyncError as exc:
        if exc.error_code not in ("ITEM_NOT_FOUND", "INVALID_ACCESS_TOKEN"):
            raise
        logger.warning("Item %s already gone at the bank: %s", item.id, exc.error_code)
    unlinked = ctx.account_repo.unlink_item(item.id, user_id=user_id)
    ctx.plaid_item_repo.delete(item.id, user_id=user_id)
    logger.info("Bank connection removed", extra={"user_id": user_id, "item_id": item.id})
    return {"item_id": item.id, "unlinked_accounts": unlinked}


def disconnect_all(ctx, *, user_id: int) -> dict[str, Any]:
    results = [
        disconnect_item(ctx, item.id, user_id=user_id)
        for item in ctx.plaid_item_repo.list_all(user_id=user_id)
    ]
    return {
        "removed_items": len(results),
        "unlinked_accounts": sum(result["unlinked_accounts"] for result in results),
    }
