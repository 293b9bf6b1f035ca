"""Reporting utilities: spending breakdowns, monthly series and net worth."""

from __future__ import annotations

from datetime import date
from typing import Any, Iterable, Optional

import pandas as pd

from ..models.transaction import Transaction
from ..timeutils import add_months, month_bounds, month_start
from . import accounts as account_service

UNCATEGORIZED = "Uncategorized"


def _frame(transactions: Iterable[Transaction]) -> pd.DataFrame:
    """Income and expense rows as a DataFrame; transfers are excluded."""

    records = [
        {
            "occurred_on": tx.occurred_on,
            "tx_type": tx.tx_type,
            "amount": abs(float(tx.amount)),
            "category_id": tx.category_id,
        }
        for tx in transactions
        if tx.tx_type in ("income", "expense")
    ]
    return pd.DataFrame.from_records(records, columns=["occurred_on", "tx_type", "amount", "category_id"])


def spending_by_category(
    *,
    transactions: Iterable[Transaction],
    category_lookup: dict[int, str] | None = None,
) -> list[dict[str, Any]]:
    """Expense totals per category sorted by amount descending."""

    frame = _frame(transactions)
    frame = frame[frame["tx_type"] == "expense"]
    if frame.empty:
        return []
    frame = frame.assign(category_id=frame["category_id"].fillna(-1).astype(int))
    grouped = frame.groupby("category_id")["amount"].sum().sort_values(ascending=False)
    total = float(grouped.sum())
    lookup = category_lookup or {}
    rows = []
    for category_id, amount in grouped.items():
        cid = None if category_id == -1 else int(category_id)
        rows.append(
            {
                "category_id": cid,
                "category": lookup.get(cid, UNCATEGORIZED) if cid is not None else UNCATEGORIZED,
                "amount": round(float(amount), 2),
                "percentage": round(float(amount) / total * 100, 2) if total else 0.0,
            }
        )
    return rows


def monthly_series(
    *, transactions: Iterable[Transaction], start: date, months: int
) -> list[dict[str, Any]]:
    """Income, expenses and net per month for ``months`` months from ``start``."""

    frame = _frame(transactions)
    index = pd.period_range(start=pd.Period(month_start(start).isoformat(), freq="M"), periods=months, freq="M")
    if frame.empty:
        pivot = pd.DataFrame(0.0, index=index, columns=["income", "expense"])
    else:
        frame["month"] = pd.to_datetime(frame["occurred_on"]).dt.to_period("M")
        pivot = (
            frame.pivot_table(index="month", columns="tx_type", values="amount", aggfunc="sum", fill_value=0.0)
            .reindex(index=index, fill_value=0.0)
            .reindex(columns=["income", "expense"], fill_value=0.0)
        )
    return [
        {
            "month": str(period),
            "income": round(float(row["income"]), 2),
            "expenses": round(float(row["expense"]), 2),
            "net": round(float(row["income"] - row["expense"]), 2),
        }
        for period, row in pivot.iterrows()
    ]


def category_report(
    ctx, *, user_id: int, start: Optional[date] = None, end: Optional[date] = None
) -> dict[str, Any]:
    if start is None or end is None:
        start, end = month_bounds(start or date.today())
    transactions = ctx.transaction_repo.list_between(start, end, user_id=user_id, tx_type="expense")
    lookup = {c.id: c.name for c in ctx.category_repo.list_categories(user_id=user_id)}
    rows = spending_by_category(transactions=transactions, category_lookup=lookup)
    return {
        "start": start.isoformat(),
        "end": end.isoformat(),
        "total": round(sum(r["amount"] for r in rows), 2),
        "categories": rows,
    }


def income_expense_report(
    ctx, *, user_id: int, months: int = 6, today: Optional[date] = None
) -> list[dict[str, Any]]:
    months = max(1, min(months, 24))
    first = add_months(month_start(today or date.today()), -(months - 1))
    _, last = month_bounds(today or date.today())
    transactions = ctx.transaction_repo.list_between(first, last, user_id=user_id)
    return monthly_series(transactions=transactions, start=first, months=months)


def net_worth(ctx, *, user_id: int) -> dict[str, Any]:
    """Account balances minus outstanding debt balances."""

    accounts = account_service.list_accounts_with_balances(ctx, user_id=user_id)
    debts = ctx.debt_repo.list_open(user_id=user_id)
    assets = round(sum(a["balance"] for a in accounts), 2)
    liabilities = round(sum(d.current_balance for d in debts), 2)
    return {
        "assets": assets,
        "liabilities": liabilities,
        "net_worth": round(assets - liabilities, 2),
        "accounts": [{"id": a["id"], "name": a["name"], "balance": a["balance"]} for a in accounts],
        "debts": [{"id": d.id, "name": d.name, "balance": d.current_balance} for d in debts],
    }
