"""CSV export helpers for Spare."""

from __future__ import annotations

import csv
import io
from datetime import date, datetime
from typing import Iterable, Mapping, Optional

from ..models.transaction import Transaction

HEADERS = [
    "id",
    "date",
    "type",
    "amount",
    "description",
    "account",
    "category",
    "subcategory",
    "transfer_account",
]


def _serialize_value(value):
    if value is None:
        return ""
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def export_transactions_csv(
    *,
    transactions: Iterable[Transaction],
    account_names: Mapping[int, str],
    category_names: Optional[Mapping[int, str]] = None,
    subcategory_names: Optional[Mapping[int, str]] = None,
) -> str:
    """Render transactions as CSV text with deterministic columns.

    Each transfer leg is one row; ``transfer_account`` names the other leg's account.
    """

    category_names = category_names or {}
    subcategory_names = subcategory_names or {}
    rows = list(transactions)
    account_by_tx = {tx.id: tx.account_id for tx in rows}

    buffer = io.StringIO()
    writer = csv.DictWriter(
        buffer, fieldnames=HEADERS, extrasaction="ignore", quoting=csv.QUOTE_MINIMAL
    )
    writer.writeheader()
    for tx in rows:
        counterpart_account = account_by_tx.get(tx.counterpart_id) if tx.counterpart_id else None
        writer.writerow(
            {
                "id": _serialize_value(tx.id),
                "date": _serialize_value(tx.occurred_on),
                "type": tx.tx_type,
                "amount": f"{tx.amount:.2f}",
                "description": tx.description,
                "account": account_names.get(tx.account_id, ""),
                "category": category_names.get(tx.category_id, "") if tx.category_id else "",
                "subcategory": subcategory_names.get(tx.subcategory_id, "")
                if tx.subcategory_id
                else "",
                "transfer_account": account_names.get(counterpart_account, "")
                if counterpart_account
                else "",
            }
        )
    return buffer.getvalue()
