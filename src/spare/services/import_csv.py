"""CSV ingestion: parsing, column mapping and import dispatch."""

from __future__ import annotations

import io
import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Iterable, Mapping, Optional

import pandas as pd

from ..errors import AppError, ValidationError
from ..models import Account, ImportJob
from ..models.transaction import TRANSACTION_TYPES
from . import transactions as transaction_service

logger = logging.getLogger(__name__)

SYNC_IMPORT_LIMIT = 20
DATE_FORMATS = ["%Y-%m-%d", "%m/%d/%Y", "%d/%m/%Y", "%Y/%m/%d", "%m-%d-%Y", "%d-%m-%Y"]
_AMOUNT_NOISE = re.compile(r"[^0-9.\-]")


@dataclass(slots=True)
class ColumnMapping:
    """Maps transaction fields to CSV headers; unset fields are not read."""

    date: str | None = None
    amount: str | None = None
    description: str | None = None
    account: str | None = None
    to_account: str | None = None
    category: str | None = None
    subcategory: str | None = None
    type: str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ColumnMapping:
        values = {}
        for key in ("date", "amount", "description", "account", "to_account", "category", "subcategory", "type"):
            raw = data.get(key)
            values[key] = str(raw).strip() if raw not in (None, "") else None
        return cls(**values)


@dataclass(slots=True)
class MapResult:
    row_index: int
    transaction: Optional[dict[str, Any]] = None
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {"row_index": self.row_index, "transaction": self.transaction, "error": self.error}


@dataclass(slots=True)
class ImportOutcome:
    imported: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)
    job: Optional[ImportJob] = None


def normalize_frame(*, content: bytes | str, encoding: str = "utf-8") -> pd.DataFrame:
    """Load CSV content into a string-typed DataFrame with clean headers."""

    text = content.decode(encoding, errors="replace") if isinstance(content, bytes) else content
    text = text.lstrip("\ufeff")
    if not text.strip():
        raise ValidationError("CSV file is empty")
    try:
        frame = pd.read_csv(
            io.StringIO(text), dtype=str, keep_default_na=False, skip_blank_lines=True
        )
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
        raise ValidationError(f"Could not parse CSV: {exc}") from exc
    frame.columns = [str(c).replace("\ufeff", "").strip() for c in frame.columns]
    return frame


def parse_rows(content: bytes | str) -> tuple[list[str], list[dict[str, str]]]:
    """Return (headers, rows) for uploaded CSV content."""

    frame = normalize_frame(content=content)
    rows = [
        {column: str(value) for column, value in record.items()}
        for record in frame.to_dict(orient="records")
    ]
    return list(frame.columns), rows


def extract_unique_account_names(rows: Iterable[Mapping[str, Any]], account_column: str) -> list[str]:
    names = set()
    for row in rows:
        value = str(row.get(account_column) or "").strip()
        if value:
            names.add(value)
    return sorted(names)


def parse_csv_date(raw: str) -> Optional[date]:
    value = (raw or "").strip()
    if not value:
        return None
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    except ValueError:
        return None


def parse_csv_amount(raw: Optional[str]) -> Optional[float]:
    cleaned = _AMOUNT_NOISE.sub("", raw or "")
    try:
        amount = float(cleaned)
    except ValueError:
        return None
    if amount == 0 or amount != amount:
        return None
    return amount


def _find_account(
    name: str, accounts: list[Account], account_mapping: Mapping[str, int]
) -> Optional[Account]:
    if not name:
        return None
    if name in account_mapping:
        target = account_mapping[name]
        return next((a for a in accounts if a.id == target), None)
    exact = next((a for a in accounts if a.name == name), None)
    if exact is not None:
        return exact
    lowered = name.lower()
    return next((a for a in accounts if a.name.lower() == lowered), None)


def map_rows(
    rows: list[Mapping[str, Any]],
    mapping: ColumnMapping,
    accounts: list[Account],
    categories: list[dict[str, Any]],
    *,
    account_mapping: Optional[Mapping[str, int]] = None,
    default_account_id: Optional[int] = None,
    today: Optional[date] = None,
) -> list[MapResult]:
    """Turn raw CSV rows into transaction payloads or 1-based row errors.

    ``categories`` items look like ``{"id", "name", "subcategories": [{"id", "name"}]}``.
    Unknown types fall back to ``expense``; amounts are stored absolute.
    """

    account_mapping = account_mapping or {}
    available = ", ".join(a.name for a in accounts)
    results: list[MapResult] = []

    for index, row in enumerate(rows):
        row_index = index + 1

        def cell(column: Optional[str]) -> str:
            if not column:
                return ""
            return str(row.get(column) or "").strip()

        date_raw = cell(mapping.date)
        if date_raw:
            occurred_on = parse_csv_date(date_raw)
            if occurred_on is None:
                results.append(MapResult(row_index, error=f"Invalid date format: {date_raw}"))
                continue
        else:
            occurred_on = today or date.today()

        amount_raw = cell(mapping.amount) if mapping.amount else "0"
        amount = parse_csv_amount(amount_raw)
        if amount is None:
            results.append(MapResult(row_index, error=f"Invalid amount: {amount_raw}"))
            continue

        tx_type = cell(mapping.type).lower() or "expense"
        if tx_type not in TRANSACTION_TYPES:
            tx_type = "expense"

        account_name = cell(mapping.account)
        to_account_name = cell(mapping.to_account)
        account = _find_account(account_name, accounts, account_mapping)
        if account is None and default_account_id:
            account = next((a for a in accounts if a.id == default_account_id), None)
        if account is None:
            results.append(
                MapResult(
                    row_index,
                    error=f'Account not found: "{account_name}". Available accounts: {available}',
                )
            )
            continue

        to_account = None
        if tx_type == "transfer":
            if not to_account_name:
                results.append(
                    MapResult(
                        row_index,
                        error="Transfer transaction requires a destination account (to_account).",
                    )
                )
                continue
            to_account = _find_account(to_account_name, accounts, account_mapping)
            if to_account is None:
                results.append(
                    MapResult(
                        row_index,
                        error=f'Destination account not found: "{to_account_name}". '
                        f"Available accounts: {available}",
                    )
                )
                continue
            if to_account.id == account.id:
                results.append(
                    MapResult(
                        row_index,
                        error="Transfer requires different source and destination accounts. "
                        f'Both are: "{account_name}"',
                    )
                )
                continue

        category_name = cell(mapping.category)
        subcategory_name = cell(mapping.subcategory)
        category = next((c for c in categories if c["name"] == category_name), None)
        subcategory = None
        if category is not None and subcategory_name:
            subcategory = next(
                (s for s in category.get("subcategories", []) if s["name"] == subcategory_name), None
            )

        results.append(
            MapResult(
                row_index,
                transaction={
                    "occurred_on": occurred_on.isoformat(),
                    "tx_type": tx_type,
                    "amount": abs(amount),
                    "account_id": account.id,
                    "to_account_id": to_account.id if to_account else None,
                    "category_id": category["id"] if category else None,
                    "subcategory_id": subcategory["id"] if subcategory else None,
                    "description": cell(mapping.description),
                    "row_index": row_index,
                },
            )
        )
    return results


def category_index(ctx, *, user_id: int) -> list[dict[str, Any]]:
    """Visible categories with their subcategories, shaped for :func:`map_rows`."""

    subcategories: dict[int, list[dict[str, Any]]] = {}
    for sub in ctx.category_repo.list_subcategories(user_id=user_id):
        subcategories.setdefault(sub.category_id, []).append({"id": sub.id, "name": sub.name})
    return [
        {"id": c.id, "name": c.name, "subcategories": subcategories.get(c.id, [])}
        for c in ctx.category_repo.list_categories(user_id=user_id)
    ]


def preview(
    ctx,
    *,
    user_id: int,
    content: bytes | str,
    mapping: Optional[ColumnMapping] = None,
    account_mapping: Optional[Mapping[str, int]] = None,
    default_account_id: Optional[int] = None,
) -> dict[str, Any]:
    """Parse an upload and, when a mapping is given, show the mapped rows."""

    headers, rows = parse_rows(content)
    result: dict[str, Any] = {"headers": headers, "row_count": len(rows), "sample": rows[:5]}
    if mapping is None:
        return result
    if mapping.account:
        result["account_names"] = extract_unique_account_names(rows, mapping.account)
    mapped = map_rows(
        rows,
        mapping,
        ctx.account_repo.list_all(user_id=user_id),
        category_index(ctx, user_id=user_id),
        account_mapping=account_mapping,
        default_account_id=default_account_id,
    )
    result["results"] = [item.to_dict() for item in mapped]
    result["valid"] = sum(1 for item in mapped if item.error is None)
    result["invalid"] = sum(1 for item in mapped if item.error is not None)
    return result


def create_from_payload(ctx, *, user_id: int, item: Mapping[str, Any]) -> list:
    """Create one transaction (or transfer pair) from a mapped row payload."""

    occurred_on = item.get("occurred_on")
    if isinstance(occurred_on, str):
        try:
            occurred_on = date.fromisoformat(occurred_on[:10])
        except ValueError as exc:
            raise ValidationError(f"Invalid date: {occurred_on}") from exc
    if not isinstance(occurred_on, date):
        raise ValidationError("Date is required")
    try:
        amount = float(item.get("amount"))
        account_id = int(item.get("account_id"))
    except (TypeError, ValueError) as exc:
        raise ValidationError("Amount and account are required") from exc
    to_account_id = item.get("to_account_id")
    category_id = item.get("category_id")
    subcategory_id = item.get("subcategory_id")
    return transaction_service.create_transaction(
        ctx,
        user_id=user_id,
        occurred_on=occurred_on,
        amount=amount,
        account_id=account_id,
        tx_type=str(item.get("tx_type") or "expense"),
        to_account_id=int(to_account_id) if to_account_id else None,
        description=str(item.get("description") or ""),
        category_id=int(category_id) if category_id else None,
        subcategory_id=int(subcategory_id) if subcategory_id else None,
        is_recurring=bool(item.get("is_recurring")),
    )


def import_transactions(ctx, *, user_id: int, items: list[Mapping[str, Any]]) -> ImportOutcome:
    """Write small imports immediately; queue larger ones as a background job."""

    if not items:
        raise ValidationError("No transactions provided")

    if len(items) >= SYNC_IMPORT_LIMIT:
        from . import import_jobs

        account_id = items[0].get("account_id")
        if not account_id:
            raise ValidationError("Missing account_id in transactions")
        job = import_jobs.enqueue_job(
            ctx,
            user_id=user_id,
            job_type="csv_import",
            account_id=int(account_id),
            payload={"transactions": [dict(item) for item in items]},
            total_items=len(items),
        )
        return ImportOutcome(job=job)

    outcome = ImportOutcome()
    for position, item in enumerate(items, start=1):
        try:
            create_from_payload(ctx, user_id=user_id, item=item)
        except AppError as exc:
            outcome.errors.append(
                {"row_index": item.get("row_index") or position, "error": exc.message}
            )
        else:
            outcome.imported += 1
    logger.info(
        "CSV import finished",
        extra={"user_id": user_id, "imported": outcome.imported, "errors": len(outcome.errors)},
    )
    return outcome
