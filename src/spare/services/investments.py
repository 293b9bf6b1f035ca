"""Investment transactions, average-cost holdings and portfolio summary."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import asdict, dataclass
from datetime import date
from typing import Any, Iterable, Optional

from ..errors import NotFound, ValidationError
from ..models import InvestmentTransaction, Security
from ..models.investment import INVESTMENT_TX_TYPES
from ..timeutils import utcnow

logger = logging.getLogger(__name__)

_TRADES = ("buy", "sell")


@dataclass(slots=True)
class Holding:
    security_id: int
    symbol: str
    name: str
    account_id: int
    quantity: float
    average_cost: float
    book_value: float
    last_price: Optional[float]
    market_value: float
    unrealized_gain: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def compute_holdings(
    transactions: Iterable[InvestmentTransaction], securities: dict[int, Security]
) -> list[Holding]:
    """Average-cost positions per (account, security).

    Buys add quantity and cost (fees included); sells remove quantity at the
    running average cost. Positions sold down to zero are dropped.
    """

    quantity: dict[tuple[int, int], float] = defaultdict(float)
    cost: dict[tuple[int, int], float] = defaultdict(float)
    for tx in sorted(transactions, key=lambda t: (t.occurred_on, t.id or 0)):
        if tx.security_id is None or tx.tx_type not in _TRADES:
            continue
        key = (tx.account_id, tx.security_id)
        if tx.tx_type == "buy":
            quantity[key] += tx.quantity
            cost[key] += tx.quantity * tx.price + tx.fees
        else:
            held = quantity[key]
            if held <= 0:
                continue
            sold = min(tx.quantity, held)
            cost[key] -= cost[key] / held * sold
            quantity[key] = held - sold

    holdings = []
    for (account_id, security_id), qty in quantity.items():
        if qty <= 1e-9:
            continue
        security = securities.get(security_id)
        book = round(cost[(account_id, security_id)], 2)
        price = security.last_price if security else None
        market = round(qty * price, 2) if price is not None else book
        holdings.append(
            Holding(
                security_id=security_id,
                symbol=security.symbol if security else "",
                name=security.name if security else "",
                account_id=account_id,
                quantity=round(qty, 6),
                average_cost=round(cost[(account_id, security_id)] / qty, 4),
                book_value=book,
                last_price=price,
                market_value=market,
                unrealized_gain=round(market - book, 2),
            )
        )
    holdings.sort(key=lambda h: h.market_value, reverse=True)
    return holdings


def _investment_accounts(ctx, *, user_id: int, account_id: Optional[int] = None):
    accounts = [a for a in ctx.account_repo.list_all(user_id=user_id) if a.account_type == "investment"]
    if account_id is not None:
        accounts = [a for a in accounts if a.id == account_id]
        if not accounts:
            raise NotFound("Investment account not found")
    return accounts


def holdings(ctx, *, user_id: int, account_id: Optional[int] = None) -> list[Holding]:
    transactions = []
    for account in _investment_accounts(ctx, user_id=user_id, account_id=account_id):
        transactions.extend(ctx.investment_repo.list_for_account(account.id, user_id=user_id))
    ids = sorted({tx.security_id for tx in transactions if tx.security_id is not None})
    securities = {s.id: s for s in ctx.investment_repo.list_securities(ids)} if ids else {}
    return compute_holdings(transactions, securities)


def _cash_amount(tx: InvestmentTransaction) -> float:
    """Cash-only rows carry their amount in ``price`` when no quantity is given."""

    return tx.quantity * tx.price if tx.quantity else tx.price


def portfolio_summary(ctx, *, user_id: int) -> dict[str, Any]:
    positions = holdings(ctx, user_id=user_id)
    transactions = ctx.investment_repo.list_all(user_id=user_id)
    income = sum(_cash_amount(tx) for tx in transactions if tx.tx_type in ("dividend", "interest"))
    fees = sum(tx.fees + (_cash_amount(tx) if tx.tx_type == "fee" else 0.0) for tx in transactions)
    book = round(sum(h.book_value for h in positions), 2)
    market = round(sum(h.market_value for h in positions), 2)
    return {
        "book_value": book,
        "market_value": market,
        "unrealized_gain": round(market - book, 2),
        "unrealized_gain_pct": round((market - book) / book * 100, 2) if book else 0.0,
        "income": round(income, 2),
        "fees": round(fees, 2),
        "holdings": [h.to_dict() for h in positions],
    }


# Securities


def upsert_security(ctx, data: dict[str, Any]) -> Security:
    symbol = str(data.get("symbol") or "").strip().upper()
    if not symbol:
        raise ValidationError("Symbol is required", {"symbol": ["Symbol is required."]})
    security = ctx.investment_repo.get_security_by_symbol(symbol) or Security(symbol=symbol[:32])
    if data.get("name"):
        security.name = str(data["name"]).strip()[:128]
    if data.get("security_type"):
        security.security_type = str(data["security_type"]).strip().lower()[:32]
    if data.get("currency"):
        security.currency = str(data["currency"]).strip().upper()[:3]
    if data.get("last_price") not in (None, ""):
        try:
            price = float(data["last_price"])
        except (TypeError, ValueError) as exc:
            raise ValidationError("Invalid price", {"last_price": ["Enter a valid price."]}) from exc
        if price < 0:
            raise ValidationError("Invalid price", {"last_price": ["Price cannot be negative."]})
        security.last_price = price
        security.price_updated_at = utcnow()
    return ctx.investment_repo.save_security(security)


def list_securities(ctx) -> list[Security]:
    return ctx.investment_repo.list_securities()


# Transactions


def _clean(ctx, data: dict[str, Any], *, user_id: int, partial: bool) -> dict[str, Any]:
    errors: dict[str, list[str]] = {}
    cleaned: dict[str, Any] = {}
    if "account_id" in data or not partial:
        try:
            account_id = int(data.get("account_id"))
        except (TypeError, ValueError):
            errors.setdefault("account_id", []).append("Account is required.")
        else:
            account = ctx.account_repo.get_by_id(account_id, user_id=user_id)
            if account is None or account.account_type != "investment":
                errors.setdefault("account_id", []).append("Investment account not found.")
            cleaned["account_id"] = account_id
    if "tx_type" in data or not partial:
        tx_type = str(data.get("tx_type") or "").strip().lower()
        if tx_type not in INVESTMENT_TX_TYPES:
            errors.setdefault("tx_type", []).append("Unknown investment transaction type.")
        cleaned["tx_type"] = tx_type
    if "occurred_on" in data or not partial:
        raw = data.get("occurred_on")
        try:
            cleaned["occurred_on"] = date.fromisoformat(str(raw)[:10]) if raw else date.today()
        except ValueError:
            errors.setdefault("occurred_on", []).append("Enter a valid date.")
    for key in ("quantity", "price", "fees"):
        if key in data:
            try:
                value = float(data.get(key) or 0)
            except (TypeError, ValueError):
                errors.setdefault(key, []).append("Enter a valid number.")
                continue
            if value < 0:
                errors.setdefault(key, []).append("Value cannot be negative.")
            cleaned[key] = value
    if "notes" in data:
        cleaned["notes"] = str(data.get("notes") or "").strip()[:255]
    if data.get("symbol"):
        cleaned["security_id"] = upsert_security(ctx, {"symbol": data["symbol"], "name": data.get("security_name")}).id
    elif "security_id" in data:
        raw = data.get("security_id")
        if raw in (None, ""):
            cleaned["security_id"] = None
        elif not str(raw).isdigit() or ctx.investment_repo.get_security(int(raw)) is None:
            errors.setdefault("security_id", []).append("Security not found.")
        else:
            cleaned["security_id"] = int(raw)
    if errors:
        raise ValidationError("Invalid investment transaction", errors)
    return cleaned


def _check_trade(tx: InvestmentTransaction) -> None:
    if tx.tx_type in _TRADES:
        if tx.security_id is None:
            raise ValidationError("Trades need a security", {"symbol": ["Security is required."]})
        if tx.quantity <= 0:
            raise ValidationError("Trades need a quantity", {"quantity": ["Quantity must be greater than 0."]})


def list_transactions(ctx, *, user_id: int, account_id: Optional[int] = None) -> list[InvestmentTransaction]:
    if account_id is not None:
        return ctx.investment_repo.list_for_account(account_id, user_id=user_id)
    return ctx.investment_repo.list_all(user_id=user_id)


def get_transaction(ctx, tx_id: int, *, user_id: int) -> InvestmentTransaction:
    tx = ctx.investment_repo.get_by_id(tx_id, user_id=user_id)
    if tx is None:
        raise NotFound("Investment transaction not found")
    return tx


def create_transaction(ctx, *, user_id: int, data: dict[str, Any]) -> InvestmentTransaction:
    tx = InvestmentTransaction(user_id=user_id, **_clean(ctx, data, user_id=user_id, partial=False))
    _check_trade(tx)
    tx = ctx.investment_repo.create(tx)
    logger.info("Investment transaction created", extra={"user_id": user_id, "investment_tx_id": tx.id})
    return tx


def update_transaction(ctx, tx_id: int, *, user_id: int, data: dict[str, Any]) -> InvestmentTransaction:
    tx = get_transaction(ctx, tx_id, user_id=user_id)
    for key, value in _clean(ctx, data, user_id=user_id, partial=True).items():
        setattr(tx, key, value)
    _check_trade(tx)
    return ctx.investment_repo.update(tx)


def delete_transaction(ctx, tx_id: int, *, user_id: int) -> None:
    if not ctx.investment_repo.delete(tx_id, user_id=user_id):
        raise NotFound("Investment transaction not found")
