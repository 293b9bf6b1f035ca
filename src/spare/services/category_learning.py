"""Suggest categories for new transactions from the user's own history."""

from __future__ import annotations

import re
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional

from ..models.transaction import Transaction
from ..timeutils import add_months

LOOKBACK_MONTHS = 12
AMOUNT_TOLERANCE = 0.01

_DIGITS = re.compile(r"\d+")
_PUNCTUATION = re.compile(r"[^\w\s]|_")
_WHITESPACE = re.compile(r"\s+")


@dataclass(slots=True)
class CategorySuggestion:
    category_id: int
    subcategory_id: Optional[int]
    confidence: str
    matches: int

    def to_dict(self) -> dict:
        return {
            "category_id": self.category_id,
            "subcategory_id": self.subcategory_id,
            "confidence": self.confidence,
            "matches": self.matches,
        }


def normalize_description(text: Optional[str]) -> str:
    """Lower-case, drop digits and punctuation, collapse whitespace."""

    if not text:
        return ""
    value = _DIGITS.sub("", text.lower())
    value = _PUNCTUATION.sub(" ", value)
    return _WHITESPACE.sub(" ", value).strip()


def suggest_from_history(
    history: Iterable[Transaction], *, description: str, amount: float
) -> Optional[CategorySuggestion]:
    """Pick the best (category, subcategory) for ``description``/``amount``.

    High confidence needs three description+amount matches or five
    description-only matches; otherwise the best ``2*desc_amount + desc_only``
    score wins with medium or low confidence.
    """

    target = normalize_description(description)
    if not target:
        return None
    target_amount = abs(float(amount))

    desc_amount: dict[tuple[int, Optional[int]], int] = defaultdict(int)
    desc_only: dict[tuple[int, Optional[int]], int] = defaultdict(int)
    order: list[tuple[int, Optional[int]]] = []

    for tx in history:
        if tx.category_id is None:
            continue
        if normalize_description(tx.description) != target:
            continue
        key = (tx.category_id, tx.subcategory_id)
        if key not in desc_amount and key not in desc_only:
            order.append(key)
        if abs(abs(float(tx.amount)) - target_amount) < AMOUNT_TOLERANCE:
            desc_amount[key] += 1
        else:
            desc_only[key] += 1

    for key in order:
        if desc_amount[key] >= 3:
            return CategorySuggestion(key[0], key[1], "high", desc_amount[key])
        if desc_only[key] >= 5:
            return CategorySuggestion(key[0], key[1], "high", desc_only[key])

    best: Optional[tuple[int, Optional[int]]] = None
    best_score = 0
    for key in order:
        score = 2 * desc_amount[key] + desc_only[key]
        if score > best_score:
            best, best_score = key, score
    if best is None:
        return None

    amount_hits, only_hits = desc_amount[best], desc_only[best]
    if amount_hits >= 2 or only_hits >= 3:
        confidence = "medium"
    elif amount_hits >= 1 or only_hits >= 1:
        confidence = "low"
    else:
        return None
    return CategorySuggestion(best[0], best[1], confidence, amount_hits + only_hits)


def suggest_category(
    ctx,
    *,
    user_id: int,
    description: str,
    amount: float,
    tx_type: str,
    today: Optional[date] = None,
) -> Optional[CategorySuggestion]:
    """Look at the last 12 months of categorized transactions of the same type."""

    if tx_type == "transfer":
        return None
    since = add_months(today or date.today(), -LOOKBACK_MONTHS)
    history = ctx.transaction_repo.categorized_since(since, user_id=user_id, tx_type=tx_type)
    return suggest_from_history(history, description=description, amount=amount)
