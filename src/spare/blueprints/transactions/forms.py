"""Transaction form validation helpers."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Optional

from ...models.transaction import TRANSACTION_TYPES


@dataclass(slots=True)
class TransactionForm:
    """Represents transaction input prior to validation."""

    occurred_on: date | None = None
    amount: float | None = None
    tx_type: str = "expense"
    account_id: Optional[int] = None
    to_account_id: Optional[int] = None
    description: str = ""
    category_id: Optional[int] = None
    subcategory_id: Optional[int] = None
    is_recurring: bool = False
    errors: dict[str, list[str]] = field(default_factory=dict, init=False)
    raw_data: dict[str, str] = field(default_factory=dict, init=False)

    _KEYS = (
        "occurred_on",
        "amount",
        "tx_type",
        "account_id",
        "to_account_id",
        "description",
        "category_id",
        "subcategory_id",
        "is_recurring",
    )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> TransactionForm:
        """Create a form populated from request data."""

        form = cls()
        form.load(data)
        return form

    def load(self, data: Mapping[str, Any]) -> None:
        """Bind incoming mapping data to the form state."""

        self.raw_data = {}
        for key in self._KEYS:
            value = data.get(key)
            if value is None:
                value_str = ""
            elif isinstance(value, bool):
                value_str = "1" if value else ""
            elif isinstance(value, str):
                value_str = value
            else:
                value_str = str(value)
            self.raw_data[key] = value_str

        self.description = self.raw_data.get("description", "").strip()
        self.is_recurring = self.raw_data.get("is_recurring", "").strip().lower() in {
            "1",
            "true",
            "yes",
            "on",
        }

    def validate(self) -> bool:
        """Validate the bound data and populate typed attributes."""

        self.errors.clear()

        occurred_raw = self.raw_data.get("occurred_on", "").strip()
        self.occurred_on = None
        if not occurred_raw:
            self._add_error("occurred_on", "Date is required.")
        else:
            try:
                self.occurred_on = datetime.strptime(occurred_raw[:10], "%Y-%m-%d").date()
            except ValueError:
                self._add_error("occurred_on", "Enter a valid date (YYYY-MM-DD).")

        amount_raw = self.raw_data.get("amount", "").strip()
        self.amount = None
        if not amount_raw:
            self._add_error("amount", "Amount is required.")
        else:
            try:
                parsed_amount = float(amount_raw)
            except (TypeError, ValueError):
                self._add_error("amount", "Enter a valid number for the amount.")
            else:
                if parsed_amount == 0:
                    self._add_error("amount", "Amount cannot be zero.")
                else:
                    self.amount = abs(parsed_amount)

        self.tx_type = self.raw_data.get("tx_type", "").strip().lower() or "expense"
        if self.tx_type not in TRANSACTION_TYPES:
            self._add_error("tx_type", "Type must be expense, income or transfer.")

        if len(self.description) > 255:
            self._add_error("description", "Description must be 255 characters or fewer.")

        self.account_id = self._parse_id("account_id", required=True, label="Account")
        self.to_account_id = self._parse_id("to_account_id", label="Destination account")
        self.category_id = self._parse_id("category_id", label="Category")
        self.subcategory_id = self._parse_id("subcategory_id", label="Subcategory")

        if self.tx_type == "transfer":
            if self.to_account_id is None and "to_account_id" not in self.errors:
                self._add_error("to_account_id", "Transfers need a destination account.")
            elif self.to_account_id is not None and self.to_account_id == self.account_id:
                self._add_error(
                    "to_account_id", "Destination account must differ from the source account."
                )
        else:
            self.to_account_id = None

        return not self.errors

    def _parse_id(self, key: str, *, label: str, required: bool = False) -> Optional[int]:
        raw = self.raw_data.get(key, "").strip()
        if not raw:
            if required:
                self._add_error(key, f"{label} is required.")
            return None
        try:
            parsed = int(raw)
        except (TypeError, ValueError):
            self._add_error(key, f"{label} must be a whole number.")
            return None
        if parsed <= 0:
            self._add_error(key, f"{label} must be greater than zero if provided.")
            return None
        return parsed

    def _add_error(self, field: str, message: str) -> None:
        """Accumulate validation errors for a specific field."""

        self.errors.setdefault(field, []).append(message)
