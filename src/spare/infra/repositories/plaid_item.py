"""SQLModel implementation of PlaidItem repository."""

from __future__ import annotations

from typing import Optional

from sqlmodel import select

from ...models.plaid import PlaidItem
from .base import OwnedRepository


class SQLModelPlaidItemRepository(OwnedRepository[PlaidItem]):
    model = PlaidItem
    default_order = ("institution_name",)

    def get(self, item_pk: int) -> Optional[PlaidItem]:
        with self.session_factory() as session:
            obj = session.get(PlaidItem, item_pk)
            if obj:
                session.expunge(obj)
            return obj

    def get_by_item_id(self, item_id: str) -> Optional[PlaidItem]:
        """Lookup by the aggregator's item id (webhooks carry only this)."""
        with self.session_factory() as session:
            obj = session.exec(select(PlaidItem).where(PlaidItem.item_id == item_id)).first()
            if obj:
                session.expunge(obj)
            return obj
