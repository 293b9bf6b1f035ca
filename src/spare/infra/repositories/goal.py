"""SQLModel implementation of Goal repository."""

from __future__ import annotations

from typing import Optional

from sqlmodel import select

from ...models.goal import Goal
from .base import OwnedRepository


class SQLModelGoalRepository(OwnedRepository[Goal]):
    model = Goal
    default_order = ("is_completed", "created_at")

    def get_emergency_fund(self, *, user_id: int) -> Optional[Goal]:
        with self.session_factory() as session:
            obj = session.exec(
                select(Goal).where(Goal.user_id == user_id).where(Goal.is_emergency_fund == True)  # noqa: E712
            ).first()
            if obj:
                session.expunge(obj)
            return obj
