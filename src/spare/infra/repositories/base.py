"""Shared plumbing for repositories whose rows belong to one user."""

from __future__ import annotations

from typing import Any, ClassVar, Generic, Optional, TypeVar

from sqlalchemy import func
from sqlmodel import SQLModel, select

from ..database import SessionFactory

ModelT = TypeVar("ModelT", bound=SQLModel)
LIKE_ESCAPE = "\\"


def contains_pattern(text: str) -> str:
    """LIKE pattern matching ``text`` literally anywhere; use with ``escape=LIKE_ESCAPE``."""
    escaped = text.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2).replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class OwnedRepository(Generic[ModelT]):
    """CRUD over a table with a ``user_id`` column; every read is owner scoped."""

    model: ClassVar[type[Any]]
    default_order: ClassVar[tuple[str, ...]] = ("id",)

    def __init__(self, session_factory: SessionFactory):
        """Initialize with a session factory."""
        self.session_factory = session_factory

    def _ordering(self):
        return [getattr(self.model, name) for name in self.default_order]

    def get_by_id(self, obj_id: int, *, user_id: int) -> Optional[ModelT]:
        with self.session_factory() as session:
            obj = session.exec(
                select(self.model)
                .where(self.model.id == obj_id)
                .where(self.model.user_id == user_id)
            ).first()
            if obj:
                session.expunge(obj)
            return obj

    def list_all(self, *, user_id: int) -> list[ModelT]:
        with self.session_factory() as session:
            rows = list(
                session.exec(
                    select(self.model)
                    .where(self.model.user_id == user_id)
                    .order_by(*self._ordering())
                ).all()
            )
            session.expunge_all()
            return rows

    def count(self, *, user_id: int) -> int:
        with self.session_factory() as session:
            return session.exec(
                select(func.count()).select_from(self.model).where(self.model.user_id == user_id)
            ).one()

    def create(self, obj: ModelT) -> ModelT:
        with self.session_factory() as session:
            session.add(obj)
            session.commit()
            session.refresh(obj)
            session.expunge(obj)
            return obj

    def update(self, obj: ModelT) -> ModelT:
        with self.session_factory() as session:
            merged = session.merge(obj)
            session.commit()
            session.refresh(merged)
            session.expunge(merged)
            return merged

    def delete(self, obj_id: int, *, user_id: int) -> bool:
        with self.session_factory() as session:
            obj = session.exec(
                select(self.model)
                .where(self.model.id == obj_id)
                .where(self.model.user_id == user_id)
            ).first()
            if obj is None:
                return False
            session.delete(obj)
            session.commit()
            return True
