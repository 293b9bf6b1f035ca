"""SQLModel implementation of the category taxonomy repository."""

from __future__ import annotations

from typing import Iterable, Optional

from sqlalchemy import or_
from sqlmodel import select

from ...models.category import Category, CategoryGroup, Subcategory
from ..database import SessionFactory


class SQLModelCategoryRepository:
    """Groups, categories and subcategories; system rows are shared by all users."""

    def __init__(self, session_factory: SessionFactory):
        """Initialize with a session factory."""
        self.session_factory = session_factory

    @staticmethod
    def _visible(model, user_id: Optional[int]):
        if user_id is None:
            return model.user_id.is_(None)
        return or_(model.user_id.is_(None), model.user_id == user_id)

    def list_groups(self, *, user_id: Optional[int]) -> list[CategoryGroup]:
        with self.session_factory() as session:
            rows = list(
                session.exec(
                    select(CategoryGroup)
                    .where(self._visible(CategoryGroup, user_id))
                    .order_by(CategoryGroup.group_type, CategoryGroup.name)
                ).all()
            )
            session.expunge_all()
            return rows

    def list_categories(
        self, *, user_id: Optional[int], group_id: Optional[int] = None
    ) -> list[Category]:
        with self.session_factory() as session:
            statement = select(Category).where(self._visible(Category, user_id))
            if group_id is not None:
                statement = statement.where(Category.group_id == group_id)
            rows = list(session.exec(statement.order_by(Category.name)).all())
            session.expunge_all()
            return rows

    def list_subcategories(
        self, *, user_id: Optional[int], category_id: Optional[int] = None
    ) -> list[Subcategory]:
        with self.session_factory() as session:
            statement = select(Subcategory).where(self._visible(Subcategory, user_id))
            if category_id is not None:
                statement = statement.where(Subcategory.category_id == category_id)
            rows = list(session.exec(statement.order_by(Subcategory.name)).all())
            session.expunge_all()
            return rows

    def get_group(self, group_id: int, *, user_id: Optional[int]) -> Optional[CategoryGroup]:
        return self._get(CategoryGroup, group_id, user_id)

    def get_category(self, category_id: int, *, user_id: Optional[int]) -> Optional[Category]:
        return self._get(Category, category_id, user_id)

    def get_subcategory(
        self, subcategory_id: int, *, user_id: Optional[int]
    ) -> Optional[Subcategory]:
        return self._get(Subcategory, subcategory_id, user_id)

    def _get(self, model, obj_id: int, user_id: Optional[int]):
        with self.session_factory() as session:
            obj = session.exec(
                select(model).where(model.id == obj_id).where(self._visible(model, user_id))
            ).first()
            if obj:
                session.expunge(obj)
            return obj

    def save(self, obj):
        """Insert or update any taxonomy row."""
        with self.session_factory() as session:
            merged = session.merge(obj)
            session.commit()
            session.refresh(merged)
            session.expunge(merged)
            return merged

    def delete(self, obj) -> None:
        """Delete a taxonomy row and everything nested under it."""
        with self.session_factory() as session:
            if isinstance(obj, CategoryGroup):
                categories = session.exec(
                    select(Category).where(Category.group_id == obj.id)
                ).all()
                for category in categories:
                    self._delete_category(session, category.id)
                target = session.get(CategoryGroup, obj.id)
            elif isinstance(obj, Category):
                self._delete_category(session, obj.id)
                target = None
            else:
                target = session.get(Subcategory, obj.id)
            if target is not None:
                session.delete(target)
            session.commit()

    @staticmethod
    def _delete_category(session, category_id: int) -> None:
        for sub in session.exec(select(Subcategory).where(Subcategory.category_id == category_id)).all():
            session.delete(sub)
        category = session.get(Category, category_id)
        if category is not None:
            session.delete(category)

    def has_system_rows(self) -> bool:
        with self.session_factory() as session:
            return (
                session.exec(select(CategoryGroup.id).where(CategoryGroup.user_id.is_(None))).first()
                is not None
            )

    def seed_system(self, groups: Iterable[dict]) -> int:
        """Insert system groups/categories/subcategories that are missing.

        ``groups`` items look like
        ``{"name": ..., "type": ..., "categories": {name: [subcategory, ...]}}``.
        Returns the number of rows created.
        """
        created = 0
        with self.session_factory() as session:
            for spec in groups:
                group = session.exec(
                    select(CategoryGroup)
                    .where(CategoryGroup.user_id.is_(None))
                    .where(CategoryGroup.name == spec["name"])
                ).first()
                if group is None:
                    group = CategoryGroup(name=spec["name"], group_type=spec.get("type", "expense"))
                    session.add(group)
                    session.flush()
                    created += 1
                for category_name, subcategories in spec.get("categories", {}).items():
                    category = session.exec(
                        select(Category)
                        .where(Category.user_id.is_(None))
                        .where(Category.group_id == group.id)
                        .where(Category.name == category_name)
                    ).first()
                    if category is None:
                        category = Category(name=category_name, group_id=group.id)
                        session.add(category)
                        session.flush()
                        created += 1
                    existing = {
                        sub.name
                        for sub in session.exec(
                            select(Subcategory).where(Subcategory.category_id == category.id)
                        ).all()
                    }
                    for sub_name in subcategories:
                        if sub_name not in existing:
                            session.add(Subcategory(name=sub_name, category_id=category.id))
                            created += 1
            session.commit()
        return created

    def delete_owned(self, *, user_id: int) -> None:
        """Remove all user-defined taxonomy rows for ``user_id``."""
        with self.session_factory() as session:
            for model in (Subcategory, Category, CategoryGroup):
                for row in session.exec(select(model).where(model.user_id == user_id)).all():
                    session.delete(row)
                session.flush()
            session.commit()

    def in_use(self, *, category_ids: Iterable[int] = (), subcategory_ids: Iterable[int] = ()) -> bool:
        """True when transactions or budgets still reference any of the ids."""
        from ...models.budget import Budget
        from ...models.transaction import Transaction

        category_ids = list(category_ids)
        subcategory_ids = list(subcategory_ids)
        with self.session_factory() as session:
            for model in (Transaction, Budget):
                clauses = []
                if category_ids:
                    clauses.append(model.category_id.in_(category_ids))  # type: ignore[attr-defined]
                if subcategory_ids:
                    clauses.append(model.subcategory_id.in_(subcategory_ids))  # type: ignore[union-attr]
                if clauses and session.exec(select(model.id).where(or_(*clauses))).first() is not None:
                    return True
        return False
