"""Category taxonomy management for users and the admin back-office.

System rows (``user_id`` NULL) are shared by everyone and only editable from
the admin routes, which call these functions with ``system=True``.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from ..constants.categories import SYSTEM_CATEGORY_GROUPS
from ..errors import Conflict, Forbidden, NotFound, ValidationError
from ..models import Category, CategoryGroup, Subcategory

logger = logging.getLogger(__name__)

GROUP_TYPES = ("expense", "income")
KINDS = ("group", "category", "subcategory")


def category_tree(ctx, *, user_id: Optional[int]) -> list[dict[str, Any]]:
    """Groups with nested categories and subcategories visible to ``user_id``."""

    repo = ctx.category_repo
    subs_by_category: dict[int, list[dict[str, Any]]] = {}
    for sub in repo.list_subcategories(user_id=user_id):
        subs_by_category.setdefault(sub.category_id, []).append(
            {"id": sub.id, "name": sub.name, "is_system": sub.is_system}
        )
    cats_by_group: dict[int, list[dict[str, Any]]] = {}
    for category in repo.list_categories(user_id=user_id):
        cats_by_group.setdefault(category.group_id, []).append(
            {
                "id": category.id,
                "name": category.name,
                "is_system": category.is_system,
                "subcategories": subs_by_category.get(category.id, []),
            }
        )
    return [
        {
            "id": group.id,
            "name": group.name,
            "group_type": group.group_type,
            "is_system": group.is_system,
            "categories": cats_by_group.get(group.id, []),
        }
        for group in repo.list_groups(user_id=user_id)
    ]


def _name(data: dict[str, Any]) -> str:
    name = str(data.get("name") or "").strip()
    if not name:
        raise ValidationError("Name is required", {"name": ["Name is required."]})
    if len(name) > 64:
        raise ValidationError("Name is too long", {"name": ["Name must be 64 characters or fewer."]})
    return name


def _owner(user_id: Optional[int], system: bool) -> Optional[int]:
    return None if system else user_id


def _load(ctx, kind: str, obj_id: int, *, user_id: Optional[int], system: bool):
    if kind not in KINDS:
        raise NotFound("Unknown category type")
    getter = {
        "group": ctx.category_repo.get_group,
        "category": ctx.category_repo.get_category,
        "subcategory": ctx.category_repo.get_subcategory,
    }[kind]
    obj = getter(obj_id, user_id=_owner(user_id, system))
    if obj is None:
        raise NotFound(f"{kind.capitalize()} not found")
    if obj.is_system and not system:
        raise Forbidden("System categories cannot be modified")
    return obj


def create_group(ctx, *, user_id: Optional[int], data: dict[str, Any], system: bool = False) -> CategoryGroup:
    group_type = str(data.get("group_type") or "expense").strip().lower()
    if group_type not in GROUP_TYPES:
        raise ValidationError("Invalid group type", {"group_type": ["Must be expense or income."]})
    return ctx.category_repo.save(
        CategoryGroup(user_id=_owner(user_id, system), name=_name(data), group_type=group_type)
    )


def create_category(ctx, *, user_id: Optional[int], data: dict[str, Any], system: bool = False) -> Category:
    try:
        group_id = int(data.get("group_id"))
    except (TypeError, ValueError) as exc:
        raise ValidationError("Group is required", {"group_id": ["Group is required."]}) from exc
    group = ctx.category_repo.get_group(group_id, user_id=_owner(user_id, system))
    if group is None:
        raise NotFound("Group not found")
    return ctx.category_repo.save(
        Category(user_id=_owner(user_id, system), group_id=group.id, name=_name(data))
    )


def create_subcategory(
    ctx, *, user_id: Optional[int], data: dict[str, Any], system: bool = False
) -> Subcategory:
    try:
        category_id = int(data.get("category_id"))
    except (TypeError, ValueError) as exc:
        raise ValidationError("Category is required", {"category_id": ["Category is required."]}) from exc
    category = ctx.category_repo.get_category(category_id, user_id=_owner(user_id, system))
    if category is None:
        raise NotFound("Category not found")
    return ctx.category_repo.save(
        Subcategory(user_id=_owner(user_id, system), category_id=category.id, name=_name(data))
    )


def create_entity(ctx, kind: str, *, user_id: Optional[int], data: dict[str, Any], system: bool = False):
    creators = {"group": create_group, "category": create_category, "subcategory": create_subcategory}
    if kind not in creators:
        raise NotFound("Unknown category type")
    obj = creators[kind](ctx, user_id=user_id, data=data, system=system)
    logger.info("Category %s created", kind, extra={"id": obj.id, "system": system})
    return obj


def update_entity(
    ctx, kind: str, obj_id: int, *, user_id: Optional[int], data: dict[str, Any], system: bool = False
):
    obj = _load(ctx, kind, obj_id, user_id=user_id, system=system)
    if "name" in data:
        obj.name = _name(data)
    if kind == "group" and "group_type" in data:
        group_type = str(data.get("group_type") or "").strip().lower()
        if group_type not in GROUP_TYPES:
            raise ValidationError("Invalid group type", {"group_type": ["Must be expense or income."]})
        obj.group_type = group_type
    return ctx.category_repo.save(obj)


def delete_entity(ctx, kind: str, obj_id: int, *, user_id: Optional[int], system: bool = False) -> None:
    """Delete a row and its children; refused while transactions or budgets use them."""

    obj = _load(ctx, kind, obj_id, user_id=user_id, system=system)
    repo = ctx.category_repo
    owner = _owner(user_id, system)
    if kind == "subcategory":
        category_ids, subcategory_ids = [], [obj.id]
    elif kind == "category":
        category_ids = [obj.id]
        subcategory_ids = [s.id for s in repo.list_subcategories(user_id=owner, category_id=obj.id)]
    else:
        category_ids = [c.id for c in repo.list_categories(user_id=owner, group_id=obj.id)]
        subcategory_ids = []
    if repo.in_use(category_ids=category_ids, subcategory_ids=subcategory_ids):
        raise Conflict("Category is in use by transactions or budgets")
    repo.delete(obj)
    logger.info("Category %s deleted", kind, extra={"id": obj_id, "system": system})


def seed_system_categories(ctx) -> int:
    created = ctx.category_repo.seed_system(SYSTEM_CATEGORY_GROUPS)
    if created:
        logger.info("Seeded %s system category rows", created)
    return created
