"""Category routes; users manage their own rows on top of the system taxonomy."""

from __future__ import annotations

from flask import g

from ...services import categories as category_service
from ..common import app_ctx, json_body, login_required, ok
from . import bp

_KIND_PATH = "<any(group, category, subcategory):kind>"


@bp.get("")
@login_required
def tree():
    return ok(category_service.category_tree(app_ctx(), user_id=g.owner_id))


@bp.post(f"/{_KIND_PATH}")
@login_required
def create(kind: str):
    obj = category_service.create_entity(app_ctx(), kind, user_id=g.owner_id, data=json_body())
    return ok(obj, 201)


@bp.patch(f"/{_KIND_PATH}/<int:obj_id>")
@login_required
def update(kind: str, obj_id: int):
    obj = category_service.update_entity(
        app_ctx(), kind, obj_id, user_id=g.owner_id, data=json_body()
    )
    return ok(obj)


@bp.delete(f"/{_KIND_PATH}/<int:obj_id>")
@login_required
def delete(kind: str, obj_id: int):
    category_service.delete_entity(app_ctx(), kind, obj_id, user_id=g.owner_id)
    return ok()
