"""Request helpers shared by the JSON blueprints."""

from __future__ import annotations

from datetime import date, datetime
from functools import wraps
from typing import Any, Callable, Iterable, Optional

from flask import g, jsonify, request
from sqlmodel import SQLModel

from ..config import BaseConfig
from ..errors import Forbidden, Unauthorized, ValidationError
from ..extensions import get_context
from ..services import auth as auth_service
from ..services import members as member_service
from ..timeutils import parse_date, parse_period


def app_ctx():
    return get_context()


def _config() -> BaseConfig:
    return app_ctx().config


def bearer_token() -> Optional[str]:
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return None


def load_current_user():
    """Resolve the bearer token and bind ``g.current_user`` and ``g.owner_id``."""

    token = bearer_token()
    if not token:
        raise Unauthorized("Authentication required")
    config = _config()
    user = auth_service.load_user_from_token(
        token,
        secret_key=config.SECRET_KEY,
        max_age=config.TOKEN_MAX_AGE,
        session_factory=app_ctx().session_factory,
    )
    g.current_user = user
    g.owner_id = member_service.resolve_owner_id(app_ctx(), user.id)
    return user


def login_required(view: Callable) -> Callable:
    @wraps(view)
    def wrapper(*args, **kwargs):
        load_current_user()
        return view(*args, **kwargs)

    return wrapper


def admin_required(view: Callable) -> Callable:
    @wraps(view)
    def wrapper(*args, **kwargs):
        user = load_current_user()
        if not user.is_admin:
            raise Forbidden("Admin access required")
        return view(*args, **kwargs)

    return wrapper


def super_admin_required(view: Callable) -> Callable:
    @wraps(view)
    def wrapper(*args, **kwargs):
        user = load_current_user()
        if user.role != "super_admin":
            raise Forbidden("Super admin access required")
        return view(*args, **kwargs)

    return wrapper


def json_body() -> dict[str, Any]:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def dump(obj: Any) -> Any:
    """JSON-ready form of models, lists of models and plain values."""

    if isinstance(obj, SQLModel):
        return obj.model_dump(mode="json")
    if isinstance(obj, dict):
        return {key: dump(value) for key, value in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [dump(item) for item in obj]
    if hasattr(obj, "to_dict"):
        return dump(obj.to_dict())
    if isinstance(obj, (date, datetime)):
        return obj.isoformat()
    return obj


def ok(payload: Any = None, status: int = 200):
    return jsonify(dump(payload) if payload is not None else {"success": True}), status


def arg_int(name: str, default: Optional[int] = None) -> Optional[int]:
    raw = request.args.get(name)
    if raw in (None, ""):
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValidationError(f"Invalid {name}", {name: ["Must be a whole number."]}) from exc


def arg_float(name: str, default: Optional[float] = None) -> Optional[float]:
    raw = request.args.get(name)
    if raw in (None, ""):
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValidationError(f"Invalid {name}", {name: ["Must be a number."]}) from exc


def arg_date(name: str) -> Optional[date]:
    try:
        return parse_date(request.args.get(name))
    except ValueError as exc:
        raise ValidationError(f"Invalid {name}", {name: ["Enter a valid date (YYYY-MM-DD)."]}) from exc


def period_value(raw: Optional[str]) -> date:
    try:
        return parse_period(raw)
    except ValueError as exc:
        raise ValidationError(str(exc), {"period": ["Use YYYY-MM."]}) from exc


def require_fields(data: dict[str, Any], fields: Iterable[str]) -> None:
    missing = {name: ["This field is required."] for name in fields if data.get(name) in (None, "")}
    if missing:
        raise ValidationError("Missing required fields", missing)


def to_int(value: Any, name: str) -> Optional[int]:
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid {name}", {name: ["Must be a whole number."]}) from exc


def to_float(value: Any, name: str) -> Optional[float]:
    if value in (None, ""):
        return None
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid {name}", {name: ["Must be a number."]}) from exc
