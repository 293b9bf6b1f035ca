"""Spare application factory."""

from __future__ import annotations

from importlib import import_module
from typing import Iterable

from dotenv import load_dotenv
from flask import Flask

from . import cli as _cli
from .config import BaseConfig, DevConfig, TestConfig

_CONFIG_MAP = {
    "development": DevConfig,
    "testing": TestConfig,
    "default": BaseConfig,
}

_BLUEPRINTS = (
    "auth",
    "accounts",
    "transactions",
    "categories",
    "budgets",
    "goals",
    "debts",
    "subscriptions",
    "planned_payments",
    "reports",
    "imports",
    "import_jobs",
    "plaid",
    "billing",
    "members",
    "investments",
    "taxes",
    "admin",
)


def _resolve_config(name: str | None) -> type[BaseConfig]:
    """Return the config class for the provided environment name."""

    if not name:
        return BaseConfig
    return _CONFIG_MAP.get(name.lower(), BaseConfig)


def _blueprint_paths() -> Iterable[str]:
    for name in _BLUEPRINTS:
        yield f"spare.blueprints.{name}"


def create_app(config_name: str | None = None, *, config: BaseConfig | None = None) -> Flask:
    """Create and configure the Flask application instance.

    ``config`` takes precedence over ``config_name``; tests pass a prepared
    config object so the data directory can point at a temporary path.
    """

    load_dotenv()
    app = Flask(__name__, instance_relative_config=True)
    config_obj = config or _resolve_config(config_name or app.config.get("ENV"))()
    app.config.from_object(config_obj)
    app.config.setdefault("SQLALCHEMY_ENGINE_OPTIONS", config_obj.sqlalchemy_engine_options())
    app.config["SPARE_CONFIG"] = config_obj

    from .errors import register_error_handlers
    from .extensions import init_db
    from .logging_config import setup_logging

    setup_logging(config_obj)
    register_error_handlers(app)
    _register_blueprints(app)
    ctx = init_db(app)
    if not ctx.category_repo.has_system_rows():
        from .services.categories import seed_system_categories

        seed_system_categories(ctx)
    _cli.init_app(app)

    if config_obj.ENABLE_SCHEDULER:
        from .scheduler import create_scheduler

        app.extensions["spare_scheduler"] = create_scheduler(ctx, auto_start=True)

    return app


def _register_blueprints(app: Flask) -> None:
    """Import and register all blueprints declared in `_blueprint_paths`."""

    for dotted_path in _blueprint_paths():
        module = import_module(dotted_path)
        blueprint = getattr(module, "bp")
        app.register_blueprint(blueprint)


__all__ = ["create_app", "BaseConfig", "DevConfig", "TestConfig"]
