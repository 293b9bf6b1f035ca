"""Database and extension wiring for Spare."""

from __future__ import annotations

from flask import Flask, current_app

from .config import BaseConfig
from .context import AppContext, create_app_context

EXTENSION_KEY = "spare"


def init_db(app: Flask) -> AppContext:
    """Build the application context from the app's config and attach it."""

    config: BaseConfig = app.config["SPARE_CONFIG"]
    ctx = create_app_context(config)
    app.extensions[EXTENSION_KEY] = ctx
    app.logger.info("Database ready at %s", ctx.engine.url.render_as_string(hide_password=True))
    return ctx


def get_context() -> AppContext:
    """Return the context attached to the current Flask app."""

    ctx = current_app.extensions.get(EXTENSION_KEY)
    if ctx is None:  # pragma: no cover - exercised in integration tests
        raise RuntimeError("Database engine not initialized")
    return ctx
