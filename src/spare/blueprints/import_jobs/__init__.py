"""Import jobs blueprint package."""

from __future__ import annotations

from flask import Blueprint

bp = Blueprint("import_jobs", __name__, url_prefix="/api/import-jobs")

from . import routes  # noqa: E402,F401 - ensure routes get registered

__all__ = ["bp"]
