"""Household members blueprint package."""

from __future__ import annotations

from flask import Blueprint

bp = Blueprint("members", __name__, url_prefix="/api/members")

from . import routes  # noqa: E402,F401 - ensure routes get registered

__all__ = ["bp"]
