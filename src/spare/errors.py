"""Application error types and their JSON rendering."""

from __future__ import annotations

from typing import Any

from flask import Flask, current_app, jsonify
from werkzeug.exceptions import HTTPException


class AppError(Exception):
    """Error carrying an HTTP status code that routes surface as JSON."""

    status_code = 400

    def __init__(self, message: str, status_code: int | None = None, **payload: Any) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.payload = payload

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message}
        body.update(self.payload)
        return body


class ValidationError(AppError):
    status_code = 400

    def __init__(self, message: str, errors: dict[str, list[str]] | None = None, **payload: Any):
        if errors:
            payload["errors"] = errors
        super().__init__(message, **payload)
        self.errors = errors or {}


class Unauthorized(AppError):
    status_code = 401


class Forbidden(AppError):
    status_code = 403


class NotFound(AppError):
    status_code = 404


class Conflict(AppError):
    status_code = 409


class ExternalServiceError(AppError):
    """Raised when the payments platform, aggregator or captcha provider fails."""

    status_code = 502


def register_error_handlers(app: Flask) -> None:
    """Render AppError and unexpected exceptions as `{"error": ...}` payloads."""

    @app.errorhandler(AppError)
    def _handle_app_error(exc: AppError):
        if exc.status_code >= 500:
            current_app.logger.error("Request failed: %s", exc.message)
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(HTTPException)
    def _handle_http_error(exc: HTTPException):
        return jsonify({"error": exc.description or exc.name}), exc.code or 500

    @app.errorhandler(Exception)
    def _handle_unexpected(exc: Exception):
        current_app.logger.exception("Unhandled error")
        config = current_app.config.get("SPARE_CONFIG")
        body = {"error": "Internal server error"}
        if config is not None and config.DEV_MODE:
            body["message"] = str(exc)
        return jsonify(body), 500
