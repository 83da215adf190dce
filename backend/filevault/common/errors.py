from __future__ import annotations

from typing import Any

from flask import Flask, jsonify
from pydantic import ValidationError
from werkzeug.exceptions import HTTPException

from ..extensions import db


HTTP_ERROR_CODES = {
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    413: "FILE_TOO_LARGE",
}


class APIError(Exception):
    def __init__(self, status_code: int, code: str, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details or {}


def error_payload(code: str, message: str, details: dict[str, Any] | None = None) -> dict[str, Any]:
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details or {},
        }
    }


def flatten_validation_error(error: ValidationError) -> dict[str, list[str]]:
    fields: dict[str, list[str]] = {}
    for issue in error.errors():
        path = ".".join(str(part) for part in issue.get("loc", ())) or "_root"
        message = str(issue.get("msg") or "Invalid value.")
        if message.startswith("Value error, "):
            message = message[len("Value error, ") :]
        fields.setdefault(path, []).append(message)
    return fields


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(APIError)
    def handle_api_error(error: APIError):  # type: ignore[no-untyped-def]
        return jsonify(error_payload(error.code, error.message, error.details)), error.status_code

    @app.errorhandler(ValidationError)
    def handle_validation_error(error: ValidationError):  # type: ignore[no-untyped-def]
        details = {"fields": flatten_validation_error(error)}
        return jsonify(error_payload("VALIDATION_FAILED", "Validation failed.", details)), 400

    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException):  # type: ignore[no-untyped-def]
        status = error.code or 500
        code = HTTP_ERROR_CODES.get(status, "HTTP_ERROR")
        return jsonify(error_payload(code, error.description or error.name, {"status": status})), status

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):  # type: ignore[no-untyped-def]
        db.session.rollback()
        app.logger.exception("Unhandled exception", exc_info=error)
        return jsonify(error_payload("INTERNAL_ERROR", "An unexpected error occurred.")), 500
