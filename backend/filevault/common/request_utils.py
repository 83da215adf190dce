from __future__ import annotations

from typing import TypeVar

from flask import has_request_context, request
from pydantic import BaseModel

from .errors import APIError


ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_body(model: type[ModelT]) -> ModelT:
    payload = request.get_json(silent=True)
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise APIError(400, "INVALID_PAYLOAD", "JSON object expected.")
    return model.model_validate(payload)


def parse_int(value: str | None, field_name: str, default: int, minimum: int = 1, maximum: int | None = None) -> int:
    if value in (None, ""):
        return default
    try:
        parsed = int(value)
    except ValueError as error:
        raise APIError(400, "INVALID_PARAMETER", f"{field_name} must be an integer.") from error
    parsed = max(minimum, parsed)
    if maximum is not None:
        parsed = min(maximum, parsed)
    return parsed


def parse_nullable_int(value: str | int | None, field_name: str) -> int | None:
    if value in (None, "", "null"):
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as error:
        raise APIError(400, "INVALID_PARAMETER", f"{field_name} must be an integer or null.") from error


def client_ip() -> str | None:
    if not has_request_context():
        return None
    forwarded = request.headers.get("X-Forwarded-For") or ""
    if forwarded.strip():
        return forwarded.split(",")[0].strip()
    real_ip = (request.headers.get("X-Real-IP") or "").strip()
    return real_ip or request.remote_addr or None


def client_user_agent() -> str | None:
    if not has_request_context():
        return None
    value = (request.headers.get("User-Agent") or "").strip()
    return value or None


def parse_bool(value: str | None, field_name: str) -> bool | None:
    if value in (None, ""):
        return None
    cleaned = value.strip().lower()
    if cleaned in {"1", "true", "yes"}:
        return True
    if cleaned in {"0", "false", "no"}:
        return False
    raise APIError(400, "INVALID_PARAMETER", f"{field_name} must be true or false.")
