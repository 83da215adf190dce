from __future__ import annotations

from typing import Any

from flask import Blueprint, current_app, jsonify
from flask_jwt_extended import create_access_token, create_refresh_token, jwt_required

from ..bootstrap import get_role
from ..common.audit import audit
from ..common.errors import APIError
from ..common.login_history import record_login_attempt
from ..common.rate_limit import login_rate_limiter
from ..common.rbac import current_user
from ..common.request_utils import client_ip, parse_body
from ..extensions import db
from ..models import LoginStatus, RoleName, SystemSetting, User, utc_now
from ..schemas import LoginRequest, RegisterRequest


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _token_claims(user: User) -> dict[str, Any]:
    return {"roles": user.role_names}


def _token_response(user: User) -> dict[str, Any]:
    claims = _token_claims(user)
    return {
        "accessToken": create_access_token(identity=str(user.id), additional_claims=claims),
        "refreshToken": create_refresh_token(identity=str(user.id), additional_claims=claims),
        "user": user.to_dict(),
    }


def registration_open() -> bool:
    if not current_app.config["ALLOW_REGISTRATION"]:
        return False
    return (SystemSetting.get_value("auth.allowRegistration") or "").strip().lower() != "false"


@auth_bp.post("/register")
def register():
    if not registration_open():
        raise APIError(403, "REGISTRATION_DISABLED", "Registration is disabled.")

    body = parse_body(RegisterRequest)
    if User.query.filter_by(email=body.email).one_or_none() is not None:
        raise APIError(409, "USER_EXISTS", "An account with this email already exists.")

    role = get_role(RoleName.USER.value)
    if role is None:
        raise APIError(500, "RBAC_NOT_READY", "Roles are not initialized.")

    user = User(
        email=body.email,
        name=body.name,
        storage_quota_bytes=current_app.config["DEFAULT_QUOTA_BYTES"],
        used_storage_bytes=0,
        is_active=True,
    )
    user.set_password(body.password)
    user.roles.append(role)

    db.session.add(user)
    db.session.flush()
    audit(
        action="auth.register",
        actor=user,
        target_type="user",
        target_id=user.id,
        payload={"email": user.email},
    )
    db.session.commit()
    current_app.logger.info("Registered user_id=%s", user.id)

    return jsonify({"success": True, "user": user.to_dict()}), 201


@auth_bp.post("/login")
def login():
    body = parse_body(LoginRequest)

    rate_limit_key = f"{client_ip() or 'unknown'}:{body.email}"
    retry_after = login_rate_limiter.retry_after(
        rate_limit_key,
        current_app.config["LOGIN_RATE_LIMIT_WINDOW_SECONDS"],
        current_app.config["LOGIN_RATE_LIMIT_MAX_ATTEMPTS"],
    )
    if retry_after:
        audit(action="auth.login_rate_limited", target_type="auth", target_id=body.email)
        db.session.commit()
        raise APIError(
            429,
            "RATE_LIMITED",
            "Too many login attempts. Please try again later.",
            {"retryAfter": retry_after},
        )

    user = User.query.filter_by(email=body.email).one_or_none()
    if user is None or not user.verify_password(body.password):
        login_rate_limiter.add_failure(rate_limit_key)
        if user is not None:
            record_login_attempt(user, LoginStatus.FAILED)
            db.session.commit()
        raise APIError(401, "INVALID_CREDENTIALS", "Invalid email or password.")

    if not user.can_sign_in:
        record_login_attempt(user, LoginStatus.FAILED)
        db.session.commit()
        raise APIError(403, "ACCOUNT_INACTIVE", "This account is suspended or disabled.")

    login_rate_limiter.clear(rate_limit_key)
    user.last_login_at = utc_now()
    record_login_attempt(user, LoginStatus.SUCCESS)
    audit(action="auth.login", actor=user, target_type="user", target_id=user.id)
    db.session.commit()

    return jsonify(_token_response(user))


@auth_bp.post("/refresh")
@jwt_required(refresh=True)
def refresh():
    user = current_user(required=True)
    assert user is not None

    access_token = create_access_token(identity=str(user.id), additional_claims=_token_claims(user))
    return jsonify({"accessToken": access_token})


@auth_bp.get("/me")
@jwt_required()
def me():
    user = current_user(required=True)
    assert user is not None
    return jsonify({"user": user.to_dict()})
