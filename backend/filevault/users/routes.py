from __future__ import annotations

from pathlib import Path

from flask import Blueprint, current_app, jsonify, request, send_file
from flask_jwt_extended import jwt_required

from ..common.audit import audit
from ..common.errors import APIError
from ..common.file_types import AVATAR_TYPES, detect_mime_type
from ..common.rbac import current_user
from ..common.request_utils import parse_body, parse_int
from ..common.storage import (
    delete_storage_path,
    discard,
    file_extension,
    promote,
    resolve_storage_path,
    stream_size,
    unique_filename,
    write_temporary,
)
from ..extensions import db
from ..models import LoginHistory, RoleName, User
from ..schemas import ChangePasswordRequest, UpdateProfileRequest
from .settings import load_or_create_settings, sanitize_settings


users_bp = Blueprint("users", __name__, url_prefix="/api/user")

AVATAR_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
}


def _storage_root() -> Path:
    return Path(current_app.config["STORAGE_ROOT"]).resolve()


def _profile(user: User) -> dict:
    payload = user.to_dict()
    payload["storage"] = user.storage_summary()
    return payload


@users_bp.get("/me")
@jwt_required()
def me():
    user = current_user(required=True)
    assert user is not None

    roles = user.role_names
    if RoleName.ADMIN.value in roles:
        primary_role = RoleName.ADMIN.value
    else:
        primary_role = roles[0] if roles else RoleName.USER.value

    return jsonify(
        {
            "id": user.id,
            "name": user.name or "",
            "email": user.email,
            "image": user.avatar_url,
            "roles": roles,
            "role": primary_role,
        }
    )


@users_bp.get("/profile")
@jwt_required()
def get_profile():
    user = current_user(required=True)
    assert user is not None
    return jsonify({"user": _profile(user)})


@users_bp.patch("/profile")
@jwt_required()
def update_profile():
    user = current_user(required=True)
    assert user is not None

    body = parse_body(UpdateProfileRequest)
    changes: dict[str, str] = {}

    if body.email is not None and body.email != user.email:
        taken = User.query.filter(User.email == body.email, User.id != user.id).first()
        if taken is not None:
            raise APIError(409, "EMAIL_TAKEN", "This email is already in use.")
        user.email = body.email
        changes["email"] = body.email
    if body.name is not None:
        user.name = body.name.strip()
        changes["name"] = user.name
    if body.locale is not None:
        user.locale = body.locale
        changes["locale"] = body.locale

    if changes:
        audit(action="user.profile_update", actor=user, target_type="user", target_id=user.id, payload=changes)
    db.session.commit()

    return jsonify({"success": True, "user": _profile(user)})


@users_bp.post("/change-password")
@jwt_required()
def change_password():
    user = current_user(required=True)
    assert user is not None

    body = parse_body(ChangePasswordRequest)
    if not user.verify_password(body.current_password):
        raise APIError(
            400,
            "INVALID_PASSWORD",
            "Current password is incorrect.",
            {"fields": {"currentPassword": ["Current password is incorrect."]}},
        )
    if body.current_password == body.new_password:
        raise APIError(
            400,
            "PASSWORD_UNCHANGED",
            "New password must differ from the current one.",
            {"fields": {"newPassword": ["New password must differ from the current one."]}},
        )

    user.set_password(body.new_password)
    audit(action="user.password_change", actor=user, target_type="user", target_id=user.id)
    db.session.commit()

    return jsonify({"success": True, "message": "Password changed successfully."})


@users_bp.get("/login-history")
@jwt_required()
def login_history():
    user = current_user(required=True)
    assert user is not None

    limit = parse_int(request.args.get("limit"), "limit", default=10, maximum=100)
    skip = parse_int(request.args.get("skip"), "skip", default=0, minimum=0)

    query = LoginHistory.query.filter_by(user_id=user.id)
    total = query.count()
    entries = query.order_by(LoginHistory.created_at.desc(), LoginHistory.id.desc()).offset(skip).limit(limit).all()

    return jsonify(
        {
            "loginHistory": [entry.to_dict() for entry in entries],
            "pagination": {
                "total": total,
                "limit": limit,
                "skip": skip,
                "hasMore": skip + limit < total,
            },
        }
    )


@users_bp.post("/upload-avatar")
@jwt_required()
def upload_avatar():
    user = current_user(required=True)
    assert user is not None

    image = request.files.get("image")
    if image is None or not image.filename:
        raise APIError(400, "NO_FILE", "Multipart field 'image' is required.")

    mime_type = detect_mime_type(image)
    if mime_type not in AVATAR_TYPES:
        raise APIError(400, "FILE_TYPE_NOT_ALLOWED", "Avatar must be a JPEG, PNG or WebP image.")

    size = stream_size(image)
    if size <= 0:
        raise APIError(400, "EMPTY_FILE", "File is empty.")
    if size > int(current_app.config["MAX_AVATAR_SIZE_BYTES"]):
        raise APIError(400, "FILE_TOO_LARGE", "Avatar exceeds the maximum size.")

    extension = AVATAR_EXTENSIONS.get(mime_type) or file_extension(image.filename)
    storage_key = f"avatars/{user.id}/{unique_filename('avatar' + extension)}"
    storage_root = _storage_root()
    previous_key = user.image

    temp_path = write_temporary(image, storage_root)
    final_path: Path | None = None
    try:
        final_path = promote(temp_path, storage_root, storage_key)
        user.image = storage_key
        audit(action="user.avatar_update", actor=user, target_type="user", target_id=user.id)
        db.session.commit()
    except Exception:
        db.session.rollback()
        discard(temp_path, final_path)
        raise

    if previous_key and previous_key != storage_key:
        try:
            delete_storage_path(storage_root, previous_key)
        except OSError:
            current_app.logger.warning("Could not remove previous avatar %s", previous_key, exc_info=True)

    return jsonify({"success": True, "image": user.avatar_url})


@users_bp.get("/avatar")
@jwt_required()
def get_avatar():
    user = current_user(required=True)
    assert user is not None

    if not user.image:
        raise APIError(404, "AVATAR_NOT_FOUND", "No avatar uploaded.")
    abs_path = resolve_storage_path(_storage_root(), user.image)
    if not abs_path.exists():
        raise APIError(404, "AVATAR_NOT_FOUND", "Avatar data not found on disk.")
    return send_file(abs_path)


@users_bp.get("/settings")
@jwt_required()
def get_settings():
    user = current_user(required=True)
    assert user is not None

    settings = load_or_create_settings(user)
    stored = settings.payload_json if isinstance(settings.payload_json, dict) else {}
    normalized = sanitize_settings(stored)
    if stored != normalized:
        settings.payload_json = normalized
    db.session.commit()

    return jsonify({"settings": normalized, "updatedAt": settings.updated_at.isoformat() if settings.updated_at else None})


@users_bp.patch("/settings")
@jwt_required()
def update_settings():
    user = current_user(required=True)
    assert user is not None

    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise APIError(400, "INVALID_PAYLOAD", "Settings payload must be an object.")

    settings = load_or_create_settings(user)
    existing = settings.payload_json if isinstance(settings.payload_json, dict) else {}
    normalized = sanitize_settings({**existing, **payload})

    settings.payload_json = normalized
    db.session.commit()

    return jsonify(
        {
            "success": True,
            "message": "Settings updated successfully.",
            "settings": normalized,
            "updatedAt": settings.updated_at.isoformat() if settings.updated_at else None,
        }
    )
