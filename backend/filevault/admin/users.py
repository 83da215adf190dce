from __future__ import annotations

import math
from pathlib import Path
from typing import Any

from flask import Blueprint, current_app, jsonify, request
from flask_jwt_extended import jwt_required
from sqlalchemy import or_

from ..bootstrap import get_role
from ..common.audit import audit
from ..common.errors import APIError
from ..common.quotas import actual_usage, change_quota
from ..common.rbac import admin_required, current_user
from ..common.request_utils import parse_body, parse_int
from ..common.storage import delete_storage_path
from ..extensions import db
from ..models import AccountStatus, File, Folder, QuotaHistory, Role, RoleName, User, user_roles, utc_now
from ..schemas import AdminQuotaRequest, AdminUserCreateRequest, AdminUserStatusRequest, AdminUserUpdateRequest


admin_users_bp = Blueprint("users", __name__, url_prefix="/users")


def _get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise APIError(404, "USER_NOT_FOUND", "User not found.")
    return user


def _resolve_role(name: str | None) -> Role:
    role_name = (name or RoleName.USER.value).strip().lower()
    if role_name not in {item.value for item in RoleName}:
        raise APIError(400, "INVALID_ROLE", f"Unknown role: {role_name}.")
    role = get_role(role_name)
    if role is None:
        raise APIError(500, "RBAC_NOT_READY", "Roles are not initialized.")
    return role


def _assert_email_free(email: str, exclude_id: int | None = None) -> None:
    query = User.query.filter(User.email == email)
    if exclude_id is not None:
        query = query.filter(User.id != exclude_id)
    if query.first() is not None:
        raise APIError(409, "USER_EXISTS", "An account with this email already exists.")


def serialize_user(user: User) -> dict[str, Any]:
    payload = user.to_dict()
    payload["storageQuota"] = user.storage_summary()
    payload["stats"] = {
        "filesCount": File.query.filter(File.owner_id == user.id, File.deleted_at.is_(None)).count(),
        "foldersCount": Folder.query.filter(Folder.owner_id == user.id).count(),
    }
    return payload


@admin_users_bp.get("")
@jwt_required()
@admin_required
def list_users():
    page = parse_int(request.args.get("page"), "page", default=1)
    limit = parse_int(request.args.get("limit"), "limit", default=10, maximum=100)
    search = (request.args.get("search") or "").strip()
    status = (request.args.get("status") or "").strip().lower()
    role = (request.args.get("role") or "").strip().lower()

    query = User.query
    if search:
        wildcard = f"%{search}%"
        query = query.filter(or_(User.email.ilike(wildcard), User.name.ilike(wildcard)))
    if status and status != "all":
        try:
            query = query.filter(User.account_status == AccountStatus(status))
        except ValueError as error:
            raise APIError(400, "INVALID_PARAMETER", f"Unknown status: {status}.") from error
    if role and role != "all":
        query = query.filter(
            User.id.in_(
                db.session.query(user_roles.c.user_id)
                .join(Role, Role.id == user_roles.c.role_id)
                .filter(Role.name == role)
            )
        )

    total = query.count()
    users = query.order_by(User.created_at.desc(), User.id.desc()).offset((page - 1) * limit).limit(limit).all()

    return jsonify(
        {
            "users": [serialize_user(user) for user in users],
            "pagination": {
                "total": total,
                "page": page,
                "limit": limit,
                "pages": math.ceil(total / limit) if total else 0,
            },
        }
    )


@admin_users_bp.post("")
@jwt_required()
@admin_required
def create_user():
    actor = current_user(required=True)
    assert actor is not None

    body = parse_body(AdminUserCreateRequest)
    _assert_email_free(body.email)
    role = _resolve_role(body.role)

    user = User(
        name=body.name.strip(),
        email=body.email,
        storage_quota_bytes=body.storage_quota_bytes or current_app.config["DEFAULT_QUOTA_BYTES"],
        used_storage_bytes=0,
        is_active=True,
    )
    user.set_password(body.password)
    user.roles.append(role)

    db.session.add(user)
    db.session.flush()
    audit(
        action="admin.user_create",
        actor=actor,
        target_type="user",
        target_id=user.id,
        payload={"email": user.email, "role": role.name},
    )
    db.session.commit()

    return jsonify({"success": True, "message": "User created successfully.", "user": serialize_user(user)}), 201


@admin_users_bp.get("/<int:user_id>")
@jwt_required()
@admin_required
def get_user(user_id: int):
    user = _get_user(user_id)
    payload = serialize_user(user)
    payload["actualUsedBytes"] = actual_usage(user.id)
    return jsonify({"user": payload})


@admin_users_bp.patch("/<int:user_id>")
@jwt_required()
@admin_required
def update_user(user_id: int):
    actor = current_user(required=True)
    assert actor is not None

    user = _get_user(user_id)
    body = parse_body(AdminUserUpdateRequest)
    changes: dict[str, Any] = {}

    if body.email is not None and body.email != user.email:
        _assert_email_free(body.email, exclude_id=user.id)
        user.email = body.email
        changes["email"] = body.email
    if body.name is not None:
        user.name = body.name.strip()
        changes["name"] = user.name
    if body.role is not None:
        role = _resolve_role(body.role)
        if user.id == actor.id and role.name != RoleName.ADMIN.value:
            raise APIError(400, "INVALID_OPERATION", "You cannot remove your own admin role.")
        user.roles = [role]
        changes["role"] = role.name
    if body.storage_quota_bytes is not None:
        entry = change_quota(user, body.storage_quota_bytes, actor, None)
        if entry is not None:
            changes["storageQuotaBytes"] = body.storage_quota_bytes

    if changes:
        audit(action="admin.user_update", actor=actor, target_type="user", target_id=user.id, payload=changes)
    db.session.commit()

    return jsonify({"success": True, "user": serialize_user(user)})


@admin_users_bp.delete("/<int:user_id>")
@jwt_required()
@admin_required
def delete_user(user_id: int):
    actor = current_user(required=True)
    assert actor is not None

    if actor.id == user_id:
        raise APIError(400, "INVALID_OPERATION", "You cannot delete your own account.")

    user = _get_user(user_id)
    storage_root = Path(current_app.config["STORAGE_ROOT"]).resolve()
    storage_keys = [record.storage_key for record in File.query.filter_by(owner_id=user.id).all()]
    if user.image:
        storage_keys.append(user.image)

    email = user.email
    db.session.delete(user)
    audit(
        action="admin.user_delete",
        actor=actor,
        target_type="user",
        target_id=user_id,
        payload={"email": email, "files": len(storage_keys)},
    )
    db.session.commit()

    for key in storage_keys:
        try:
            delete_storage_path(storage_root, key)
        except OSError:
            current_app.logger.warning("Could not remove %s for deleted user_id=%s", key, user_id, exc_info=True)

    return jsonify({"success": True, "message": "User deleted successfully."})


@admin_users_bp.patch("/<int:user_id>/status")
@jwt_required()
@admin_required
def update_status(user_id: int):
    actor = current_user(required=True)
    assert actor is not None

    if actor.id == user_id:
        raise APIError(400, "INVALID_OPERATION", "You cannot change the status of your own account.")

    user = _get_user(user_id)
    body = parse_body(AdminUserStatusRequest)
    changes: dict[str, Any] = {}

    if body.is_active is not None:
        user.is_active = body.is_active
        changes["isActive"] = body.is_active

    if body.account_status is not None:
        user.account_status = body.account_status
        changes["accountStatus"] = body.account_status.value
        if body.account_status in {AccountStatus.SUSPENDED, AccountStatus.DISABLED}:
            user.suspended_at = utc_now()
            user.suspended_by_id = actor.id
            if body.suspended_reason:
                user.suspended_reason = body.suspended_reason
                changes["suspendedReason"] = body.suspended_reason
        else:
            user.suspended_at = None
            user.suspended_by_id = None
            user.suspended_reason = None

    audit(action="admin.user_status", actor=actor, target_type="user", target_id=user.id, payload=changes)
    db.session.commit()

    return jsonify({"success": True, "message": "User status updated successfully.", "user": serialize_user(user)})


@admin_users_bp.get("/<int:user_id>/quota")
@jwt_required()
@admin_required
def get_quota(user_id: int):
    user = _get_user(user_id)
    history = (
        QuotaHistory.query.filter_by(user_id=user.id)
        .order_by(QuotaHistory.created_at.desc(), QuotaHistory.id.desc())
        .limit(10)
        .all()
    )
    return jsonify(
        {
            "quota": user.storage_summary(),
            "history": [entry.to_dict() for entry in history],
        }
    )


@admin_users_bp.patch("/<int:user_id>/quota")
@jwt_required()
@admin_required
def update_quota(user_id: int):
    actor = current_user(required=True)
    assert actor is not None

    user = _get_user(user_id)
    body = parse_body(AdminQuotaRequest)
    previous = int(user.storage_quota_bytes or 0)

    entry = change_quota(user, body.quota_bytes, actor, body.reason)
    if entry is not None:
        audit(
            action="admin.quota_update",
            actor=actor,
            target_type="user",
            target_id=user.id,
            payload={"previousQuota": previous, "newQuota": body.quota_bytes, "reason": entry.reason},
        )
    db.session.commit()

    return jsonify({"success": True, "message": "Quota updated successfully.", "quota": user.storage_summary()})
